"""Shared test fixtures for keyquery tests."""

from __future__ import annotations

import random

import pytest
from pydantic import BaseModel

from keyquery import Engine, Field, IndexDescriptor, InMemoryStore, KeyQueryConfig, Record
from keyquery.records import RecordMapper
from keyquery.retry import Backoff

# --- Test record types ---


class Address(BaseModel):
    street_number: int
    street_name: str


class Person(Record, table="test_person"):
    __indexes__ = (IndexDescriptor("first_name_age", "first_name", "age"),)

    id: Field[str] = Field(hash_key=True)
    first_name: Field[str]
    last_name: Field[str | None] = None
    age: Field[int]
    email: Field[str] = Field(index=True)
    password: Field[str | None] = None
    role: Field[str | None] = None
    addresses: Field[list[Address]] = Field(default_factory=list)


class BookPage(Record, table="test_book_page"):
    id: Field[str] = Field(hash_key=True)
    page_num: Field[int] = Field(range_key=True)
    text: Field[str | None] = None


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays in seconds."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_people(total: int, prefix: str = "batch") -> list[Person]:
    return [
        Person(
            id=f"person:{prefix}-{i}",
            first_name="Batch",
            last_name="Insert",
            age=i,
            email=f"{prefix}_insert{i}@test.com",
            password="password",
        )
        for i in range(1, total + 1)
    ]


# --- Fixtures ---


@pytest.fixture
def mapper():
    return RecordMapper([Person, BookPage])


@pytest.fixture
def catalog(mapper):
    return mapper.catalog


@pytest.fixture
def config():
    return KeyQueryConfig()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def backoff(config, sleep):
    return Backoff.from_config(config, sleep=sleep, rng=random.Random(7))


@pytest.fixture
def store(catalog, config):
    return InMemoryStore(catalog, config=config)


@pytest.fixture
def engine(store, mapper, config, backoff):
    return Engine(store, mapper, config, backoff=backoff)
