"""Bounded, jittered exponential backoff with injectable sleep and randomness."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from keyquery.config import KeyQueryConfig

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class Backoff:
    """Delay schedule for retrying unprocessed or throttled requests.

    ``delay_ms(attempt)`` is ``min(base * 2**attempt, max) + uniform(0, jitter)``.
    Tests pass a recording ``sleep`` and a seeded ``rng`` to stay deterministic.
    """

    base_ms: int = 50
    max_ms: int = 5000
    jitter_ms: int = 50
    max_retries: int = 5
    sleep: Sleep = asyncio.sleep
    rng: random.Random = field(default_factory=random.Random)

    @classmethod
    def from_config(
        cls,
        config: KeyQueryConfig,
        *,
        sleep: Sleep | None = None,
        rng: random.Random | None = None,
    ) -> Backoff:
        return cls(
            base_ms=config.backoff_base_ms,
            max_ms=config.backoff_max_ms,
            jitter_ms=config.backoff_jitter_ms,
            max_retries=config.max_retries,
            sleep=sleep or asyncio.sleep,
            rng=rng or random.Random(),
        )

    def delay_ms(self, attempt: int) -> float:
        backoff = min(self.base_ms * (2**attempt), self.max_ms)
        jitter = self.rng.uniform(0, self.jitter_ms) if self.jitter_ms > 0 else 0.0
        return backoff + jitter

    async def wait(self, attempt: int) -> float:
        delay = self.delay_ms(attempt)
        await self.sleep(delay / 1000.0)
        return delay
