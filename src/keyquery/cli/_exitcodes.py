"""Process exit codes shared by kq commands."""

SUCCESS = 0
GENERAL_ERROR = 1
USAGE_ERROR = 2
EXECUTION_FAILURE = 3
NOT_FOUND = 4
