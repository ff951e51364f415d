"""Runtime tunables, read from the environment."""

import os


def expiry_warning_days() -> int:
    return int(os.environ.get("EXPIRY_WARNING_DAYS", "30"))


def sequence_width() -> int:
    return int(os.environ.get("SEQUENCE_WIDTH", "4"))


def default_currency() -> str:
    return os.environ.get("DEFAULT_CURRENCY", "USD")


def query_page_size() -> int:
    """Rows fetched per round trip when a repository reads a full result set."""
    return max(1, int(os.environ.get("WAREHOUSING_QUERY_LIMIT", "10000")))
