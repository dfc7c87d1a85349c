"""Common types and helpers shared across models."""

import time
from datetime import UTC, datetime

NANOS_PER_SECOND = 1_000_000_000


def utc_now() -> datetime:
    return datetime.now(UTC)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def now_ns() -> int:
    return time.time_ns()
