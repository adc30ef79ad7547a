"""Epoch-millisecond time helpers."""

import time
from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def month_start_ms(timestamp_ms: int) -> int:
    """Start of the UTC calendar month containing ``timestamp_ms``."""
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)
    start = moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return int(start.timestamp() * 1000)


def next_month_start_ms(timestamp_ms: int) -> int:
    """Start of the UTC calendar month following ``timestamp_ms``."""
    moment = datetime.fromtimestamp(month_start_ms(timestamp_ms) / 1000, tz=UTC)
    if moment.month == 12:
        following = moment.replace(year=moment.year + 1, month=1)
    else:
        following = moment.replace(month=moment.month + 1)
    return int(following.timestamp() * 1000)
