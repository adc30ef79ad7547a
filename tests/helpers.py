"""Builders and fakes shared by tests."""

from logbridge.core.models import LogLevel, LogRecord, SystemArea

# 2026-01-15T00:00:00Z
START_MS = 1_768_435_200_000


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


def make_record(
    record_id: str = "r1",
    trace_id: str = "trace_1",
    timestamp: int = START_MS,
    system_area: SystemArea = SystemArea.CLIENT,
    level: LogLevel = LogLevel.INFO,
    message: str = "hello",
    received_at: int | None = None,
    user_id: str = "user_1",
) -> LogRecord:
    """Build a LogRecord with sensible defaults."""
    return LogRecord(
        id=record_id,
        trace_id=trace_id,
        user_id=user_id,
        system_area=system_area,
        level=level,
        message=message,
        raw_args=(),
        timestamp=timestamp,
        received_at=timestamp if received_at is None else received_at,
    )


def make_payload(message: str = "checkout started", **overrides) -> dict:
    """Build a valid ingestion payload."""
    payload = {
        "level": "info",
        "message": message,
        "timestamp": START_MS,
        "system_area": "client",
        "trace_id": "trace_1",
        "user_id": "user_1",
    }
    payload.update(overrides)
    return payload
