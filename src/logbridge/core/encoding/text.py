"""CSV and human-readable encoders for exported log records."""

import csv
import io
import json
from collections.abc import Iterable
from datetime import UTC, datetime

from logbridge.core.models import ANONYMOUS_USER, LogRecord

CSV_HEADER = (
    "timestamp",
    "iso_timestamp",
    "system_area",
    "level",
    "trace_id",
    "user_id",
    "message",
    "raw_args",
)


def iso_timestamp(timestamp_ms: int) -> str:
    """Render epoch milliseconds as an ISO 8601 UTC string."""
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def encode_csv(records: Iterable[LogRecord]) -> str:
    """Encode records as CSV with a header row.

    Returns:
        CSV text; only the header when there are no records.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for record in records:
        writer.writerow(
            (
                record.timestamp,
                iso_timestamp(record.timestamp),
                record.system_area.value,
                record.level.value,
                record.trace_id,
                "" if record.user_id == ANONYMOUS_USER else record.user_id,
                record.message,
                json.dumps(list(record.raw_args)) if record.raw_args else "",
            )
        )
    return buffer.getvalue()


def _readable_line(record: LogRecord) -> str:
    user = "" if record.user_id == ANONYMOUS_USER else f"({record.user_id}) "
    line = (
        f"[{iso_timestamp(record.timestamp)}] {record.system_area.value.upper()} "
        f"{record.level.value.upper()} [{record.trace_id}] {user}{record.message}"
    )
    if record.raw_args:
        line += f"\n  Args: {json.dumps(list(record.raw_args))}"
    if record.stack_trace:
        line += f"\n  Stack: {record.stack_trace}"
    return line


def encode_readable(records: Iterable[LogRecord]) -> str:
    """Encode records as blank-line separated text for reading or pasting."""
    return "\n\n".join(_readable_line(record) for record in records)
