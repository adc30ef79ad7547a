"""NDJSON encoder for log records."""

import json
from collections.abc import Iterable
from typing import Any

from logbridge.core.models import LogRecord


def encode_ndjson(objects: Iterable[dict[str, Any]]) -> str:
    """Encode dicts to newline-delimited JSON.

    Returns:
        NDJSON string with one JSON object per line.
        Empty string if there are no objects.
    """
    lines = [json.dumps(obj) for obj in objects]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def encode_records(records: Iterable[LogRecord]) -> str:
    """Encode log records to newline-delimited JSON."""
    return encode_ndjson(record.to_dict() for record in records)
