"""Validation of raw ingestion payloads."""

import json
import math
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from logbridge.core.classifier import classify_system_area, parse_system_area
from logbridge.core.exceptions import ValidationError
from logbridge.core.models import ANONYMOUS_USER, LogLevel, SystemArea
from logbridge.core.redaction import redact, redact_all

LEVEL_ALIASES = {
    "debug": LogLevel.DEBUG,
    "info": LogLevel.INFO,
    "log": LogLevel.INFO,
    "warn": LogLevel.WARN,
    "warning": LogLevel.WARN,
    "error": LogLevel.ERROR,
}

MAX_MESSAGE_LENGTH = 32_768
MAX_RAW_ARGS = 64


@dataclass(frozen=True)
class Submission:
    """A validated, redacted submission ready for admission checks."""

    level: LogLevel
    message: str
    raw_args: tuple[str, ...]
    system_area: SystemArea
    trace_id: str
    user_id: str
    timestamp: int
    stack_trace: str | None = None
    critical: bool = False


def generate_trace_id() -> str:
    return f"trace_{uuid.uuid4().hex}"


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)


def _parse_level(value: Any) -> LogLevel:
    if not isinstance(value, str) or value.lower() not in LEVEL_ALIASES:
        raise ValidationError("level must be one of: debug, info, warn, error")
    return LEVEL_ALIASES[value.lower()]


def _parse_timestamp(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("timestamp must be epoch milliseconds")
    if not math.isfinite(value) or value <= 0:
        raise ValidationError("timestamp must be a positive finite number")
    return int(value)


def _parse_optional_str(payload: Mapping[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value


def parse_submission(
    payload: Mapping[str, Any],
    metadata: Mapping[str, str] | None = None,
) -> Submission:
    """Validate ``payload`` and return a redacted Submission.

    ``system_area`` is taken from the payload when present, otherwise
    classified from request ``metadata``. Missing ``trace_id`` and
    ``user_id`` get a generated trace and the anonymous sentinel.

    Raises:
        ValidationError: If a required field is missing or invalid.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("payload must be an object")

    if "level" not in payload:
        raise ValidationError("level is required")
    level = _parse_level(payload["level"])

    message = payload.get("message")
    if not isinstance(message, str) or not message.strip():
        raise ValidationError("message is required")
    if len(message) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"message exceeds {MAX_MESSAGE_LENGTH} characters")

    if "timestamp" not in payload:
        raise ValidationError("timestamp is required")
    timestamp = _parse_timestamp(payload["timestamp"])

    raw = payload.get("raw_args", payload.get("args", []))
    if raw is None:
        raw = []
    if not isinstance(raw, (list, tuple)):
        raise ValidationError("raw_args must be a list")
    if len(raw) > MAX_RAW_ARGS:
        raise ValidationError(f"raw_args exceeds {MAX_RAW_ARGS} items")

    declared = payload.get("system_area")
    if declared is not None and declared != "":
        system_area = parse_system_area(declared) if isinstance(declared, str) else None
        if system_area is None:
            raise ValidationError(
                "system_area must be one of: client, edge_worker, "
                "server_function, manual"
            )
    else:
        system_area = classify_system_area(metadata or {})

    critical = payload.get("critical", False)
    if not isinstance(critical, bool):
        raise ValidationError("critical must be a boolean")

    stack_trace = _parse_optional_str(payload, "stack_trace")
    return Submission(
        level=level,
        message=redact(message),
        raw_args=redact_all(_stringify(arg) for arg in raw),
        system_area=system_area,
        trace_id=_parse_optional_str(payload, "trace_id") or generate_trace_id(),
        user_id=_parse_optional_str(payload, "user_id") or ANONYMOUS_USER,
        timestamp=timestamp,
        stack_trace=redact(stack_trace) if stack_trace is not None else None,
        critical=critical,
    )
