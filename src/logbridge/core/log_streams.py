"""Translation of hosted-backend log stream batches into ingestion payloads.

A log stream delivers the backend platform's own function logs in
batches::

    {"logs": [{"id": "...", "timestamp": 1768435200000, "level": "ERROR",
               "message": "...", "context": {"functionName": "...",
               "requestId": "..."}, "metadata": {...}}]}

Each entry becomes a regular ``server_function`` submission; the trace
is recovered from the message or metadata and falls back to the
platform request id.
"""

import json
import re
from collections.abc import Mapping
from typing import Any

from logbridge.core.exceptions import ValidationError
from logbridge.core.models import SystemArea

SYSTEM_USER = "system"

_TRACE_IN_MESSAGE = re.compile(r"trace[_-]id[:\s]+([a-zA-Z0-9_-]+)", re.IGNORECASE)
_USER_IN_MESSAGE = re.compile(r"user[_-]?id[:\s]+([a-zA-Z0-9_-]+)", re.IGNORECASE)

_LEVELS = {
    "DEBUG": "debug",
    "INFO": "info",
    "LOG": "info",
    "WARN": "warn",
    "WARNING": "warn",
    "ERROR": "error",
}

_CONTEXT_KEYS = (
    "functionName",
    "functionId",
    "requestId",
    "environmentName",
    "deploymentId",
)


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def parse_log_stream(body: Any) -> list[Mapping[str, Any]]:
    """Return the entries of a log stream batch.

    Raises:
        ValidationError: If ``body`` has no ``logs`` list.
    """
    if not isinstance(body, Mapping) or not isinstance(body.get("logs"), list):
        raise ValidationError("log stream payload requires a logs array")
    return body["logs"]


def entry_trace_id(entry: Mapping[str, Any]) -> str:
    """Trace named in the message, then in metadata, else the request id."""
    message = entry.get("message")
    if isinstance(message, str):
        match = _TRACE_IN_MESSAGE.search(message)
        if match:
            return match.group(1)
    metadata = _mapping(entry.get("metadata"))
    for key in ("traceId", "trace_id"):
        if metadata.get(key):
            return str(metadata[key])
    request_id = _mapping(entry.get("context")).get("requestId")
    return f"req_{request_id or 'unknown'}"


def translate_entry(entry: Any) -> dict[str, Any]:
    """Map one log stream entry onto an ingestion payload.

    Validation of the result is left to the gateway; only the envelope is
    checked here.

    Raises:
        ValidationError: If ``entry`` is not an object.
    """
    if not isinstance(entry, Mapping):
        raise ValidationError("log stream entry must be an object")
    message = entry.get("message")
    level = entry.get("level")
    context = _mapping(entry.get("context"))
    metadata = _mapping(entry.get("metadata"))

    user_id = SYSTEM_USER
    if isinstance(message, str):
        match = _USER_IN_MESSAGE.search(message)
        if match:
            user_id = match.group(1)

    details: dict[str, Any] = {key: context.get(key) for key in _CONTEXT_KEYS}
    details["originalLevel"] = level
    details.update(metadata)
    stack = metadata.get("stack")
    return {
        "level": _LEVELS.get(str(level).upper(), "info"),
        "message": message,
        "timestamp": entry.get("timestamp"),
        "trace_id": entry_trace_id(entry),
        "user_id": user_id,
        "system_area": SystemArea.SERVER_FUNCTION.value,
        "raw_args": [json.dumps(details, default=str)],
        "stack_trace": stack if isinstance(stack, str) else None,
    }
