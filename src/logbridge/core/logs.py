"""Log helpers: ingestion payload builders and exception logging."""

import logging
from typing import Any

from logbridge.core.clock import now_ms

logger = logging.getLogger("logbridge")


def log_exception(message: str) -> None:
    """Log the exception currently being handled, with traceback, at ERROR.

    Args:
        message: Context describing what was being attempted.
    """
    logger.exception(message)


def log(
    level: str,
    message: str,
    *args: Any,
    trace_id: str | None = None,
    user_id: str | None = None,
    system_area: str | None = None,
    critical: bool = False,
    stack_trace: str | None = None,
) -> dict[str, Any]:
    """Create an ingestion payload with automatic timestamp.

    Args:
        level: Log level ("debug", "info", "warn", "error")
        message: The log message
        *args: Extra call arguments, stringified by the gateway
        trace_id: Correlation key shared with other systems
        user_id: Producing user
        system_area: Declared producing system
        critical: Bypass quota limits for operationally essential events
        stack_trace: Optional stack trace text

    Returns:
        Payload dict accepted by ``IngestionGateway.submit``
    """
    payload: dict[str, Any] = {
        "level": level,
        "message": message,
        "raw_args": list(args),
        "timestamp": now_ms(),
        "critical": critical,
    }
    optional = {
        "trace_id": trace_id,
        "user_id": user_id,
        "system_area": system_area,
        "stack_trace": stack_trace,
    }
    payload.update({key: value for key, value in optional.items() if value})
    return payload


def debug(message: str, *args: Any, **context: Any) -> dict[str, Any]:
    """Create a debug payload with automatic timestamp."""
    return log("debug", message, *args, **context)


def info(message: str, *args: Any, **context: Any) -> dict[str, Any]:
    """Create an info payload with automatic timestamp."""
    return log("info", message, *args, **context)


def warn(message: str, *args: Any, **context: Any) -> dict[str, Any]:
    """Create a warn payload with automatic timestamp."""
    return log("warn", message, *args, **context)


def error(message: str, *args: Any, **context: Any) -> dict[str, Any]:
    """Create an error payload with automatic timestamp."""
    return log("error", message, *args, **context)
