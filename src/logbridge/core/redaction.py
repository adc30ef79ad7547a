"""Secret redaction and noise filtering for incoming log content."""

import re
from collections.abc import Iterable

REDACTED = "[REDACTED]"

# Keyed credentials in JSON-ish or key=value text, e.g. "token": "abc"
# or password=hunter2. Order matters: specific keys before the bare
# "token"/"secret" catch-alls.
_KEYED_SECRET_NAMES = (
    "access_token",
    "refresh_token",
    "id_token",
    "client_secret",
    r"api[_-]?key",
    "password",
    "passwd",
    "secret",
    "token",
)

_SENSITIVE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    *(
        (
            re.compile(
                rf"""(?P<key>["']?{name}["']?\s*[:=]\s*)"""
                rf"""(?P<quote>["']?)[^"'\s,&}}]+(?P=quote)""",
                re.IGNORECASE,
            ),
            rf"\g<key>\g<quote>{REDACTED}\g<quote>",
        )
        for name in _KEYED_SECRET_NAMES
    ),
    (
        re.compile(r"\b(bearer)\s+[A-Za-z0-9\-_.~+/]+=*", re.IGNORECASE),
        rf"\1 {REDACTED}",
    ),
    # Bare JSON Web Tokens
    (
        re.compile(r"\beyJ[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+"),
        REDACTED,
    ),
)

# Development tooling chatter that never reaches storage.
NOISE_PATTERNS = (
    "[HMR]",
    "unexpected require",
    "disposed module",
    "webpack-internal",
    "webpack-hot-middleware",
    "hot-update",
    "[Fast Refresh]",
    "React DevTools",
    "DevTools detected",
    "Non-Error promise rejection",
)


def redact(text: str) -> str:
    """Replace recognizable credentials in ``text`` with a placeholder."""
    for pattern, replacement in _SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def redact_all(values: Iterable[str]) -> tuple[str, ...]:
    return tuple(redact(value) for value in values)


def is_noise(message: str, patterns: Iterable[str] = NOISE_PATTERNS) -> bool:
    """Return True if ``message`` matches a known noise pattern (case-insensitive)."""
    lowered = message.lower()
    return any(pattern.lower() in lowered for pattern in patterns)
