"""Shared query parameter parsing utilities for framework adapters.

Invalid values are dropped rather than rejected, so a malformed filter
widens a search instead of failing it.
"""

from logbridge.core.classifier import parse_system_area
from logbridge.core.models import LogLevel, SearchFilters, SystemArea, TimeRange
from logbridge.core.submission import LEVEL_ALIASES


def _first(params: dict[str, list[str]], name: str) -> str | None:
    values = params.get(name)
    if not values:
        return None
    value = values[0].strip()
    return value or None


def _parse_int_param(
    params: dict[str, list[str]], name: str, default: int | None = None
) -> int | None:
    """Parse a non-negative integer parameter.

    Returns:
        The parsed value, or ``default`` if missing, negative or not a number.
    """
    raw = _first(params, name)
    if raw is None:
        return default
    try:
        value = int(float(raw))
    except (ValueError, OverflowError):
        return default
    if value < 0:
        return default
    return value


_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def _parse_bool_param(params: dict[str, list[str]], name: str) -> bool:
    """True only for 1, true, yes or on (any case)."""
    raw = _first(params, name)
    return raw is not None and raw.lower() in _TRUE_VALUES


def _parse_level_param(params: dict[str, list[str]]) -> LogLevel | None:
    raw = _first(params, "level")
    if raw is None:
        return None
    return LEVEL_ALIASES.get(raw.lower())


def _parse_system_area_param(params: dict[str, list[str]]) -> SystemArea | None:
    return parse_system_area(_first(params, "system_area"))


def _parse_search_params(params: dict[str, list[str]]) -> SearchFilters:
    """Build SearchFilters from ``system_area``, ``level``, ``user_id``,
    ``trace_id``, ``since``, ``until`` and ``q``."""
    since = _parse_int_param(params, "since")
    until = _parse_int_param(params, "until")
    time_range = None
    if since is not None or until is not None:
        time_range = TimeRange(start=since, end=until)
    return SearchFilters(
        system_area=_parse_system_area_param(params),
        level=_parse_level_param(params),
        user_id=_first(params, "user_id"),
        trace_id=_first(params, "trace_id"),
        time_range=time_range,
        text=_first(params, "q"),
    )
