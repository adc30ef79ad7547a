"""Classification of request metadata into a producing system area."""

from collections.abc import Mapping

from logbridge.core.models import SystemArea

SYSTEM_AREA_HEADER = "x-system-area"

# Header values accepted as explicit declarations, including the names
# earlier producers used for the same environments.
_EXPLICIT_ALIASES = {
    "client": SystemArea.CLIENT,
    "browser": SystemArea.CLIENT,
    "edge_worker": SystemArea.EDGE_WORKER,
    "worker": SystemArea.EDGE_WORKER,
    "server_function": SystemArea.SERVER_FUNCTION,
    "backend": SystemArea.SERVER_FUNCTION,
    "convex": SystemArea.SERVER_FUNCTION,
    "manual": SystemArea.MANUAL,
}

_BROWSER_AGENTS = ("mozilla/", "chrome/", "safari/", "firefox/", "edg/")
_EDGE_AGENTS = ("cloudflare", "worker")
_SERVER_AGENTS = ("convex", "python-httpx", "node-fetch", "undici", "server-function")


def parse_system_area(value: str | None) -> SystemArea | None:
    """Map an explicit system name (or known alias) to a SystemArea."""
    if not value:
        return None
    return _EXPLICIT_ALIASES.get(value.strip().lower())


def classify_system_area(metadata: Mapping[str, str]) -> SystemArea:
    """Classify request metadata into the producing system area.

    Looks at, in order: an explicit ``X-System-Area`` header, the
    user agent, then the origin/referer. Keys are matched
    case-insensitively. Falls back to ``SystemArea.MANUAL``.

    Args:
        metadata: Request headers or equivalent key/value metadata.

    Returns:
        The detected SystemArea.
    """
    headers = {key.lower(): value for key, value in metadata.items()}

    explicit = parse_system_area(headers.get(SYSTEM_AREA_HEADER))
    if explicit is not None:
        return explicit

    agent = headers.get("user-agent", "").lower()
    if any(marker in agent for marker in _EDGE_AGENTS):
        return SystemArea.EDGE_WORKER
    if any(marker in agent for marker in _SERVER_AGENTS):
        return SystemArea.SERVER_FUNCTION

    origin = headers.get("origin", "") or headers.get("referer", "")
    if origin.startswith(("http://", "https://")):
        return SystemArea.CLIENT
    if any(marker in agent for marker in _BROWSER_AGENTS):
        return SystemArea.CLIENT

    return SystemArea.MANUAL
