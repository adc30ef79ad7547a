"""Time-windowed duplicate suppression keyed by message fingerprint."""

import hashlib
import logging

from logbridge.core.clock import Clock, now_ms
from logbridge.core.models import FingerprintEntry, SystemArea
from logbridge.core.ports import FingerprintStorePort

logger = logging.getLogger(__name__)


def normalize_message(message: str) -> str:
    """Normalize a message before hashing.

    Matching is exact on the raw message; only surrounding whitespace
    is ignored.
    """
    return message.strip()


def compute_fingerprint(system_area: SystemArea, message: str) -> str:
    """Stable hash over ``(system_area, normalized message)``."""
    digest = hashlib.sha256()
    digest.update(system_area.value.encode())
    digest.update(b"\x00")
    digest.update(normalize_message(message).encode("utf-8", errors="replace"))
    return digest.hexdigest()


class FingerprintDeduplicator:
    """Suppresses repeats of the same message within a per-fingerprint window.

    The existence check and the record step are one conditional upsert in
    the backing store, so two concurrent submissions of the same message
    can never both be admitted.
    """

    def __init__(
        self,
        store: FingerprintStorePort,
        window_ms: int = 1000,
        clock: Clock = now_ms,
    ) -> None:
        self._store = store
        self._window_ms = window_ms
        self._clock = clock

    async def check(self, system_area: SystemArea, message: str) -> FingerprintEntry:
        """Record the fingerprint and return the resulting window entry.

        ``suppressed_count`` is 0 for the first sighting in a window and
        increases by one for each repeat.
        """
        fingerprint = compute_fingerprint(system_area, message)
        return await self._store.check_and_record(
            fingerprint, self._clock(), self._window_ms
        )

    async def check_and_record(self, system_area: SystemArea, message: str) -> bool:
        """Return True if ``message`` is a duplicate within the current window."""
        entry = await self.check(system_area, message)
        return entry.suppressed_count > 0

    async def release(self, entry: FingerprintEntry) -> None:
        """Forget a window opened by a submission that was not admitted.

        Lets a producer retry after a rejection without the retry being
        suppressed as its own duplicate.
        """
        released = await self._store.release(entry.fingerprint, entry.first_seen_at)
        if not released:
            logger.debug("Fingerprint %s already rolled over", entry.fingerprint[:12])
