"""Tunables for the ingestion subsystem."""

import math
from dataclasses import dataclass, field

from logbridge.core.models import SystemArea

DEFAULT_ALLOCATION = {
    SystemArea.CLIENT: 0.40,
    SystemArea.EDGE_WORKER: 0.30,
    SystemArea.SERVER_FUNCTION: 0.30,
}

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 300

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS


@dataclass(frozen=True)
class IngestionConfig:
    """Configuration shared by the gateway, ledger, deduplicator and retention.

    Attributes:
        window_ms: Length of each system's rolling rate window.
        window_capacity: Global admissions allowed per window.
        allocation: Fraction of ``window_capacity`` owned by each system.
        lender_reserve: Fraction of a lender's allocation that cannot be
            borrowed by other systems (0 lends everything unused).
        budget_cap: Admissions allowed per monthly budget cycle.
        budget_warning_ratio: Usage ratio at which admissions carry a warning.
        budget_critical_ratio: Usage ratio at which only critical records pass.
        cost_per_million: Storage cost estimate used in status reports.
        dedup_window_ms: Fingerprint window length.
        short_lived_ttl_ms: Lifetime of the short-lived projection.
        durable_retention_ms: Age after which durable records are eligible
            for safe cleanup.
        max_page_size: Upper bound on records returned by any query.
        submit_timeout_s: Deadline for admission plus dual write.
        storage_retry_attempts: Bounded retries for transient storage errors.
        cas_attempts: Bounded compare-and-swap retries on ledger contention.
        cleanup_batch_size: Default records per cleanup transaction.
    """

    window_ms: int = HOUR_MS
    window_capacity: int = 1000
    allocation: dict[SystemArea, float] = field(
        default_factory=lambda: dict(DEFAULT_ALLOCATION)
    )
    lender_reserve: float = 0.0
    budget_cap: int = 125_000
    budget_warning_ratio: float = 0.80
    budget_critical_ratio: float = 0.95
    cost_per_million: float = 2.00
    dedup_window_ms: int = 1000
    short_lived_ttl_ms: int = HOUR_MS
    durable_retention_ms: int = 30 * DAY_MS
    max_page_size: int = 1000
    submit_timeout_s: float = 5.0
    storage_retry_attempts: int = 3
    cas_attempts: int = 32
    cleanup_batch_size: int = 100

    def __post_init__(self) -> None:
        if self.window_capacity < 0:
            raise ValueError("window_capacity must be non-negative")
        if sum(self.allocation.values()) > 1.0 + 1e-9:
            raise ValueError("allocation fractions must not exceed 1.0")
        if not 0.0 <= self.lender_reserve <= 1.0:
            raise ValueError("lender_reserve must be between 0 and 1")
        if not self.budget_warning_ratio <= self.budget_critical_ratio:
            raise ValueError("budget_warning_ratio must not exceed critical ratio")
        if not MIN_BATCH_SIZE <= self.cleanup_batch_size <= MAX_BATCH_SIZE:
            raise ValueError(
                f"cleanup_batch_size must be between {MIN_BATCH_SIZE} "
                f"and {MAX_BATCH_SIZE}"
            )

    def window_limit(self, system: SystemArea) -> int:
        """Per-window allocation for ``system`` derived from the global cap."""
        share = self.window_capacity * self.allocation.get(system, 0.0)
        return math.floor(share + 1e-9)
