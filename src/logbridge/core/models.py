"""Core domain models for log ingestion, quota accounting and correlation."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

ANONYMOUS_USER = "anonymous"


class SystemArea(str, Enum):
    """Producing environment a log record originated from."""

    CLIENT = "client"
    EDGE_WORKER = "edge_worker"
    SERVER_FUNCTION = "server_function"
    MANUAL = "manual"


class LogLevel(str, Enum):
    """Severity of a log record."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class SubmitStatus(str, Enum):
    """Outcome of a gateway submission."""

    ACCEPTED = "accepted"
    SUPPRESSED = "suppressed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class LogRecord:
    """One observed event, as admitted by the gateway.

    Attributes:
        id: System-generated unique identifier.
        trace_id: Correlation key.
        user_id: Producing user, or the anonymous sentinel.
        system_area: Producing environment.
        level: Severity.
        message: Redacted message text.
        raw_args: Redacted, stringified call arguments.
        timestamp: Producer time in epoch milliseconds.
        received_at: Gateway time in epoch milliseconds.
        stack_trace: Optional redacted stack trace.
        critical: Whether the record bypassed quota limits.
    """

    id: str
    trace_id: str
    user_id: str
    system_area: SystemArea
    level: LogLevel
    message: str
    raw_args: tuple[str, ...]
    timestamp: int
    received_at: int
    stack_trace: str | None = None
    critical: bool = False

    @property
    def search_text(self) -> str:
        """Lowercased message and arguments, one per line, for text search."""
        return "\n".join(part.lower() for part in (self.message, *self.raw_args))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "trace_id": self.trace_id,
            "user_id": self.user_id,
            "system_area": self.system_area.value,
            "level": self.level.value,
            "message": self.message,
            "raw_args": list(self.raw_args),
            "timestamp": self.timestamp,
            "received_at": self.received_at,
            "stack_trace": self.stack_trace,
            "critical": self.critical,
        }


@dataclass(frozen=True)
class StoredRecord:
    """A LogRecord as read back from one of its physical projections.

    Durable copies carry ``processed``; short-lived copies carry
    ``expires_at``.
    """

    record: LogRecord
    durable: bool
    processed: bool = False
    expires_at: int | None = None


@dataclass(frozen=True)
class FingerprintEntry:
    """Short-lived dedup record for one fingerprint window."""

    fingerprint: str
    first_seen_at: int
    suppressed_count: int
    expires_at: int


@dataclass(frozen=True)
class WindowState:
    """Rate window counters for a single system area."""

    count: int
    limit: int
    reset_at: int
    forced: int = 0

    @property
    def overage(self) -> int:
        """Admissions beyond the system's own allocation."""
        return max(0, self.count - self.limit)

    @property
    def headroom(self) -> int:
        """Unused portion of the system's own allocation."""
        return max(0, self.limit - self.count)


@dataclass(frozen=True)
class QuotaState:
    """Versioned snapshot of the singleton quota ledger row."""

    windows: dict[SystemArea, WindowState]
    window_capacity: int
    budget_used: int
    budget_cap: int
    cycle_start_at: int
    cycle_usage: dict[SystemArea, int] = field(default_factory=dict)
    version: int = 0

    @property
    def window_total(self) -> int:
        return sum(w.count for w in self.windows.values())

    @property
    def budget_ratio(self) -> float:
        if self.budget_cap <= 0:
            return 1.0
        return self.budget_used / self.budget_cap

    def with_window(self, system: SystemArea, window: WindowState) -> "QuotaState":
        return replace(self, windows={**self.windows, system: window})

    def to_dict(self) -> dict[str, Any]:
        return {
            "windows": {
                system.value: {
                    "count": w.count,
                    "limit": w.limit,
                    "reset_at": w.reset_at,
                    "forced": w.forced,
                }
                for system, w in self.windows.items()
            },
            "window_capacity": self.window_capacity,
            "budget_used": self.budget_used,
            "budget_cap": self.budget_cap,
            "cycle_start_at": self.cycle_start_at,
            "cycle_usage": {s.value: n for s, n in self.cycle_usage.items()},
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QuotaState":
        """Rebuild a state from its ``to_dict`` form.

        Raises:
            KeyError, ValueError, TypeError: If the data is malformed.
        """
        windows = {
            SystemArea(name): WindowState(
                count=int(w["count"]),
                limit=int(w["limit"]),
                reset_at=int(w["reset_at"]),
                forced=int(w.get("forced", 0)),
            )
            for name, w in data["windows"].items()
        }
        return cls(
            windows=windows,
            window_capacity=int(data["window_capacity"]),
            budget_used=int(data["budget_used"]),
            budget_cap=int(data["budget_cap"]),
            cycle_start_at=int(data["cycle_start_at"]),
            cycle_usage={
                SystemArea(s): int(n) for s, n in data.get("cycle_usage", {}).items()
            },
            version=int(data.get("version", 0)),
        )


@dataclass(frozen=True)
class AdmissionDecision:
    """Result of a quota admission check.

    Truthy when the record was admitted. Admitted decisions carry the
    window and cycle stamps needed to undo the charge.
    """

    admitted: bool
    system_area: SystemArea
    reason: str | None = None
    borrowed: bool = False
    forced: bool = False
    budget_warning: bool = False
    window_reset_at: int = 0
    cycle_start_at: int = 0

    def __bool__(self) -> bool:
        return self.admitted


@dataclass(frozen=True)
class SystemUsage:
    """Per-system slice of a quota status snapshot."""

    system_area: SystemArea
    window_count: int
    window_limit: int
    window_reset_at: int
    borrowed: int
    cycle_usage: int


@dataclass(frozen=True)
class QuotaStatus:
    """Read-only ledger snapshot for operator dashboards."""

    per_system: tuple[SystemUsage, ...]
    window_total: int
    window_capacity: int
    budget_used: int
    budget_cap: int
    budget_percent: float
    budget_state: str
    cycle_start_at: int
    estimated_cost: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "per_system": {
                u.system_area.value: {
                    "window_count": u.window_count,
                    "window_limit": u.window_limit,
                    "window_reset_at": u.window_reset_at,
                    "borrowed": u.borrowed,
                    "cycle_usage": u.cycle_usage,
                }
                for u in self.per_system
            },
            "global": {
                "window_total": self.window_total,
                "window_capacity": self.window_capacity,
                "budget_used": self.budget_used,
                "budget_cap": self.budget_cap,
                "budget_percent": self.budget_percent,
                "budget_state": self.budget_state,
                "cycle_start_at": self.cycle_start_at,
                "estimated_cost": self.estimated_cost,
            },
        }


@dataclass(frozen=True)
class SubmitResult:
    """Outcome returned to a producing system."""

    status: SubmitStatus
    reason: str | None = None
    detail: str | None = None
    record_id: str | None = None
    trace_id: str | None = None
    warning: str | None = None

    @classmethod
    def accepted(
        cls, record_id: str, trace_id: str, warning: str | None = None
    ) -> "SubmitResult":
        return cls(
            SubmitStatus.ACCEPTED,
            record_id=record_id,
            trace_id=trace_id,
            warning=warning,
        )

    @classmethod
    def suppressed(cls, reason: str, trace_id: str | None = None) -> "SubmitResult":
        return cls(SubmitStatus.SUPPRESSED, reason=reason, trace_id=trace_id)

    @classmethod
    def rejected(cls, reason: str, detail: str | None = None) -> "SubmitResult":
        return cls(SubmitStatus.REJECTED, reason=reason, detail=detail)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SubmitResult":
        """Rebuild a result from its wire form.

        Raises:
            KeyError, ValueError: If ``status`` is missing or unknown.
        """
        return cls(
            SubmitStatus(data["status"]),
            reason=data.get("reason"),
            detail=data.get("detail"),
            record_id=data.get("record_id"),
            trace_id=data.get("trace_id"),
            warning=data.get("warning"),
        )

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"status": self.status.value}
        for key in ("reason", "detail", "record_id", "trace_id", "warning"):
            value = getattr(self, key)
            if value is not None:
                body[key] = value
        return body


@dataclass(frozen=True)
class TimeRange:
    """Inclusive producer-time bounds in epoch milliseconds."""

    start: int | None = None
    end: int | None = None

    def contains(self, timestamp: int) -> bool:
        if self.start is not None and timestamp < self.start:
            return False
        if self.end is not None and timestamp > self.end:
            return False
        return True


@dataclass(frozen=True)
class SearchFilters:
    """Optional predicates for record search. Unset fields match anything."""

    system_area: SystemArea | None = None
    level: LogLevel | None = None
    user_id: str | None = None
    trace_id: str | None = None
    time_range: TimeRange | None = None
    text: str | None = None

    def matches(self, record: LogRecord) -> bool:
        if self.system_area is not None and record.system_area != self.system_area:
            return False
        if self.level is not None and record.level != self.level:
            return False
        if self.user_id is not None and record.user_id != self.user_id:
            return False
        if self.trace_id is not None and record.trace_id != self.trace_id:
            return False
        if self.time_range is not None and not self.time_range.contains(
            record.timestamp
        ):
            return False
        if self.text and self.text.lower() not in record.search_text:
            return False
        return True


@dataclass(frozen=True)
class SearchPage:
    """One bounded page of search results."""

    records: tuple[LogRecord, ...]
    limit: int
    offset: int
    has_more: bool


@dataclass(frozen=True)
class TimeSpan:
    start: int
    end: int

    @property
    def duration_ms(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class CorrelationView:
    """All records of one trace, ordered by producer time."""

    trace_id: str
    records: tuple[LogRecord, ...]
    systems: tuple[SystemArea, ...]
    time_span: TimeSpan
    by_system: dict[str, int]
    by_level: dict[str, int]
    error_count: int
    warning_count: int
    truncated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "trace_id": self.trace_id,
            "total": len(self.records),
            "systems": [s.value for s in self.systems],
            "time_span": {
                "start": self.time_span.start,
                "end": self.time_span.end,
                "duration_ms": self.time_span.duration_ms,
            },
            "summary": {
                "by_system": self.by_system,
                "by_level": self.by_level,
                "error_count": self.error_count,
                "warning_count": self.warning_count,
            },
            "truncated": self.truncated,
            "records": [r.to_dict() for r in self.records],
        }


@dataclass(frozen=True)
class TraceSummary:
    """Aggregate of one trace for recent-trace listings."""

    trace_id: str
    systems: tuple[SystemArea, ...]
    record_count: int
    first_seen: int
    last_seen: int
    has_errors: bool
    user_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "trace_id": self.trace_id,
            "systems": [s.value for s in self.systems],
            "record_count": self.record_count,
            "first_seen": self.first_seen,
            "last_seen": self.last_seen,
            "has_errors": self.has_errors,
            "user_id": self.user_id,
        }


@dataclass(frozen=True)
class CleanupResult:
    """Summary of a retention cleanup run."""

    mode: str
    scanned: int
    deleted: int
    failed: int
    batches: int
    short_lived_deleted: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "scanned": self.scanned,
            "deleted": self.deleted,
            "failed": self.failed,
            "batches": self.batches,
            "short_lived_deleted": self.short_lived_deleted,
        }


@dataclass(frozen=True)
class LogStats:
    """Totals over the durable projection.

    ``by_system`` and ``by_level`` carry every known key, zero included.
    ``unique_users`` does not count the anonymous sentinel. ``oldest`` and
    ``newest`` are producer timestamps, None when nothing matched.
    """

    total: int
    unique_traces: int
    unique_users: int
    by_system: dict[str, int]
    by_level: dict[str, int]
    processed: int = 0
    oldest: int | None = None
    newest: int | None = None

    @classmethod
    def empty(cls) -> "LogStats":
        return cls(
            total=0,
            unique_traces=0,
            unique_users=0,
            by_system={s.value: 0 for s in SystemArea},
            by_level={lvl.value: 0 for lvl in LogLevel},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "unique_traces": self.unique_traces,
            "unique_users": self.unique_users,
            "by_system": self.by_system,
            "by_level": self.by_level,
            "processed": self.processed,
            "date_range": {"oldest": self.oldest, "newest": self.newest},
        }


@dataclass(frozen=True)
class ExportBatch:
    """Encoded durable records handed to batch analysis."""

    format: str
    count: int
    data: Any
    marked: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": self.format,
            "count": self.count,
            "marked": self.marked,
            "data": self.data,
        }
