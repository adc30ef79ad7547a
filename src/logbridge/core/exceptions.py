"""Error taxonomy for the ingestion subsystem.

Each error carries a machine-readable ``reason`` that the gateway reports
back to producers in rejected submissions.
"""


class LogBridgeError(Exception):
    """Base class for all ingestion errors."""

    reason = "error"


class ValidationError(LogBridgeError):
    """Malformed submission. Rejected before any side effect."""

    reason = "validation_error"


class QuotaExceededError(LogBridgeError):
    """Per-system, global window or budget cap reached."""

    reason = "quota_exceeded"


class StorageTransactionError(LogBridgeError):
    """Transient backend failure during a write or delete. Retryable."""

    reason = "storage_error"


class SubmissionTimeoutError(StorageTransactionError):
    """Admission and write did not complete within the submit timeout."""

    reason = "timeout"


class ConfigurationError(LogBridgeError):
    """Ledger or dedup store found in an unexpected state.

    Raised by stores and healed by their callers through lazy
    re-initialization; never surfaced to producers.

    ``version`` carries the stored row version when it could still be
    read, so the heal can be a compare-and-swap against that row.
    """

    reason = "configuration_error"

    def __init__(self, message: str, version: int | None = None) -> None:
        super().__init__(message)
        self.version = version
