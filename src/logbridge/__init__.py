"""logbridge: multi-source log ingestion with quota, dedup and correlation."""

from logbridge.adapters.logging import LogBridgeHandler
from logbridge.adapters.reporter import LogReporter
from logbridge.adapters.storage import (
    InMemoryFingerprintStore,
    InMemoryQuotaStore,
    InMemoryRecordStorage,
    SQLiteFingerprintStore,
    SQLiteQuotaStore,
    SQLiteRecordStorage,
)
from logbridge.core.config import IngestionConfig
from logbridge.core.correlation import CorrelationEngine
from logbridge.core.exceptions import (
    ConfigurationError,
    LogBridgeError,
    QuotaExceededError,
    StorageTransactionError,
    SubmissionTimeoutError,
    ValidationError,
)
from logbridge.core.export import ExportFormat, LogExporter
from logbridge.core.fingerprint import FingerprintDeduplicator
from logbridge.core.gateway import IngestionGateway
from logbridge.core.logs import debug, error, info, log, warn
from logbridge.core.models import (
    CorrelationView,
    ExportBatch,
    LogLevel,
    LogRecord,
    LogStats,
    SearchFilters,
    SubmitResult,
    SubmitStatus,
    SystemArea,
    TimeRange,
)
from logbridge.core.quota import QuotaLedger
from logbridge.core.retention import CleanupMode, RetentionManager

__all__ = [
    "CleanupMode",
    "ConfigurationError",
    "CorrelationEngine",
    "CorrelationView",
    "ExportBatch",
    "ExportFormat",
    "FingerprintDeduplicator",
    "InMemoryFingerprintStore",
    "InMemoryQuotaStore",
    "InMemoryRecordStorage",
    "IngestionConfig",
    "IngestionGateway",
    "LogBridgeError",
    "LogBridgeHandler",
    "LogLevel",
    "LogExporter",
    "LogRecord",
    "LogReporter",
    "LogStats",
    "QuotaExceededError",
    "QuotaLedger",
    "RetentionManager",
    "SQLiteFingerprintStore",
    "SQLiteQuotaStore",
    "SQLiteRecordStorage",
    "SearchFilters",
    "StorageTransactionError",
    "SubmissionTimeoutError",
    "SubmitResult",
    "SubmitStatus",
    "SystemArea",
    "TimeRange",
    "ValidationError",
    "debug",
    "error",
    "info",
    "log",
    "warn",
]
