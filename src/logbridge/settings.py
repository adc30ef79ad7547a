"""Environment configuration for a logbridge deployment.

Every variable is read with the ``LOGBRIDGE_`` prefix, e.g.
``LOGBRIDGE_BACKEND=sqlite`` or ``LOGBRIDGE_ADMIN_TOKEN=...``, and may also
come from a local ``.env`` file.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from logbridge.core.config import DAY_MS, IngestionConfig
from logbridge.core.models import SystemArea


class LogBridgeSettings(BaseSettings):
    # Storage
    backend: Literal["memory", "sqlite"] = "memory"
    sqlite_path: str = "logbridge.db"

    # HTTP surface
    cors_origin: str = "*"
    admin_token: str | None = None
    log_streams_token: str | None = None
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Admission
    window_capacity: int = Field(1000, ge=0)
    client_allocation: float = Field(0.40, ge=0.0, le=1.0)
    edge_worker_allocation: float = Field(0.30, ge=0.0, le=1.0)
    server_function_allocation: float = Field(0.30, ge=0.0, le=1.0)
    lender_reserve: float = Field(0.0, ge=0.0, le=1.0)
    budget_cap: int = Field(125_000, ge=0)
    dedup_window_ms: int = Field(1000, ge=0)
    submit_timeout_s: float = Field(5.0, gt=0)

    # Retention
    durable_retention_days: int = Field(30, ge=1)
    cleanup_batch_size: int = Field(100, ge=1, le=300)
    expiry_interval_s: float = Field(60.0, gt=0)
    max_page_size: int = Field(1000, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="LOGBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def to_config(self) -> IngestionConfig:
        """Build the IngestionConfig these settings describe.

        Raises:
            ValueError: If the combined values are inconsistent, e.g. the
                allocations sum to more than 1.0.
        """
        return IngestionConfig(
            window_capacity=self.window_capacity,
            allocation={
                SystemArea.CLIENT: self.client_allocation,
                SystemArea.EDGE_WORKER: self.edge_worker_allocation,
                SystemArea.SERVER_FUNCTION: self.server_function_allocation,
            },
            lender_reserve=self.lender_reserve,
            budget_cap=self.budget_cap,
            dedup_window_ms=self.dedup_window_ms,
            submit_timeout_s=self.submit_timeout_s,
            durable_retention_ms=self.durable_retention_days * DAY_MS,
            cleanup_batch_size=self.cleanup_batch_size,
            max_page_size=self.max_page_size,
        )


@lru_cache(maxsize=1)
def get_settings() -> LogBridgeSettings:
    """Retrieve a cached instance of settings to avoid repeated env parsing."""
    return LogBridgeSettings()


__all__ = ["LogBridgeSettings", "get_settings"]
