"""Shared test fixtures for all test modules."""

from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from logbridge.adapters.frameworks.asgi import ASGIApp, create_asgi_app
from logbridge.adapters.storage.in_memory import (
    InMemoryFingerprintStore,
    InMemoryQuotaStore,
    InMemoryRecordStorage,
)
from logbridge.core.config import IngestionConfig
from logbridge.core.correlation import CorrelationEngine
from logbridge.core.export import LogExporter
from logbridge.core.fingerprint import FingerprintDeduplicator
from logbridge.core.gateway import IngestionGateway
from logbridge.core.quota import QuotaLedger
from logbridge.core.retention import RetentionManager

from tests.helpers import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> IngestionConfig:
    return IngestionConfig()


@pytest.fixture
def records() -> InMemoryRecordStorage:
    return InMemoryRecordStorage()


@pytest.fixture
def quota_store() -> InMemoryQuotaStore:
    return InMemoryQuotaStore()


@pytest.fixture
def fingerprint_store() -> InMemoryFingerprintStore:
    return InMemoryFingerprintStore()


@pytest.fixture
def ledger(quota_store, config, clock) -> QuotaLedger:
    return QuotaLedger(quota_store, config, clock=clock)


@pytest.fixture
def deduplicator(fingerprint_store, config, clock) -> FingerprintDeduplicator:
    return FingerprintDeduplicator(
        fingerprint_store, window_ms=config.dedup_window_ms, clock=clock
    )


@pytest.fixture
def gateway(records, deduplicator, ledger, config, clock) -> IngestionGateway:
    return IngestionGateway(records, deduplicator, ledger, config, clock=clock)


@pytest.fixture
def correlation(records, config, clock) -> CorrelationEngine:
    return CorrelationEngine(records, config, clock=clock)


@pytest.fixture
def retention(records, fingerprint_store, config, clock) -> RetentionManager:
    return RetentionManager(records, fingerprint_store, config, clock=clock)


@pytest.fixture
def exporter(records, config) -> LogExporter:
    return LogExporter(records, config)


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for SQLite storage tests."""
    return str(tmp_path / "logbridge.db")


# === ASGI Test Fixtures ===


@pytest.fixture
def asgi_test_client() -> Callable[[ASGIApp], httpx.AsyncClient]:
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client, asgi_app):
            async with asgi_test_client(asgi_app) as client:
                response = await client.get("/health")
    """

    def _get_client(app):
        """Return an AsyncClient context manager for the given app."""
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client


@pytest.fixture
def asgi_app(gateway, correlation, retention, ledger, exporter) -> ASGIApp:
    """ASGI app over in-memory stores with admin and log stream tokens."""
    return create_asgi_app(
        gateway,
        correlation,
        retention,
        ledger,
        exporter,
        cors_origin="https://app.example.com",
        admin_token="s3cret",
        log_streams_token="stream-token",
    )


@pytest.fixture
async def asgi_client(asgi_app, asgi_test_client):
    async with asgi_test_client(asgi_app) as client:
        yield client
