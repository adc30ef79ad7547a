"""Application wiring: stores, core services and the ASGI front door."""

import asyncio
import logging
from dataclasses import dataclass

from logbridge.adapters.frameworks.asgi import (
    ASGIApp,
    Receive,
    Scope,
    Send,
    create_asgi_app,
)
from logbridge.adapters.storage import (
    InMemoryFingerprintStore,
    InMemoryQuotaStore,
    InMemoryRecordStorage,
    SQLiteFingerprintStore,
    SQLiteQuotaStore,
    SQLiteRecordStorage,
)
from logbridge.core.clock import Clock, now_ms
from logbridge.core.correlation import CorrelationEngine
from logbridge.core.export import LogExporter
from logbridge.core.fingerprint import FingerprintDeduplicator
from logbridge.core.gateway import IngestionGateway
from logbridge.core.ports import FingerprintStorePort, QuotaStorePort, RecordStoragePort
from logbridge.core.quota import QuotaLedger
from logbridge.core.retention import RetentionManager
from logbridge.settings import LogBridgeSettings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class LogBridge:
    """Every wired component of one deployment."""

    records: RecordStoragePort
    quota_store: QuotaStorePort
    fingerprints: FingerprintStorePort
    ledger: QuotaLedger
    gateway: IngestionGateway
    correlation: CorrelationEngine
    retention: RetentionManager
    exporter: LogExporter

    async def close(self) -> None:
        for store in (self.records, self.quota_store, self.fingerprints):
            close = getattr(store, "close", None)
            if close is not None:
                await close()


def build_components(
    settings: LogBridgeSettings | None = None, clock: Clock = now_ms
) -> LogBridge:
    """Create stores and services for ``settings`` (defaults from the environment)."""
    settings = settings or get_settings()
    config = settings.to_config()

    records: RecordStoragePort
    quota_store: QuotaStorePort
    fingerprints: FingerprintStorePort
    if settings.backend == "sqlite":
        records = SQLiteRecordStorage(settings.sqlite_path)
        quota_store = SQLiteQuotaStore(settings.sqlite_path)
        fingerprints = SQLiteFingerprintStore(settings.sqlite_path)
    else:
        records = InMemoryRecordStorage()
        quota_store = InMemoryQuotaStore()
        fingerprints = InMemoryFingerprintStore()
    logger.info("Using %s storage backend", settings.backend)

    ledger = QuotaLedger(quota_store, config, clock=clock)
    deduplicator = FingerprintDeduplicator(
        fingerprints, window_ms=config.dedup_window_ms, clock=clock
    )
    return LogBridge(
        records=records,
        quota_store=quota_store,
        fingerprints=fingerprints,
        ledger=ledger,
        gateway=IngestionGateway(records, deduplicator, ledger, config, clock=clock),
        correlation=CorrelationEngine(records, config, clock=clock),
        retention=RetentionManager(records, fingerprints, config, clock=clock),
        exporter=LogExporter(records, config),
    )


def create_app(settings: LogBridgeSettings | None = None) -> ASGIApp:
    """Create the ASGI application for ``settings``.

    The ``logbridge`` logger is set to ``settings.log_level``. The ASGI
    lifespan protocol starts the periodic short-lived expiry on
    startup and stops it, closing the stores, on shutdown.

    Example:
        ```
        uvicorn --factory logbridge.app:create_app
        ```
    """
    settings = settings or get_settings()
    logging.getLogger("logbridge").setLevel(settings.log_level)
    bridge = build_components(settings)
    http_app = create_asgi_app(
        bridge.gateway,
        bridge.correlation,
        bridge.retention,
        bridge.ledger,
        bridge.exporter,
        cors_origin=settings.cors_origin,
        admin_token=settings.admin_token,
        log_streams_token=settings.log_streams_token,
    )
    stop = asyncio.Event()
    sweeper: list[asyncio.Task[None]] = []

    async def lifespan(receive: Receive, send: Send) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                sweeper.append(
                    asyncio.create_task(
                        bridge.retention.run_periodic(settings.expiry_interval_s, stop)
                    )
                )
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                stop.set()
                if sweeper:
                    await asyncio.gather(*sweeper, return_exceptions=True)
                await bridge.close()
                await send({"type": "lifespan.shutdown.complete"})
                return

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await lifespan(receive, send)
            return
        await http_app(scope, receive, send)

    return app
