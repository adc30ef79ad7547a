"""Python logging handler adapter for logbridge.

This adapter bridges Python's standard library logging module in the
server-function tier to a LogReporter, so application logs are submitted
to the ingestion gateway like any other producer's.
"""

import asyncio
import concurrent.futures
import logging
import threading
import traceback
from collections.abc import Coroutine
from typing import Any

from logbridge.adapters.reporter import LogReporter
from logbridge.core.logs import log
from logbridge.core.models import SubmitResult, SystemArea

# Loggers whose records are never forwarded, to avoid reporting the
# reporter's own delivery failures back through itself.
_IGNORED_LOGGER_PREFIXES = ("logbridge", "httpx", "httpcore")

DEFAULT_FLUSH_TIMEOUT_S = 10.0


def _level_name(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return "error"
    if levelno >= logging.WARNING:
        return "warn"
    if levelno >= logging.INFO:
        return "info"
    return "debug"


class _DeliveryThread:
    """Daemon thread running an event loop for deliveries from sync code."""

    def __init__(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever, name="logbridge-delivery", daemon=True
        )
        self._thread.start()

    def submit(
        self, coro: Coroutine[Any, Any, SubmitResult | None]
    ) -> concurrent.futures.Future[SubmitResult | None]:
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def stop(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()


class LogBridgeHandler(logging.Handler):
    """Logging handler that submits log records through a LogReporter.

    ``emit`` never waits for the network. Inside a running event loop the
    delivery is scheduled on that loop; elsewhere it is handed to a
    background delivery thread. ``flush`` waits for handed-off deliveries
    and ``close`` stops the thread.

    ``trace_id``, ``user_id`` and ``critical`` may be passed per call via
    ``extra``.

    Example:
        ```python
        reporter = LogReporter("http://localhost:8000/log")
        handler = LogBridgeHandler(reporter)
        logging.getLogger().addHandler(handler)
        logging.getLogger(__name__).info("started", extra={"trace_id": trace})
        ```
    """

    def __init__(
        self,
        reporter: LogReporter,
        system_area: SystemArea = SystemArea.SERVER_FUNCTION,
        level: int = logging.NOTSET,
        flush_timeout_s: float = DEFAULT_FLUSH_TIMEOUT_S,
    ) -> None:
        """Initialize the handler with a reporter.

        Args:
            reporter: Reporter delivering payloads to the gateway.
            system_area: System declared on every submitted record.
            level: Minimum level handled.
            flush_timeout_s: Longest ``flush`` waits for pending deliveries.
        """
        super().__init__(level)
        self._reporter = reporter
        self._system_area = system_area
        self._flush_timeout_s = flush_timeout_s
        self._worker: _DeliveryThread | None = None
        self._worker_lock = threading.Lock()
        self._pending: set[concurrent.futures.Future[SubmitResult | None]] = set()

    def emit(self, record: logging.LogRecord) -> None:
        """Hand a log record to the reporter without blocking the caller."""
        if record.name.startswith(_IGNORED_LOGGER_PREFIXES):
            return
        try:
            stack_trace = None
            if record.exc_info and record.exc_info[0] is not None:
                stack_trace = "".join(traceback.format_exception(*record.exc_info))
            payload = log(
                _level_name(record.levelno),
                record.getMessage(),
                trace_id=getattr(record, "trace_id", None),
                user_id=getattr(record, "user_id", None),
                system_area=self._system_area.value,
                critical=getattr(record, "critical", False) is True,
                stack_trace=stack_trace,
            )
            payload["timestamp"] = int(record.created * 1000)
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                self._hand_off(payload)
            else:
                self._reporter.fire_and_forget(payload)
        except Exception:
            self.handleError(record)

    def flush(self) -> None:
        """Wait, up to ``flush_timeout_s``, for handed-off deliveries."""
        with self._worker_lock:
            pending = list(self._pending)
        if pending:
            concurrent.futures.wait(pending, timeout=self._flush_timeout_s)

    def close(self) -> None:
        """Flush pending deliveries and stop the delivery thread."""
        self.flush()
        with self._worker_lock:
            worker, self._worker = self._worker, None
        if worker is not None:
            worker.stop()
        super().close()

    def _hand_off(self, payload: dict[str, Any]) -> None:
        with self._worker_lock:
            if self._worker is None:
                self._worker = _DeliveryThread()
            future = self._worker.submit(self._reporter.report(payload))
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: concurrent.futures.Future[SubmitResult | None]) -> None:
        with self._worker_lock:
            self._pending.discard(future)
