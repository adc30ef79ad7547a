"""Fire-and-forget HTTP client used by producing systems.

Reporting a log must never break the caller: every failure is absorbed,
and payloads that could not be delivered are kept in a bounded local
buffer until ``flush`` succeeds or newer payloads push them out.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Mapping
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from logbridge.core.classifier import SYSTEM_AREA_HEADER
from logbridge.core.models import SubmitResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 5.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_BUFFER_SIZE = 100
UNDELIVERED = "undelivered"


class _RetryableStatus(Exception):
    """Gateway answered with a status worth retrying (5xx)."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"gateway returned HTTP {status_code}")
        self.status_code = status_code


class LogReporter:
    """Posts ingestion payloads to a gateway's ``/log`` endpoint.

    Example:
        ```python
        reporter = LogReporter("https://logs.example.com/log", system_area="client")
        reporter.fire_and_forget(info("checkout started", trace_id=trace))
        ```
    """

    def __init__(
        self,
        endpoint_url: str,
        client: httpx.AsyncClient | None = None,
        system_area: str | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        on_result: Callable[[SubmitResult], None] | None = None,
    ) -> None:
        """Initialize the reporter.

        Args:
            endpoint_url: Full URL of the gateway's ``/log`` endpoint.
            client: Shared httpx client; a short-lived one is opened per
                request when omitted.
            system_area: Sent as the ``X-System-Area`` header.
            timeout_s: Hard limit for one report, retries included.
            retry_attempts: Attempts per report on transport errors and 5xx.
            buffer_size: Maximum undelivered payloads kept for ``flush``.
            on_result: Called with every outcome. Payloads that could not be
                delivered produce a Rejected result with reason
                ``undelivered``.
        """
        self._endpoint_url = endpoint_url
        self._client = client
        self._headers = {SYSTEM_AREA_HEADER: system_area} if system_area else {}
        self._timeout_s = timeout_s
        self._retry_attempts = retry_attempts
        self._buffer: deque[dict[str, Any]] = deque(maxlen=buffer_size)
        self._on_result = on_result
        self._tasks: set[asyncio.Task[SubmitResult | None]] = set()

    @property
    def pending(self) -> int:
        """Number of undelivered payloads in the fallback buffer."""
        return len(self._buffer)

    async def report(self, payload: Mapping[str, Any]) -> SubmitResult | None:
        """Deliver one payload.

        Returns:
            The gateway's SubmitResult, or None if the payload could not be
            delivered and was buffered instead.
        """
        try:
            result = await asyncio.wait_for(
                self._send_with_retries(payload), timeout=self._timeout_s
            )
        except (asyncio.TimeoutError, httpx.HTTPError, _RetryableStatus) as exc:
            logger.warning("Log delivery failed, buffering payload: %s", exc)
            self._buffer.append(dict(payload))
            self._notify(SubmitResult.rejected(UNDELIVERED, str(exc) or None))
            return None
        except Exception as exc:
            logger.exception("Unexpected error delivering log payload")
            self._buffer.append(dict(payload))
            self._notify(SubmitResult.rejected(UNDELIVERED, str(exc) or None))
            return None
        self._notify(result)
        return result

    def fire_and_forget(
        self, payload: Mapping[str, Any]
    ) -> asyncio.Task[SubmitResult | None]:
        """Schedule ``report`` on the running loop without awaiting it."""
        task = asyncio.ensure_future(self.report(payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def flush(self) -> int:
        """Retry every buffered payload once.

        Returns:
            Number of payloads delivered. Undelivered ones are buffered again.
        """
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        pending = list(self._buffer)
        self._buffer.clear()
        delivered = 0
        for payload in pending:
            if await self.report(payload) is not None:
                delivered += 1
        return delivered

    async def _send_with_retries(self, payload: Mapping[str, Any]) -> SubmitResult:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=0.1, max=2),
            retry=retry_if_exception_type((httpx.TransportError, _RetryableStatus)),
            reraise=True,
        ):
            with attempt:
                return await self._send(payload)
        raise RuntimeError("unreachable")

    async def _send(self, payload: Mapping[str, Any]) -> SubmitResult:
        if self._client is not None:
            response = await self._client.post(
                self._endpoint_url, json=dict(payload), headers=self._headers
            )
        else:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                response = await client.post(
                    self._endpoint_url, json=dict(payload), headers=self._headers
                )
        if response.status_code >= 500:
            raise _RetryableStatus(response.status_code)
        return SubmitResult.from_dict(response.json())

    def _notify(self, result: SubmitResult) -> None:
        if self._on_result is None:
            return
        try:
            self._on_result(result)
        except Exception:
            logger.exception("on_result callback failed")
