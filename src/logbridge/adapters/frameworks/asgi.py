"""ASGI generic adapter for the ingestion gateway.

This adapter provides a framework-agnostic ASGI application that can be used
with any ASGI server (uvicorn, hypercorn, daphne) without requiring FastAPI
as a dependency.
"""

import hmac
import json
from collections.abc import Callable, Coroutine
from typing import Any
from urllib.parse import parse_qs

from logbridge.adapters.frameworks.query_params import (
    _first,
    _parse_bool_param,
    _parse_int_param,
    _parse_search_params,
    _parse_system_area_param,
)
from logbridge.core.correlation import CorrelationEngine
from logbridge.core.encoding.ndjson import encode_records
from logbridge.core.exceptions import StorageTransactionError, ValidationError
from logbridge.core.export import LogExporter
from logbridge.core.gateway import IngestionGateway
from logbridge.core.logs import log_exception
from logbridge.core.models import SubmitResult, SubmitStatus
from logbridge.core.quota import QuotaLedger
from logbridge.core.retention import CleanupMode, RetentionManager

# ASGI type aliases
Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]

MAX_BODY_BYTES = 1024 * 1024

_REJECTION_STATUS = {
    "validation_error": 400,
    "quota_exceeded": 429,
    "storage_error": 503,
    "timeout": 503,
    "quota_unavailable": 503,
}


class _BodyTooLarge(Exception):
    pass


def _parse_query_params(scope: Scope) -> dict[str, list[str]]:
    """Parse query string from ASGI scope into parameter dictionary.

    Returns:
        Dictionary mapping parameter names to lists of values.
        Returns empty dict if query_string is missing or empty.
    """
    query_string = scope.get("query_string", b"").decode(errors="replace")
    return parse_qs(query_string)


def _request_headers(scope: Scope) -> dict[str, str]:
    """Decode ASGI headers into a lowercase-keyed dict."""
    headers: list[tuple[bytes, bytes]] = scope.get("headers", [])
    return {
        name.decode("latin-1").lower(): value.decode("utf-8", errors="replace")
        for name, value in headers
    }


async def _read_body(receive: Receive) -> bytes:
    chunks: list[bytes] = []
    size = 0
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            break
        chunk = message.get("body", b"")
        size += len(chunk)
        if size > MAX_BODY_BYTES:
            raise _BodyTooLarge
        chunks.append(chunk)
        if not message.get("more_body", False):
            break
    return b"".join(chunks)


def status_for_result(result: SubmitResult) -> int:
    """HTTP status for a submission outcome."""
    if result.status is not SubmitStatus.REJECTED:
        return 200
    return _REJECTION_STATUS.get(result.reason or "", 503)


def _cors_headers(origin: str) -> list[tuple[bytes, bytes]]:
    return [
        (b"access-control-allow-origin", origin.encode()),
        (b"access-control-allow-methods", b"GET, POST, OPTIONS"),
        (
            b"access-control-allow-headers",
            b"content-type, authorization, x-system-area, x-admin-token",
        ),
        (b"access-control-max-age", b"86400"),
    ]


async def _send_response(
    send: Send,
    status: int,
    content_type: str,
    body: str,
    extra_headers: list[tuple[bytes, bytes]] | None = None,
) -> None:
    """Send an HTTP response with headers and body.

    Args:
        send: ASGI send callable for writing response.
        status: HTTP status code.
        content_type: Content-Type header value.
        body: Response body as string (will be encoded to bytes).
        extra_headers: Additional raw headers, e.g. CORS.
    """
    headers = [(b"content-type", content_type.encode())]
    headers.extend(extra_headers or [])
    await send({"type": "http.response.start", "status": status, "headers": headers})
    await send({"type": "http.response.body", "body": body.encode()})


async def _send_json(
    send: Send,
    status: int,
    data: Any,
    extra_headers: list[tuple[bytes, bytes]] | None = None,
) -> None:
    await _send_response(
        send, status, "application/json", json.dumps(data), extra_headers
    )


async def _method_not_allowed(
    send: Send, extra_headers: list[tuple[bytes, bytes]]
) -> None:
    await _send_response(send, 405, "text/plain", "Method Not Allowed", extra_headers)


async def _handle_endpoint(
    send: Send,
    endpoint_func: Callable[[], Coroutine[Any, Any, tuple[int, str]]],
    content_type: str,
    log_message: str,
    extra_headers: list[tuple[bytes, bytes]] | None = None,
) -> None:
    """Execute an endpoint function with error handling and send response.

    Args:
        send: ASGI send callable for writing response.
        endpoint_func: Async function returning (status, body).
        content_type: Content-Type header for success response.
        log_message: Message to log on error.
        extra_headers: Additional raw headers, e.g. CORS.
    """
    try:
        status, body = await endpoint_func()
    except StorageTransactionError as exc:
        await _send_json(
            send,
            503,
            {"error": "Storage Unavailable", "detail": str(exc)},
            extra_headers,
        )
        return
    except Exception:
        log_exception(log_message)
        await _send_json(send, 500, {"error": "Internal Server Error"}, extra_headers)
        return
    await _send_response(send, status, content_type, body, extra_headers)


def _admin_authorized(headers: dict[str, str], admin_token: str | None) -> bool:
    if admin_token is None:
        return True
    supplied = headers.get("x-admin-token", "")
    auth = headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        supplied = auth[7:].strip()
    return hmac.compare_digest(supplied.encode(), admin_token.encode())


def create_asgi_app(
    gateway: IngestionGateway,
    correlation: CorrelationEngine,
    retention: RetentionManager,
    ledger: QuotaLedger,
    exporter: LogExporter,
    cors_origin: str = "*",
    admin_token: str | None = None,
    log_streams_token: str | None = None,
) -> ASGIApp:
    """Create an ASGI app exposing the gateway and its read-side queries.

    Endpoints:
        ``POST /log``: submit one record; body is the ingestion payload.
        ``POST /log-streams``: submit a hosted-backend log stream batch.
        ``GET /health``: quota ledger snapshot.
        ``GET /traces``: recently active traces.
        ``GET /traces/{trace_id}``: correlated timeline for one trace.
        ``GET /logs``: filtered search as NDJSON.
        ``GET /stats``: totals over the durable projection.
        ``POST /export``: encoded durable records, optionally marked
            processed (admin only).
        ``POST /cleanup``: bounded durable cleanup (admin only).
        ``OPTIONS *``: CORS preflight.

    Args:
        gateway: Ingestion gateway handling submissions.
        correlation: Engine answering trace and search queries.
        retention: Manager running cleanup requests.
        ledger: Quota ledger reported by the health endpoint.
        exporter: Exporter behind ``/export``.
        cors_origin: Value of Access-Control-Allow-Origin.
        admin_token: Token required by ``/cleanup`` and ``/export``; None
            disables the check.
        log_streams_token: Token required by ``/log-streams``; None
            disables the check.

    Returns:
        ASGI application callable.
    """
    cors = _cors_headers(cors_origin)

    async def submit(headers: dict[str, str], receive: Receive, send: Send) -> None:
        try:
            payload = json.loads(await _read_body(receive) or b"null")
        except _BodyTooLarge:
            await _send_json(send, 413, {"error": "Payload Too Large"}, cors)
            return
        except (json.JSONDecodeError, UnicodeDecodeError):
            result = SubmitResult.rejected("validation_error", "body must be JSON")
            await _send_json(send, 400, result.to_dict(), cors)
            return
        result = await gateway.submit(payload, headers)
        await _send_json(send, status_for_result(result), result.to_dict(), cors)

    async def cleanup(headers: dict[str, str], receive: Receive, send: Send) -> None:
        if not _admin_authorized(headers, admin_token):
            await _send_json(send, 401, {"error": "Unauthorized"}, cors)
            return
        try:
            body = json.loads(await _read_body(receive) or b"{}")
        except (_BodyTooLarge, json.JSONDecodeError, UnicodeDecodeError):
            await _send_json(send, 400, {"error": "body must be a JSON object"}, cors)
            return
        if not isinstance(body, dict):
            await _send_json(send, 400, {"error": "body must be a JSON object"}, cors)
            return
        mode = body.get("mode", CleanupMode.SAFE.value)
        if mode == CleanupMode.FORCE.value and body.get("confirm") is not True:
            await _send_json(
                send, 400, {"error": "force cleanup requires confirm: true"}, cors
            )
            return

        async def run() -> tuple[int, str]:
            try:
                result = await retention.cleanup(mode, body.get("batch_size"))
            except (ValueError, TypeError) as exc:
                return 400, json.dumps({"error": str(exc)})
            return 200, json.dumps(result.to_dict())

        await _handle_endpoint(
            send, run, "application/json", "Error running cleanup", cors
        )

    async def log_streams(
        headers: dict[str, str], receive: Receive, send: Send
    ) -> None:
        if not _admin_authorized(headers, log_streams_token):
            await _send_json(send, 401, {"error": "Unauthorized"}, cors)
            return
        try:
            body = json.loads(await _read_body(receive) or b"null")
        except _BodyTooLarge:
            await _send_json(send, 413, {"error": "Payload Too Large"}, cors)
            return
        except (json.JSONDecodeError, UnicodeDecodeError):
            await _send_json(send, 400, {"error": "body must be JSON"}, cors)
            return

        async def run() -> tuple[int, str]:
            try:
                outcomes = await gateway.submit_log_stream(body)
            except ValidationError as exc:
                return 400, json.dumps({"error": str(exc)})
            results = [{"id": entry_id, **r.to_dict()} for entry_id, r in outcomes]
            return 200, json.dumps({"processed": len(results), "results": results})

        await _handle_endpoint(
            send, run, "application/json", "Error ingesting log stream", cors
        )

    async def export(scope: Scope, headers: dict[str, str], send: Send) -> None:
        if not _admin_authorized(headers, admin_token):
            await _send_json(send, 401, {"error": "Unauthorized"}, cors)
            return
        params = _parse_query_params(scope)

        async def run() -> tuple[int, str]:
            try:
                batch = await exporter.export(
                    _first(params, "format") or "ndjson",
                    _parse_search_params(params),
                    limit=_parse_int_param(params, "limit"),
                    chronological=_parse_bool_param(params, "chronological"),
                    unprocessed_only=_parse_bool_param(params, "unprocessed"),
                    mark_processed=_parse_bool_param(params, "mark_processed"),
                )
            except ValueError as exc:
                return 400, json.dumps({"error": str(exc)})
            return 200, json.dumps(batch.to_dict())

        await _handle_endpoint(
            send, run, "application/json", "Error exporting logs", cors
        )

    async def health() -> tuple[int, str]:
        status = await ledger.current_status()
        return 200, json.dumps({"status": "ok", "quota": status.to_dict()})

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return

        path = scope["path"].rstrip("/") or "/"
        method = scope["method"]
        headers = _request_headers(scope)

        if method == "OPTIONS":
            await _send_response(send, 204, "text/plain", "", cors)
        elif path == "/log":
            if method != "POST":
                await _method_not_allowed(send, cors)
                return
            await submit(headers, receive, send)
        elif path == "/log-streams":
            if method != "POST":
                await _method_not_allowed(send, cors)
                return
            await log_streams(headers, receive, send)
        elif path == "/export":
            if method != "POST":
                await _method_not_allowed(send, cors)
                return
            await export(scope, headers, send)
        elif path == "/cleanup":
            if method != "POST":
                await _method_not_allowed(send, cors)
                return
            await cleanup(headers, receive, send)
        elif method != "GET":
            await _method_not_allowed(send, cors)
        elif path == "/health":
            await _handle_endpoint(
                send, health, "application/json", "Error reading quota status", cors
            )
        elif path == "/stats":
            params = _parse_query_params(scope)

            async def stats() -> tuple[int, str]:
                totals = await correlation.stats(_parse_search_params(params))
                return 200, json.dumps(totals.to_dict())

            await _handle_endpoint(
                send, stats, "application/json", "Error computing log stats", cors
            )
        elif path == "/traces":
            params = _parse_query_params(scope)

            async def traces() -> tuple[int, str]:
                summaries = await correlation.recent_traces(
                    limit=_parse_int_param(params, "limit", 50) or 50,
                    system_area=_parse_system_area_param(params),
                    since=_parse_int_param(params, "since"),
                )
                return 200, json.dumps({"traces": [s.to_dict() for s in summaries]})

            await _handle_endpoint(
                send, traces, "application/json", "Error listing traces", cors
            )
        elif path.startswith("/traces/"):
            trace_id = path[len("/traces/") :]
            params = _parse_query_params(scope)

            async def trace() -> tuple[int, str]:
                view = await correlation.correlate(
                    trace_id, _parse_int_param(params, "limit")
                )
                if view is None:
                    return 404, json.dumps({"error": "Trace Not Found"})
                return 200, json.dumps(view.to_dict())

            await _handle_endpoint(
                send, trace, "application/json", "Error correlating trace", cors
            )
        elif path == "/logs":
            params = _parse_query_params(scope)

            async def logs() -> tuple[int, str]:
                page = await correlation.search(
                    _parse_search_params(params),
                    limit=_parse_int_param(params, "limit"),
                    offset=_parse_int_param(params, "offset", 0) or 0,
                )
                return 200, encode_records(page.records)

            await _handle_endpoint(
                send, logs, "application/x-ndjson", "Error encoding logs endpoint", cors
            )
        else:
            await _send_response(send, 404, "text/plain", "Not Found", cors)

    return app
