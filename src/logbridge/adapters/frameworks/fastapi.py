"""FastAPI adapter for the ingestion gateway."""

import json

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse

from logbridge.adapters.frameworks.asgi import status_for_result
from logbridge.core.classifier import parse_system_area
from logbridge.core.correlation import CorrelationEngine
from logbridge.core.encoding.ndjson import encode_records
from logbridge.core.gateway import IngestionGateway
from logbridge.core.models import SearchFilters, SubmitResult, TimeRange
from logbridge.core.quota import QuotaLedger
from logbridge.core.submission import LEVEL_ALIASES


def _build_filters(
    system_area: str | None,
    level: str | None,
    user_id: str | None,
    trace_id: str | None,
    since: int | None,
    until: int | None,
    q: str | None,
) -> SearchFilters:
    time_range = None
    if since is not None or until is not None:
        time_range = TimeRange(start=since, end=until)
    return SearchFilters(
        system_area=parse_system_area(system_area),
        level=LEVEL_ALIASES.get(level.lower()) if level else None,
        user_id=user_id,
        trace_id=trace_id,
        time_range=time_range,
        text=q,
    )


def create_ingestion_router(
    gateway: IngestionGateway,
    correlation: CorrelationEngine,
    ledger: QuotaLedger,
) -> APIRouter:
    """Create a FastAPI router with the ingestion and query endpoints.

    Args:
        gateway: Ingestion gateway handling submissions.
        correlation: Engine answering trace and search queries.
        ledger: Quota ledger reported by the health endpoint.

    Returns:
        APIRouter with the ingestion and query endpoints configured.
    """
    router = APIRouter()

    @router.post("/log")
    async def submit_log(request: Request) -> JSONResponse:
        """Submit one log record."""
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            result = SubmitResult.rejected("validation_error", "body must be JSON")
            return JSONResponse(result.to_dict(), status_code=400)
        result = await gateway.submit(payload, dict(request.headers))
        return JSONResponse(result.to_dict(), status_code=status_for_result(result))

    @router.get("/health")
    async def health() -> JSONResponse:
        status = await ledger.current_status()
        return JSONResponse({"status": "ok", "quota": status.to_dict()})

    @router.get("/traces")
    async def recent_traces(
        limit: int = Query(default=50, ge=1),
        system_area: str | None = Query(default=None),
        since: int | None = Query(default=None, ge=0),
    ) -> JSONResponse:
        """Return recently active traces, newest first."""
        summaries = await correlation.recent_traces(
            limit=limit, system_area=parse_system_area(system_area), since=since
        )
        return JSONResponse({"traces": [s.to_dict() for s in summaries]})

    @router.get("/traces/{trace_id}")
    async def get_trace(
        trace_id: str, limit: int | None = Query(default=None, ge=1)
    ) -> JSONResponse:
        """Return the correlated timeline for one trace."""
        view = await correlation.correlate(trace_id, limit)
        if view is None:
            return JSONResponse({"error": "Trace Not Found"}, status_code=404)
        return JSONResponse(view.to_dict())

    @router.get("/logs")
    async def search_logs(
        system_area: str | None = Query(default=None),
        level: str | None = Query(default=None),
        user_id: str | None = Query(default=None),
        trace_id: str | None = Query(default=None),
        since: int | None = Query(default=None, ge=0),
        until: int | None = Query(default=None, ge=0),
        q: str | None = Query(default=None),
        limit: int | None = Query(default=None, ge=1),
        offset: int = Query(default=0, ge=0),
    ) -> Response:
        """Return matching records in NDJSON format, ordered by timestamp."""
        filters = _build_filters(system_area, level, user_id, trace_id, since, until, q)
        page = await correlation.search(filters, limit=limit, offset=offset)
        return Response(
            content=encode_records(page.records),
            media_type="application/x-ndjson",
        )

    @router.get("/stats")
    async def log_stats(
        system_area: str | None = Query(default=None),
        level: str | None = Query(default=None),
        user_id: str | None = Query(default=None),
        trace_id: str | None = Query(default=None),
        since: int | None = Query(default=None, ge=0),
        until: int | None = Query(default=None, ge=0),
        q: str | None = Query(default=None),
    ) -> JSONResponse:
        """Return totals over the durable records matching the filters."""
        filters = _build_filters(system_area, level, user_id, trace_id, since, until, q)
        stats = await correlation.stats(filters)
        return JSONResponse(stats.to_dict())

    return router
