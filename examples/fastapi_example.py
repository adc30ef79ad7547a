"""Example FastAPI application hosting the ingestion endpoints.

Run with:
    uvicorn examples.fastapi_example:app --reload

Endpoints:
    POST /log                    - submit one record (JSON body)
    /health                      - quota ledger snapshot
    /traces                      - recently active traces
    /traces/<trace_id>           - correlated timeline for one trace
    /logs?level=<level>          - NDJSON search (also system_area, q, since, ...)
    /checkout                    - demo route that logs through the bridge

Reporting:
    The app's own ``logging`` output is forwarded to ``POST /log`` by a
    LogBridgeHandler, tagged as a server function. Try::

        curl -X POST localhost:8000/log -H 'content-type: application/json' \\
            -d '{"level": "error", "message": "boom", "timestamp": 1768435200000}'
"""

import logging
import os

from fastapi import FastAPI

from logbridge import LogBridgeHandler, LogReporter
from logbridge.adapters.frameworks.fastapi import create_ingestion_router
from logbridge.app import build_components

bridge = build_components()

app = FastAPI(title="LogBridge Example")
app.include_router(
    create_ingestion_router(bridge.gateway, bridge.correlation, bridge.ledger)
)

reporter = LogReporter(
    os.environ.get("LOGBRIDGE_EXAMPLE_URL", "http://127.0.0.1:8000/log"),
    system_area="server_function",
)
logger = logging.getLogger("example.checkout")
logger.addHandler(LogBridgeHandler(reporter, level=logging.INFO))
logger.setLevel(logging.INFO)


@app.get("/checkout")
async def checkout(user_id: str = "demo-user") -> dict[str, str]:
    """Log a checkout event; it shows up under /traces shortly after."""
    logger.info(
        "checkout started", extra={"user_id": user_id, "trace_id": f"trace-{user_id}"}
    )
    return {"trace_id": f"trace-{user_id}"}


@app.on_event("shutdown")
async def shutdown() -> None:
    await reporter.flush()
    await bridge.close()
