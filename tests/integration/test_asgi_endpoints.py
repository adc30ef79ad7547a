"""Integration tests for the raw ASGI adapter."""

import json

import pytest

from logbridge.core.config import IngestionConfig

from tests.helpers import make_payload


@pytest.fixture
def config() -> IngestionConfig:
    return IngestionConfig(window_capacity=10, budget_cap=1000)


class TestSubmitEndpoint:
    """Tests for POST /log."""

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_accepted_submission(self, asgi_client) -> None:
        response = await asgi_client.post("/log", json=make_payload())

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "accepted"
        assert body["trace_id"] == "trace_1"
        assert body["record_id"]

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_cors_headers_on_response(self, asgi_client) -> None:
        response = await asgi_client.post("/log", json=make_payload())

        assert (
            response.headers["access-control-allow-origin"] == "https://app.example.com"
        )

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_duplicate_is_suppressed(self, asgi_client) -> None:
        await asgi_client.post("/log", json=make_payload("same"))
        response = await asgi_client.post("/log", json=make_payload("same"))

        assert response.status_code == 200
        assert response.json() == {
            "status": "suppressed",
            "reason": "duplicate",
            "trace_id": "trace_1",
        }

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_invalid_json_is_rejected(self, asgi_client) -> None:
        response = await asgi_client.post(
            "/log", content=b"{not json", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["reason"] == "validation_error"

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_missing_level_is_rejected(self, asgi_client) -> None:
        payload = make_payload()
        del payload["level"]

        response = await asgi_client.post("/log", json=payload)

        assert response.status_code == 400
        assert response.json()["status"] == "rejected"

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_oversized_body_returns_413(self, asgi_client) -> None:
        response = await asgi_client.post("/log", content=b"x" * (1024 * 1024 + 1))

        assert response.status_code == 413

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_quota_exhaustion_returns_429(self, asgi_client) -> None:
        statuses = []
        for i in range(12):
            response = await asgi_client.post("/log", json=make_payload(f"event {i}"))
            statuses.append(response.status_code)

        assert statuses[:10] == [200] * 10
        assert statuses[-1] == 429

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_critical_record_bypasses_exhausted_quota(self, asgi_client) -> None:
        for i in range(11):
            await asgi_client.post("/log", json=make_payload(f"event {i}"))

        response = await asgi_client.post(
            "/log", json=make_payload("payment failed", level="error", critical=True)
        )

        assert response.status_code == 200
        assert response.json()["status"] == "accepted"

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_get_is_method_not_allowed(self, asgi_client) -> None:
        response = await asgi_client.get("/log")

        assert response.status_code == 405


class TestPreflightAndRouting:
    """Tests for CORS preflight and unknown paths."""

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_options_preflight(self, asgi_client) -> None:
        response = await asgi_client.options("/log")

        assert response.status_code == 204
        assert "POST" in response.headers["access-control-allow-methods"]
        assert "x-system-area" in response.headers["access-control-allow-headers"]

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_unknown_path_returns_404(self, asgi_client) -> None:
        response = await asgi_client.get("/nope")

        assert response.status_code == 404


class TestQueryEndpoints:
    """Tests for /health, /traces and /logs."""

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_health_reports_quota(self, asgi_client) -> None:
        await asgi_client.post("/log", json=make_payload())

        response = await asgi_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["quota"]["global"]["window_total"] == 1
        assert body["quota"]["per_system"]["client"]["window_count"] == 1

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_trace_timeline(self, asgi_client) -> None:
        await asgi_client.post("/log", json=make_payload("second", timestamp=200))
        await asgi_client.post(
            "/log",
            json=make_payload("first", timestamp=100, system_area="server_function"),
        )

        response = await asgi_client.get("/traces/trace_1")

        assert response.status_code == 200
        body = response.json()
        assert [r["message"] for r in body["records"]] == ["first", "second"]
        assert body["systems"] == ["server_function", "client"]
        assert body["time_span"]["duration_ms"] == 100

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_unknown_trace_returns_404(self, asgi_client) -> None:
        response = await asgi_client.get("/traces/missing")

        assert response.status_code == 404
        assert response.json() == {"error": "Trace Not Found"}

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_recent_traces(self, asgi_client) -> None:
        await asgi_client.post("/log", json=make_payload("a", trace_id="t1"))
        await asgi_client.post(
            "/log", json=make_payload("b", trace_id="t2", system_area="edge_worker")
        )

        response = await asgi_client.get(
            "/traces", params={"system_area": "edge_worker"}
        )

        assert response.status_code == 200
        assert [t["trace_id"] for t in response.json()["traces"]] == ["t2"]

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_logs_ndjson(self, asgi_client) -> None:
        await asgi_client.post("/log", json=make_payload("fine"))
        await asgi_client.post("/log", json=make_payload("broke", level="error"))

        response = await asgi_client.get("/logs", params={"level": "error"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/x-ndjson"
        lines = [json.loads(line) for line in response.text.strip().split("\n")]
        assert [line["message"] for line in lines] == ["broke"]

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_logs_empty(self, asgi_client) -> None:
        response = await asgi_client.get("/logs")

        assert response.status_code == 200
        assert response.text == ""


class TestCleanupEndpoint:
    """Tests for POST /cleanup."""

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_requires_admin_token(self, asgi_client) -> None:
        response = await asgi_client.post("/cleanup", json={"mode": "safe"})

        assert response.status_code == 401

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_force_requires_confirmation(self, asgi_client) -> None:
        response = await asgi_client.post(
            "/cleanup", json={"mode": "force"}, headers={"x-admin-token": "s3cret"}
        )

        assert response.status_code == 400

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_invalid_batch_size(self, asgi_client) -> None:
        response = await asgi_client.post(
            "/cleanup",
            json={"mode": "safe", "batch_size": 301},
            headers={"authorization": "Bearer s3cret"},
        )

        assert response.status_code == 400
        assert "batch_size" in response.json()["error"]

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_safe_cleanup_keeps_recent_records(
        self, asgi_client, records
    ) -> None:
        await asgi_client.post("/log", json=make_payload())

        response = await asgi_client.post(
            "/cleanup", json={}, headers={"authorization": "Bearer s3cret"}
        )

        assert response.status_code == 200
        assert response.json()["deleted"] == 0
        assert await records.count_durable() == 1

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_confirmed_force_cleanup(self, asgi_client, records) -> None:
        await asgi_client.post("/log", json=make_payload("a"))
        await asgi_client.post("/log", json=make_payload("b"))

        response = await asgi_client.post(
            "/cleanup",
            json={"mode": "force", "confirm": True, "batch_size": 1},
            headers={"x-admin-token": "s3cret"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "force"
        assert body["deleted"] == 2
        assert body["batches"] >= 2
        assert await records.count_durable() == 0


class TestLogStreamsEndpoint:
    """Tests for POST /log-streams."""

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_requires_stream_token(self, asgi_client) -> None:
        response = await asgi_client.post("/log-streams", json={"logs": []})

        assert response.status_code == 401

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_entries_are_ingested(self, asgi_client, records) -> None:
        body = {
            "logs": [
                {
                    "id": "evt_1",
                    "timestamp": make_payload()["timestamp"],
                    "level": "ERROR",
                    "message": "charge failed",
                    "context": {"requestId": "r42"},
                },
                {"id": "evt_2", "level": "INFO"},
            ]
        }

        response = await asgi_client.post(
            "/log-streams",
            json=body,
            headers={"authorization": "Bearer stream-token"},
        )

        assert response.status_code == 200
        payload = response.json()
        assert payload["processed"] == 2
        first, second = payload["results"]
        assert first["id"] == "evt_1"
        assert first["status"] == "accepted"
        assert first["trace_id"] == "req_r42"
        assert second["status"] == "rejected"
        assert await records.count_durable() == 1

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_missing_logs_array(self, asgi_client) -> None:
        response = await asgi_client.post(
            "/log-streams",
            json={"entries": []},
            headers={"authorization": "Bearer stream-token"},
        )

        assert response.status_code == 400
        assert "logs array" in response.json()["error"]


class TestStatsEndpoint:
    """Tests for GET /stats."""

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_totals_with_filters(self, asgi_client) -> None:
        await asgi_client.post("/log", json=make_payload("a"))
        await asgi_client.post(
            "/log", json=make_payload("b", level="error", trace_id="trace_2")
        )

        everything = await asgi_client.get("/stats")
        errors = await asgi_client.get("/stats", params={"level": "error"})

        assert everything.status_code == 200
        body = everything.json()
        assert body["total"] == 2
        assert body["unique_traces"] == 2
        assert body["by_level"]["error"] == 1
        assert errors.json()["total"] == 1


class TestExportEndpoint:
    """Tests for POST /export."""

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_requires_admin_token(self, asgi_client) -> None:
        response = await asgi_client.post("/export")

        assert response.status_code == 401

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_json_export(self, asgi_client) -> None:
        await asgi_client.post("/log", json=make_payload("a"))

        response = await asgi_client.post(
            "/export",
            params={"format": "json"},
            headers={"x-admin-token": "s3cret"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["format"] == "json"
        assert body["count"] == 1
        assert body["data"][0]["message"] == "a"

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_csv_export(self, asgi_client) -> None:
        await asgi_client.post("/log", json=make_payload("a"))

        response = await asgi_client.post(
            "/export", params={"format": "csv"}, headers={"x-admin-token": "s3cret"}
        )

        assert response.json()["data"].startswith("timestamp,iso_timestamp,")

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_unknown_format(self, asgi_client) -> None:
        response = await asgi_client.post(
            "/export", params={"format": "xml"}, headers={"x-admin-token": "s3cret"}
        )

        assert response.status_code == 400

    @pytest.mark.tier(2)
    @pytest.mark.asgi
    async def test_marked_records_leave_unprocessed_export(self, asgi_client) -> None:
        await asgi_client.post("/log", json=make_payload("a"))
        await asgi_client.post("/log", json=make_payload("b"))
        admin = {"x-admin-token": "s3cret"}

        claimed = await asgi_client.post(
            "/export",
            params={"unprocessed": "true", "mark_processed": "true"},
            headers=admin,
        )
        again = await asgi_client.post(
            "/export", params={"unprocessed": "true"}, headers=admin
        )

        assert claimed.json()["count"] == 2
        assert claimed.json()["marked"] == 2
        assert again.json()["count"] == 0
