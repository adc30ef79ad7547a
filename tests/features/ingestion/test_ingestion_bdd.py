"""BDD tests for the ingestion pipeline."""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest
from pytest_bdd import given, parsers, scenarios, then, when

from logbridge.adapters.storage.in_memory import (
    InMemoryFingerprintStore,
    InMemoryQuotaStore,
    InMemoryRecordStorage,
)
from logbridge.core.config import IngestionConfig
from logbridge.core.correlation import CorrelationEngine
from logbridge.core.fingerprint import FingerprintDeduplicator
from logbridge.core.gateway import IngestionGateway
from logbridge.core.models import CleanupResult, SubmitResult, SubmitStatus
from logbridge.core.quota import QuotaLedger
from logbridge.core.retention import RetentionManager

from tests.helpers import START_MS, FakeClock, make_payload

scenarios("ingestion.feature")

pytestmark = [pytest.mark.tier(2)]

_COUNTED = r"(?P<count>\d+) submissions? (?:is|are)"


@dataclass
class IngestionScenarioContext:
    """Shared state between steps in an ingestion scenario."""

    clock: FakeClock = field(default_factory=FakeClock)
    config: IngestionConfig = field(default_factory=IngestionConfig)
    records: InMemoryRecordStorage = field(default_factory=InMemoryRecordStorage)
    fingerprints: InMemoryFingerprintStore = field(
        default_factory=InMemoryFingerprintStore
    )
    quota_store: InMemoryQuotaStore = field(default_factory=InMemoryQuotaStore)
    gateway: IngestionGateway | None = None
    ledger: QuotaLedger | None = None
    correlation: CorrelationEngine | None = None
    retention: RetentionManager | None = None
    results: list[SubmitResult] = field(default_factory=list)
    cleanup: CleanupResult | None = None


@pytest.fixture
def ctx() -> IngestionScenarioContext:
    """Fresh scenario context for each test."""
    return IngestionScenarioContext()


def run_async(coro: Any) -> Any:
    """Run a coroutine synchronously."""
    return asyncio.run(coro)


def _submit(ctx: IngestionScenarioContext, payload: dict[str, Any]) -> None:
    assert ctx.gateway is not None
    ctx.results.append(run_async(ctx.gateway.submit(payload)))


def _count(ctx: IngestionScenarioContext, status: SubmitStatus, reason=None) -> int:
    return sum(
        1
        for r in ctx.results
        if r.status is status and (reason is None or r.reason == reason)
    )


# === Background Steps ===
@given(
    parsers.parse(
        "a gateway with a window capacity of {capacity:d} and a budget of {budget:d}"
    )
)
def step_gateway(ctx: IngestionScenarioContext, capacity: int, budget: int) -> None:
    ctx.config = IngestionConfig(window_capacity=capacity, budget_cap=budget)
    ctx.ledger = QuotaLedger(ctx.quota_store, ctx.config, clock=ctx.clock)
    dedup = FingerprintDeduplicator(
        ctx.fingerprints, window_ms=ctx.config.dedup_window_ms, clock=ctx.clock
    )
    ctx.gateway = IngestionGateway(
        ctx.records, dedup, ctx.ledger, ctx.config, clock=ctx.clock
    )
    ctx.correlation = CorrelationEngine(ctx.records, ctx.config, clock=ctx.clock)
    ctx.retention = RetentionManager(
        ctx.records, ctx.fingerprints, ctx.config, clock=ctx.clock
    )


# === Submission Steps ===
@when(
    parsers.parse(
        'the {system} submits "{message}" at {offset:d} on trace "{trace_id}"'
    )
)
def step_submit_on_trace(
    ctx: IngestionScenarioContext,
    system: str,
    message: str,
    offset: int,
    trace_id: str,
) -> None:
    _submit(
        ctx,
        make_payload(
            message,
            system_area=system,
            timestamp=START_MS + offset,
            trace_id=trace_id,
        ),
    )


@when(parsers.parse('the client submits "{message}" {times:d} times'))
def step_submit_repeated(
    ctx: IngestionScenarioContext, message: str, times: int
) -> None:
    for _ in range(times):
        _submit(ctx, make_payload(message))


@when(parsers.parse("the client submits {count:d} distinct messages"))
def step_submit_distinct(ctx: IngestionScenarioContext, count: int) -> None:
    for i in range(count):
        _submit(ctx, make_payload(f"step {i} completed"))


@when(parsers.parse('the client submits a critical "{message}"'))
def step_submit_critical(ctx: IngestionScenarioContext, message: str) -> None:
    _submit(ctx, make_payload(message, level="error", critical=True))


@when("the dedup window elapses")
def step_window_elapses(ctx: IngestionScenarioContext) -> None:
    ctx.clock.advance(ctx.config.dedup_window_ms)


@when(parsers.parse("a force cleanup runs with batch size {size:d}"))
def step_force_cleanup(ctx: IngestionScenarioContext, size: int) -> None:
    assert ctx.retention is not None
    ctx.cleanup = run_async(ctx.retention.cleanup("force", size))


# === Assertion Steps ===
@then(parsers.parse('the timeline for trace "{trace_id}" reads "{expected}"'))
def step_timeline_reads(
    ctx: IngestionScenarioContext, trace_id: str, expected: str
) -> None:
    assert ctx.correlation is not None
    records = run_async(ctx.correlation.by_trace(trace_id))
    assert ", ".join(r.message for r in records) == expected


@then(parsers.parse('the timeline for trace "{trace_id}" spans {count:d} systems'))
def step_timeline_systems(
    ctx: IngestionScenarioContext, trace_id: str, count: int
) -> None:
    assert ctx.correlation is not None
    view = run_async(ctx.correlation.correlate(trace_id))
    assert view is not None
    assert len(view.systems) == count


@then(parsers.re(rf"{_COUNTED} accepted"))
def step_accepted(ctx: IngestionScenarioContext, count: str) -> None:
    assert _count(ctx, SubmitStatus.ACCEPTED) == int(count)


@then(parsers.re(rf'{_COUNTED} suppressed as "(?P<reason>\w+)"'))
def step_suppressed(ctx: IngestionScenarioContext, count: str, reason: str) -> None:
    assert _count(ctx, SubmitStatus.SUPPRESSED, reason) == int(count)


@then(parsers.re(rf'{_COUNTED} rejected as "(?P<reason>\w+)"'))
def step_rejected(ctx: IngestionScenarioContext, count: str, reason: str) -> None:
    assert _count(ctx, SubmitStatus.REJECTED, reason) == int(count)


@then(parsers.parse("the durable store holds {count:d} records"))
def step_durable_count(ctx: IngestionScenarioContext, count: int) -> None:
    assert run_async(ctx.records.count_durable()) == count


@then(parsers.parse('the stored message does not contain "{secret}"'))
def step_redacted(ctx: IngestionScenarioContext, secret: str) -> None:
    assert ctx.correlation is not None
    page = run_async(ctx.correlation.search())
    assert len(page.records) == 1
    assert secret not in page.records[0].message


@then(parsers.parse("the client has borrowed {slots:d} slots"))
def step_borrowed(ctx: IngestionScenarioContext, slots: int) -> None:
    assert ctx.ledger is not None
    status = run_async(ctx.ledger.current_status())
    usage = {u.system_area.value: u for u in status.per_system}
    assert usage["client"].borrowed == slots


@then(parsers.parse("the cleanup used {batches:d} batches"))
def step_cleanup_batches(ctx: IngestionScenarioContext, batches: int) -> None:
    assert ctx.cleanup is not None
    assert ctx.cleanup.batches == batches
