"""Ingestion gateway: the single entry point for all producing systems.

A submission flows through validation and redaction, the noise filter,
the fingerprint deduplicator, the quota ledger, and finally the dual
write of the durable and short-lived projections. Any failure after
admission releases the reserved quota and fingerprint before the caller
is told, so a retry is charged exactly once.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from logbridge.core.clock import Clock, now_ms
from logbridge.core.config import IngestionConfig
from logbridge.core.exceptions import (
    QuotaExceededError,
    StorageTransactionError,
    SubmissionTimeoutError,
    ValidationError,
)
from logbridge.core.fingerprint import FingerprintDeduplicator
from logbridge.core.log_streams import parse_log_stream, translate_entry
from logbridge.core.logs import log_exception
from logbridge.core.models import (
    AdmissionDecision,
    FingerprintEntry,
    LogRecord,
    SubmitResult,
    SubmitStatus,
)
from logbridge.core.ports import RecordStoragePort
from logbridge.core.quota import QuotaLedger
from logbridge.core.redaction import NOISE_PATTERNS, is_noise
from logbridge.core.submission import Submission, parse_submission

logger = logging.getLogger(__name__)

SUPPRESSED_DUPLICATE = "duplicate"
SUPPRESSED_NOISE = "noise"
REJECTED_QUOTA_UNAVAILABLE = "quota_unavailable"
BUDGET_WARNING = "budget_warning"


def _new_record_id() -> str:
    return uuid.uuid4().hex


class IngestionGateway:
    """Admits, deduplicates and stores log records from all systems.

    ``submit`` never raises for expected failures; every outcome is a
    SubmitResult so the gateway is safe to call from best-effort paths.
    """

    def __init__(
        self,
        records: RecordStoragePort,
        deduplicator: FingerprintDeduplicator,
        ledger: QuotaLedger,
        config: IngestionConfig | None = None,
        clock: Clock = now_ms,
        id_factory: Callable[[], str] = _new_record_id,
        noise_patterns: Iterable[str] = NOISE_PATTERNS,
    ) -> None:
        self._records = records
        self._dedup = deduplicator
        self._ledger = ledger
        self._config = config or ledger.config
        self._clock = clock
        self._id_factory = id_factory
        self._noise_patterns = tuple(noise_patterns)

    async def submit(
        self,
        payload: Mapping[str, Any],
        metadata: Mapping[str, str] | None = None,
    ) -> SubmitResult:
        """Submit one raw record.

        Args:
            payload: Ingestion fields (level, message, raw_args, timestamp, ...).
            metadata: Request headers used to detect the system area when
                the payload does not declare one.

        Returns:
            Accepted, Suppressed or Rejected(reason).
        """
        try:
            submission = parse_submission(payload, metadata)
        except ValidationError as exc:
            logger.debug("Rejected invalid submission: %s", exc)
            return SubmitResult.rejected(exc.reason, str(exc))
        return await self.submit_validated(submission)

    async def submit_batch(
        self,
        payloads: Iterable[Mapping[str, Any]],
        metadata: Mapping[str, str] | None = None,
    ) -> list[SubmitResult]:
        """Submit several raw records in order, one result per payload.

        Each payload is admitted, deduplicated and charged on its own; a
        rejected entry does not stop the ones after it.
        """
        return [await self.submit(payload, metadata) for payload in payloads]

    async def submit_log_stream(
        self, body: Any
    ) -> list[tuple[str | None, SubmitResult]]:
        """Ingest a hosted-backend log stream batch.

        Returns:
            ``(entry id, result)`` per entry, in delivery order.

        Raises:
            ValidationError: If ``body`` carries no ``logs`` list.
        """
        entries = parse_log_stream(body)
        outcomes: list[tuple[str | None, SubmitResult]] = []
        for entry in entries:
            entry_id = entry.get("id") if isinstance(entry, Mapping) else None
            try:
                payload = translate_entry(entry)
            except ValidationError as exc:
                result = SubmitResult.rejected(exc.reason, str(exc))
            else:
                result = await self.submit(payload)
            outcomes.append((entry_id, result))
        accepted = sum(1 for _, r in outcomes if r.status is SubmitStatus.ACCEPTED)
        logger.info(
            "Log stream batch: %d of %d entries accepted", accepted, len(entries)
        )
        return outcomes

    async def submit_validated(self, submission: Submission) -> SubmitResult:
        """Run admission and storage for an already validated submission.

        The whole fingerprint, admission and write sequence shares one
        ``submit_timeout_s`` deadline. On expiry every reservation made so
        far is released before the timeout is reported.
        """
        if is_noise(submission.message, self._noise_patterns):
            return SubmitResult.suppressed(SUPPRESSED_NOISE, submission.trace_id)

        held = _Reservation()
        try:
            async with asyncio.timeout(self._config.submit_timeout_s):
                return await self._admit_and_write(submission, held)
        except TimeoutError:
            logger.warning(
                "Submission from %s timed out after %.3fs",
                submission.system_area.value,
                self._config.submit_timeout_s,
            )
            await self._compensate_bounded(held)
            return SubmitResult.rejected(
                SubmissionTimeoutError.reason, "submit deadline exceeded"
            )

    async def _admit_and_write(
        self, submission: Submission, held: "_Reservation"
    ) -> SubmitResult:
        try:
            entry = await self._dedup.check(submission.system_area, submission.message)
        except StorageTransactionError as exc:
            logger.warning("Fingerprint check failed: %s", exc)
            return SubmitResult.rejected(exc.reason, "fingerprint store unavailable")
        if entry.suppressed_count > 0:
            return SubmitResult.suppressed(SUPPRESSED_DUPLICATE, submission.trace_id)
        held.entry = entry

        try:
            decision = await self._admit(submission)
        except QuotaExceededError as exc:
            await self._compensate(held)
            logger.info(
                "Quota rejected %s record: %s", submission.system_area.value, exc
            )
            return SubmitResult.rejected(exc.reason, str(exc))
        except StorageTransactionError as exc:
            await self._compensate(held)
            logger.warning("Quota ledger unavailable: %s", exc)
            return SubmitResult.rejected(REJECTED_QUOTA_UNAVAILABLE, str(exc))
        held.decision = decision

        record = self._build_record(submission)
        held.record = record
        try:
            await self._write(record)
        except StorageTransactionError as exc:
            await self._compensate(held)
            logger.warning("Dual write failed for %s: %s", record.id, exc)
            return SubmitResult.rejected(exc.reason, str(exc))
        except Exception:
            await self._compensate(held)
            log_exception("Unexpected failure writing log record")
            return SubmitResult.rejected(StorageTransactionError.reason)
        held.clear()

        warning = BUDGET_WARNING if decision.budget_warning else None
        return SubmitResult.accepted(record.id, record.trace_id, warning)

    async def _admit(self, submission: Submission) -> AdmissionDecision:
        decision = await self._ledger.try_admit(
            submission.system_area, submission.critical
        )
        if not decision:
            raise QuotaExceededError(decision.reason or "quota exceeded")
        return decision

    def _build_record(self, submission: Submission) -> LogRecord:
        return LogRecord(
            id=self._id_factory(),
            trace_id=submission.trace_id,
            user_id=submission.user_id,
            system_area=submission.system_area,
            level=submission.level,
            message=submission.message,
            raw_args=submission.raw_args,
            timestamp=submission.timestamp,
            received_at=self._clock(),
            stack_trace=submission.stack_trace,
            critical=submission.critical,
        )

    async def _write(self, record: LogRecord) -> None:
        """Dual write with bounded retries on transient storage errors."""
        expires_at = record.received_at + self._config.short_lived_ttl_ms
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._config.storage_retry_attempts),
            wait=wait_exponential(multiplier=0.05, max=1),
            retry=retry_if_exception_type(StorageTransactionError),
            reraise=True,
        ):
            with attempt:
                await self._records.write(record, expires_at)

    async def _compensate(self, held: "_Reservation") -> None:
        """Undo every side effect held by a failed submission, best effort.

        Each reservation is detached before it is released, so running
        this twice for the same submission releases nothing twice.
        """
        record, held.record = held.record, None
        if record is not None:
            # A cancelled write may still commit in the backend thread.
            try:
                await self._records.discard(record.id)
            except Exception:
                log_exception(f"Could not discard record {record.id}")
        decision, held.decision = held.decision, None
        if decision is not None:
            try:
                await self._ledger.release(decision)
            except Exception:
                log_exception("Could not release reserved quota")
        entry, held.entry = held.entry, None
        if entry is not None:
            await self._release_fingerprint(entry)

    async def _compensate_bounded(self, held: "_Reservation") -> None:
        try:
            await asyncio.wait_for(
                self._compensate(held), timeout=self._config.submit_timeout_s
            )
        except asyncio.TimeoutError:
            logger.error("Compensation for a timed-out submission did not finish")

    async def _release_fingerprint(self, entry: FingerprintEntry) -> None:
        try:
            await self._dedup.release(entry)
        except Exception:
            log_exception("Could not release fingerprint")


@dataclass
class _Reservation:
    """Side effects a submission holds until it is accepted."""

    entry: FingerprintEntry | None = None
    decision: AdmissionDecision | None = None
    record: LogRecord | None = None

    def clear(self) -> None:
        self.entry = None
        self.decision = None
        self.record = None
