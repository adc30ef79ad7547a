"""Cross-system timeline reconstruction and filtered search.

Records are merged from both projections and ordered by producer
timestamp. Clock skew between producing systems is not corrected; a
record stamped early by a fast clock sorts early.
"""

from collections import Counter

from logbridge.core.clock import Clock, now_ms
from logbridge.core.config import IngestionConfig
from logbridge.core.models import (
    CorrelationView,
    LogLevel,
    LogRecord,
    LogStats,
    SearchFilters,
    SearchPage,
    StoredRecord,
    SystemArea,
    TimeRange,
    TimeSpan,
    TraceSummary,
)
from logbridge.core.ports import RecordStoragePort


def _order_key(record: LogRecord) -> tuple[int, int, str]:
    return (record.timestamp, record.received_at, record.id)


def merge_projections(
    durable: list[StoredRecord], short_lived: list[StoredRecord]
) -> list[LogRecord]:
    """Merge both projections, one entry per record id, durable copy wins."""
    merged: dict[str, LogRecord] = {}
    for stored in durable:
        merged[stored.record.id] = stored.record
    for stored in short_lived:
        merged.setdefault(stored.record.id, stored.record)
    return sorted(merged.values(), key=_order_key)


class CorrelationEngine:
    """Read-side queries over both LogRecord projections."""

    def __init__(
        self,
        records: RecordStoragePort,
        config: IngestionConfig | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self._records = records
        self._config = config or IngestionConfig()
        self._clock = clock

    def _page_size(self, limit: int | None) -> int:
        if limit is None or limit <= 0:
            return self._config.max_page_size
        return min(limit, self._config.max_page_size)

    async def by_trace(
        self, trace_id: str, limit: int | None = None
    ) -> list[LogRecord]:
        """All records for ``trace_id`` ordered by producer timestamp."""
        records, _ = await self._trace_records(trace_id, self._page_size(limit))
        return records

    async def _trace_records(
        self, trace_id: str, cap: int
    ) -> tuple[list[LogRecord], bool]:
        filters = SearchFilters(trace_id=trace_id)
        durable = await self._records.read_durable(filters, cap + 1)
        short_lived = await self._records.read_short_lived(
            filters, cap + 1, now=self._clock()
        )
        merged = merge_projections(durable, short_lived)
        return merged[:cap], len(merged) > cap

    async def correlate(
        self, trace_id: str, limit: int | None = None
    ) -> CorrelationView | None:
        """Timeline plus per-system and per-level summary for one trace.

        Returns None if no record carries ``trace_id``.
        """
        records, truncated = await self._trace_records(
            trace_id, self._page_size(limit)
        )
        if not records:
            return None
        systems = tuple(dict.fromkeys(r.system_area for r in records))
        by_level = Counter(r.level.value for r in records)
        return CorrelationView(
            trace_id=trace_id,
            records=tuple(records),
            systems=systems,
            time_span=TimeSpan(start=records[0].timestamp, end=records[-1].timestamp),
            by_system=dict(Counter(r.system_area.value for r in records)),
            by_level=dict(by_level),
            error_count=by_level.get(LogLevel.ERROR.value, 0),
            warning_count=by_level.get(LogLevel.WARN.value, 0),
            truncated=truncated,
        )

    async def search(
        self,
        filters: SearchFilters | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> SearchPage:
        """Filtered search across both projections, bounded by the page cap."""
        filters = filters or SearchFilters()
        page_size = self._page_size(limit)
        offset = max(0, offset)
        window = offset + page_size + 1
        durable = await self._records.read_durable(filters, window)
        short_lived = await self._records.read_short_lived(
            filters, window, now=self._clock()
        )
        merged = merge_projections(durable, short_lived)
        page = merged[offset : offset + page_size]
        return SearchPage(
            records=tuple(page),
            limit=page_size,
            offset=offset,
            has_more=len(merged) > offset + page_size,
        )

    async def recent_traces(
        self,
        limit: int = 50,
        system_area: SystemArea | None = None,
        since: int | None = None,
    ) -> list[TraceSummary]:
        """Summaries of traces seen in the short-lived projection.

        Most recently active traces first.
        """
        limit = self._page_size(limit)
        now = self._clock()
        filters = SearchFilters(
            system_area=system_area,
            time_range=TimeRange(start=since) if since is not None else None,
        )
        stored = await self._records.read_short_lived(
            filters, self._config.max_page_size * 10, now=now, newest_first=True
        )
        traces: dict[str, list[LogRecord]] = {}
        for item in stored:
            traces.setdefault(item.record.trace_id, []).append(item.record)

        summaries = [
            TraceSummary(
                trace_id=trace_id,
                systems=tuple(dict.fromkeys(r.system_area for r in records)),
                record_count=len(records),
                first_seen=min(r.timestamp for r in records),
                last_seen=max(r.timestamp for r in records),
                has_errors=any(r.level == LogLevel.ERROR for r in records),
                user_id=records[0].user_id,
            )
            for trace_id, records in traces.items()
        ]
        summaries.sort(key=lambda s: s.last_seen, reverse=True)
        return summaries[:limit]

    async def stats(self, filters: SearchFilters | None = None) -> LogStats:
        """Totals over the durable projection.

        Counts records, distinct traces and users, per-system and per-level
        records, processed records and the producer-time range.
        """
        return await self._records.stats_durable(filters or SearchFilters())
