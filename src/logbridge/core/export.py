"""Export of durable records for batch analysis.

An export reads durable copies, encodes them in the requested format
and may flag them as processed, so a recurring job can claim only the
records it has not seen yet.
"""

import logging
from enum import Enum

from logbridge.core.config import IngestionConfig
from logbridge.core.encoding.ndjson import encode_records
from logbridge.core.encoding.text import encode_csv, encode_readable, iso_timestamp
from logbridge.core.models import ExportBatch, LogRecord, SearchFilters
from logbridge.core.ports import RecordStoragePort

logger = logging.getLogger(__name__)


class ExportFormat(str, Enum):
    NDJSON = "ndjson"
    JSON = "json"
    CSV = "csv"
    READABLE = "readable"


def _json_rows(records: list[LogRecord]) -> list[dict]:
    rows = []
    for record in records:
        row = record.to_dict()
        row["iso_timestamp"] = iso_timestamp(record.timestamp)
        rows.append(row)
    return rows


class LogExporter:
    """Encodes durable records and tracks which ones were handed off."""

    def __init__(
        self, records: RecordStoragePort, config: IngestionConfig | None = None
    ) -> None:
        self._records = records
        self._config = config or IngestionConfig()

    async def export(
        self,
        fmt: ExportFormat | str = ExportFormat.NDJSON,
        filters: SearchFilters | None = None,
        limit: int | None = None,
        chronological: bool = False,
        unprocessed_only: bool = False,
        mark_processed: bool = False,
    ) -> ExportBatch:
        """Export up to ``limit`` durable records.

        Args:
            fmt: ``ndjson``, ``json``, ``csv`` or ``readable``.
            filters: Search predicates; None exports everything.
            limit: Maximum records, clamped to ``max_page_size``.
            chronological: Oldest first instead of newest first.
            unprocessed_only: Skip records already flagged as processed.
            mark_processed: Flag every exported record as processed.

        Raises:
            ValueError: If ``fmt`` is unknown.
        """
        fmt = ExportFormat(fmt)
        if limit is None or limit <= 0:
            limit = self._config.max_page_size
        limit = min(limit, self._config.max_page_size)
        stored = await self._records.read_durable(
            filters or SearchFilters(),
            limit,
            newest_first=not chronological,
            processed=False if unprocessed_only else None,
        )
        records = [s.record for s in stored]

        data: object
        if fmt is ExportFormat.JSON:
            data = _json_rows(records)
        elif fmt is ExportFormat.CSV:
            data = encode_csv(records)
        elif fmt is ExportFormat.READABLE:
            data = encode_readable(records)
        else:
            data = encode_records(records)

        marked = 0
        if mark_processed and records:
            marked = await self._records.mark_processed([r.id for r in records])
            logger.info("Exported %d records, %d newly processed", len(records), marked)
        return ExportBatch(
            format=fmt.value, count=len(records), data=data, marked=marked
        )
