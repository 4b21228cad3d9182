"""Record enrichment pipeline.

Runs every record of the input table through the extraction engine in input
order, merges the categorised contacts into the record's reserved output
columns, checkpoints the whole table and reports progress after each record,
then waits out the rate limit before the next one.

A failing record never stops the job: its error goes to the ``notes``
column and the pipeline moves on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from core.exceptions import PerRecordExtractionError
from core.signals import ProgressFile
from enrichment.extraction_engine import ExtractedContacts, ExtractionEngine
from Utils.contact_parsing import ContactEnrichment, categorize_contacts
from Utils.csv_table import Record, Table, write_table
from Utils.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

__all__ = [
    "RecordEnrichmentPipeline",
    "RecordOutcome",
    "PipelineSummary",
    "OUTPUT_COLUMNS",
]

# Reserved output columns, by normalised header name. Any other column is
# passed through untouched.
OUTPUT_COLUMNS: tuple[str, ...] = (
    "personal_email",
    "other_personal_emails",
    "work_email",
    "work_email_status",
    "other_work_emails",
    "phone_number",
    "other_phone_numbers",
    "notes",
)


# ---------------------------------------------------------------------------
# Data Classes
# ---------------------------------------------------------------------------


@dataclass
class RecordOutcome:
    """Result of one record: exactly one of ``enrichment`` / ``error`` is set.

    Attributes:
        row_index: 0-based index of the record.
        enrichment: Categorised contacts on success.
        error: Failure captured for the notes column.
        source: Where the contacts came from (see ``ExtractedContacts``).
    """

    row_index: int
    enrichment: Optional[ContactEnrichment] = None
    error: Optional[PerRecordExtractionError] = None
    source: str = "none"

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PipelineSummary:
    """Counts reported when the pipeline finishes."""

    total: int = 0
    processed: int = 0
    enriched: int = 0
    failed: int = 0


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class RecordEnrichmentPipeline:
    """Sequential per-record enrichment with checkpointing.

    Args:
        engine: Extraction engine bound to the worker's page.
        table: Input table; enriched in place.
        output_path: Checkpoint target, rewritten after every record.
        progress: Progress channel read by the control process.
        rate_limiter: Pacing between records.
        name_column: Column index of the person name.
        company_column: Column index of the company name.
        error_note_limit: Maximum length of a notes-column error message.
    """

    def __init__(
        self,
        engine: ExtractionEngine,
        table: Table,
        output_path: Union[str, Path],
        progress: ProgressFile,
        rate_limiter: RateLimiter,
        name_column: int = 0,
        company_column: int = 1,
        error_note_limit: int = 500,
    ) -> None:
        self.engine = engine
        self.table = table
        self.output_path = Path(output_path)
        self.progress = progress
        self.rate_limiter = rate_limiter
        self.name_column = name_column
        self.company_column = company_column
        self.error_note_limit = error_note_limit

    async def run(self) -> PipelineSummary:
        """Enrich every record in input order.

        Returns:
            PipelineSummary with processed/enriched/failed counts.
        """
        total = len(self.table)
        summary = PipelineSummary(total=total)
        if total == 0:
            write_table(self.table, self.output_path)
            self.progress.write(0, 0)
            return summary

        for index, record in enumerate(self.table.records()):
            full_name = record.value_at(self.name_column).strip()
            company_name = record.value_at(self.company_column).strip()
            logger.info(
                "[%d/%d] processing Name: %s, Company: %s",
                index + 1,
                total,
                full_name,
                company_name,
            )

            outcome = await self.process_record(index, full_name, company_name)
            self.merge(record, outcome)

            summary.processed += 1
            if not outcome.ok:
                summary.failed += 1
            elif outcome.enrichment and outcome.enrichment.found_anything:
                summary.enriched += 1

            write_table(self.table, self.output_path)
            self.progress.write(index + 1, total)

            if index + 1 < total:
                await self.rate_limiter.wait()

        logger.info(
            "Pipeline finished | processed=%d enriched=%d failed=%d output=%s",
            summary.processed,
            summary.enriched,
            summary.failed,
            self.output_path,
        )
        return summary

    async def process_record(
        self, index: int, full_name: str, company_name: str
    ) -> RecordOutcome:
        """Search, extract and categorise one record, capturing any failure."""
        try:
            if index > 0:
                await self.engine.reset_search()
            await self.engine.search(full_name, company_name)
            contacts: ExtractedContacts = await self.engine.extract()
            enrichment = categorize_contacts(contacts.emails, contacts.phones)
        except Exception as exc:  # noqa: BLE001
            message = str(exc) or exc.__class__.__name__
            logger.error("Error processing row %d: %s", index, message)
            return RecordOutcome(
                row_index=index,
                error=PerRecordExtractionError(index, message[: self.error_note_limit]),
            )
        logger.info(
            "Row %d: %d email(s), %d phone(s) via %s",
            index,
            len(contacts.emails),
            len(contacts.phones),
            contacts.source,
        )
        return RecordOutcome(row_index=index, enrichment=enrichment, source=contacts.source)

    @staticmethod
    def merge(record: Record, outcome: RecordOutcome) -> None:
        """Write an outcome into the record's reserved columns.

        Populated fields overwrite; empty fields keep the record's prior
        value. ``work_email_status`` is always written after a successful
        extraction. A failure only touches ``notes``.
        """
        if outcome.error is not None:
            if "notes" in record:
                record["notes"] = str(outcome.error)
            return

        enrichment = outcome.enrichment or ContactEnrichment()
        for column in OUTPUT_COLUMNS:
            if column == "notes" or column not in record:
                continue
            value = getattr(enrichment, column)
            if column == "work_email_status" or value:
                record[column] = value
