"""Worker-side Playwright enrichment: selectors, extraction, pipeline, session."""

from enrichment.selectors import SelectorConfig, resolve_column
from enrichment.extraction_engine import (
    EngineTiming,
    ExtractedContacts,
    ExtractionEngine,
)
from enrichment.pipeline import (
    OUTPUT_COLUMNS,
    PipelineSummary,
    RecordEnrichmentPipeline,
    RecordOutcome,
)
from enrichment.worker_session import (
    WorkerOptions,
    WorkerSession,
    WorkerState,
    parse_cookie_string,
)

__all__ = [
    "SelectorConfig",
    "resolve_column",
    "EngineTiming",
    "ExtractedContacts",
    "ExtractionEngine",
    "OUTPUT_COLUMNS",
    "PipelineSummary",
    "RecordEnrichmentPipeline",
    "RecordOutcome",
    "WorkerOptions",
    "WorkerSession",
    "WorkerState",
    "parse_cookie_string",
]
