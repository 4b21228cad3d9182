"""Error taxonomy shared by the control process and the worker process.

Job-level errors (``ConfigurationError``, ``LoginTimeoutError``,
``WorkerProcessError``) end a job in the ``error`` state and are never
retried. ``PerRecordExtractionError`` is recovered inside the enrichment
pipeline and only ever lands in a record's notes column. The request errors
(``JobNotFound``, ``JobNotReady``, ``OutputMissing``) are mapped to HTTP
responses by ``api/api_server.py``.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "EnrichmentAgentError",
    "ConfigurationError",
    "PerRecordExtractionError",
    "LoginTimeoutError",
    "WorkerProcessError",
    "JobNotFound",
    "JobNotReady",
    "OutputMissing",
]


class EnrichmentAgentError(Exception):
    """Base class for every error raised by the enrichment agent."""


# ---------------------------------------------------------------------------
# Worker / job-level errors
# ---------------------------------------------------------------------------


class ConfigurationError(EnrichmentAgentError):
    """Required extraction configuration is missing or invalid.

    Raised before any record is processed and aborts the whole job.
    """


class PerRecordExtractionError(EnrichmentAgentError):
    """A failure while enriching a single record.

    Attributes:
        row_index: 0-based index of the record in the input table.
    """

    def __init__(self, row_index: int, message: str) -> None:
        super().__init__(message)
        self.row_index = row_index


class LoginTimeoutError(EnrichmentAgentError):
    """Manual login was not confirmed with a start signal in time."""


class WorkerProcessError(EnrichmentAgentError):
    """The worker process exited with a non-zero code.

    Attributes:
        exit_code: Process exit code, or ``None`` if the worker never started.
    """

    def __init__(self, message: str, exit_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


# ---------------------------------------------------------------------------
# Control-process request errors
# ---------------------------------------------------------------------------


class JobNotFound(EnrichmentAgentError):
    """No job is registered under the requested id."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class JobNotReady(EnrichmentAgentError):
    """The job is still queued or running."""

    def __init__(self, job_id: str, status: str) -> None:
        super().__init__(f"Job {job_id} is still {status}")
        self.job_id = job_id
        self.status = status


class OutputMissing(EnrichmentAgentError):
    """The job never wrote an output checkpoint."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"No output has been written for job {job_id}")
        self.job_id = job_id
