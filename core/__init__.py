"""Control-process core: job model, registry, scheduler and signal channel."""

from core.exceptions import (
    ConfigurationError,
    EnrichmentAgentError,
    JobNotFound,
    JobNotReady,
    LoginTimeoutError,
    OutputMissing,
    PerRecordExtractionError,
    WorkerProcessError,
)
from core.models import Job, JobDetails, JobStatus

__version__ = "1.0.0"

__all__ = [
    "ConfigurationError",
    "EnrichmentAgentError",
    "JobNotFound",
    "JobNotReady",
    "LoginTimeoutError",
    "OutputMissing",
    "PerRecordExtractionError",
    "WorkerProcessError",
    "Job",
    "JobDetails",
    "JobStatus",
]
