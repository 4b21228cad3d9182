"""Job data model shared by the registry, the scheduler and the HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

__all__ = ["JobStatus", "JobDetails", "Job", "utc_now"]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobStatus(str, Enum):
    """Lifecycle of a job: queued → running → finished | error."""

    QUEUED = "queued"
    RUNNING = "running"
    FINISHED = "finished"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.FINISHED, JobStatus.ERROR)


@dataclass
class JobDetails:
    """Per-job session options and extraction configuration.

    Attributes:
        cookies: Raw ``name=value; name2=value2`` cookie string.
        manual_login: Wait for a human-provided start signal after the
            browser opens.
        headless: Run the browser without a window. Ignored (forced off)
            when ``manual_login`` is set.
        selectors: Untyped selector/URL mapping, validated by the worker.
    """

    cookies: str = ""
    manual_login: bool = False
    headless: bool = False
    selectors: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Job:
    """One enrichment run over one uploaded table.

    Attributes:
        id: Opaque unique identifier (uuid4 hex).
        input_path: Uploaded CSV as received.
        output_path: Checkpointed enriched CSV (may not exist yet).
        progress_path: Worker-written progress snapshot.
        signal_path: Start-signal marker for manual login.
        details: Session options and selector configuration.
        status: Current lifecycle state.
        progress: Records completed so far.
        total: Records in the input table.
        error: Failure message once the job ended in ``error``.
        created_at: Submission time (ISO-8601 UTC).
        started_at: Time the worker was spawned.
        finished_at: Time the worker exited.
    """

    id: str
    input_path: Path
    output_path: Path
    progress_path: Path
    signal_path: Path
    details: JobDetails = field(default_factory=JobDetails)
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    total: int = 0
    error: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    def view(self) -> Dict[str, Any]:
        """Client-facing snapshot; optional fields are omitted when unset."""
        data: Dict[str, Any] = {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "total": self.total,
            "created_at": self.created_at,
        }
        for key in ("error", "started_at", "finished_at"):
            value = getattr(self, key)
            if value:
                data[key] = value
        return data
