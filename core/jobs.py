"""Job registry for the control process.

Owns the in-memory ``id → Job`` map, persists uploads, merges worker-written
progress into status reads and hands jobs to :class:`JobScheduler`. Only the
control process's event loop mutates the map.
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from config.settings import ServerConfig
from core.exceptions import JobNotFound, JobNotReady, OutputMissing
from core.models import Job, JobDetails
from core.scheduler import JobScheduler, SubprocessWorkerSpawner, WorkerSpawner
from core.signals import ProgressFile, StartSignal, progress_path_for, signal_path_for
from Utils.csv_table import TableFormatError, parse_table

logger = logging.getLogger(__name__)

__all__ = ["JobRegistry"]


class JobRegistry:
    """Accepts submissions and answers status/download/start-signal calls.

    Args:
        config: Directory layout and server limits.
        spawner: Worker launcher; defaults to a subprocess running
            ``config.worker_script``.
        autostart: Kick the scheduler on every submission. Disabled in
            tests that only exercise the request surface.
        headless: Browser mode for jobs that do not request one and do not
            use manual login (``WORKER_HEADLESS``).
    """

    def __init__(
        self,
        config: ServerConfig,
        spawner: Optional[WorkerSpawner] = None,
        autostart: bool = True,
        headless: bool = False,
    ) -> None:
        self.config = config
        self.autostart = autostart
        self.headless = headless
        self._jobs: Dict[str, Job] = {}
        self.scheduler = JobScheduler(
            self._jobs, spawner or SubprocessWorkerSpawner(config.worker_script)
        )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def jobs(self) -> List[Job]:
        return list(self._jobs.values())

    def default_selectors(self) -> Dict[str, Any]:
        """Load the server-side selector file; missing file means ``{}``."""
        path = Path(self.config.selectors_file)
        if not path.is_file():
            return {}
        try:
            with open(path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable selectors file %s: %s", path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def submit(self, input_bytes: bytes, details: JobDetails) -> str:
        """Persist an uploaded table and queue a new job for it.

        Args:
            input_bytes: Raw CSV upload.
            details: Session options and selector configuration.

        Returns:
            The new job id.

        Raises:
            TableFormatError: If the upload is not UTF-8 or not a CSV with a
                header row.
        """
        try:
            text = input_bytes.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise TableFormatError(
                f"CSV upload is not valid UTF-8: {exc.reason} at byte {exc.start}"
            ) from exc
        table = parse_table(text)

        job_id = uuid.uuid4().hex
        for directory in (
            self.config.uploads_path,
            self.config.outputs_path,
            self.config.status_path,
        ):
            directory.mkdir(parents=True, exist_ok=True)

        input_path = self.config.uploads_path / f"{job_id}.csv"
        input_path.write_bytes(input_bytes)

        if details.manual_login and details.cookies:
            logger.warning(
                "Job %s: manual login requested, ignoring supplied cookies", job_id
            )
            details.cookies = ""
        if details.manual_login:
            details.headless = False

        job = Job(
            id=job_id,
            input_path=input_path,
            output_path=self.config.outputs_path / f"{job_id}.csv",
            progress_path=progress_path_for(self.config.status_path, job_id),
            signal_path=signal_path_for(self.config.status_path, job_id),
            details=details,
            total=len(table),
        )
        self._jobs[job_id] = job
        self.scheduler.enqueue(job_id)
        logger.info(
            "Job queued | job=%s rows=%d manual_login=%s",
            job_id,
            job.total,
            details.manual_login,
        )
        if self.autostart:
            self.scheduler.kick()
        return job_id

    def status(self, job_id: str) -> Dict[str, Any]:
        """Current job view with the worker's latest progress merged in.

        Raises:
            JobNotFound: For an unknown id.
        """
        job = self.get(job_id)
        snapshot = ProgressFile(job.progress_path).read()
        if snapshot:
            self._merge_progress(job, snapshot)
        return job.view()

    def download_path(self, job_id: str) -> Path:
        """Path of a terminal job's output table.

        Raises:
            JobNotFound: For an unknown id.
            JobNotReady: While the job is queued or running.
            OutputMissing: When no checkpoint was ever written.
        """
        job = self.get(job_id)
        if not job.status.is_terminal:
            raise JobNotReady(job_id, job.status.value)
        if not job.output_path.is_file():
            raise OutputMissing(job_id)
        return job.output_path

    def signal_start(self, job_id: str) -> None:
        """Release a worker waiting on manual login. Safe to repeat.

        Raises:
            JobNotFound: For an unknown id.
        """
        job = self.get(job_id)
        StartSignal(job.signal_path).send()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _merge_progress(job: Job, snapshot: Dict[str, Any]) -> None:
        # Lifecycle status is owned by the scheduler; only counters merge.
        try:
            reported_total = int(snapshot.get("total", job.total))
            reported_progress = int(snapshot.get("progress", job.progress))
        except (TypeError, ValueError):
            logger.warning("Malformed progress snapshot for job %s", job.id)
            return
        if reported_total > 0:
            job.total = reported_total
        job.progress = max(job.progress, reported_progress)
        if job.total:
            job.progress = min(job.progress, job.total)
