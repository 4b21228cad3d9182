"""Single-slot job scheduler for the control process.

Jobs drain strictly in arrival order, one worker process at a time: the
browser profile directory is shared between jobs, so two workers must never
run against it concurrently. Everything here runs on the control process's
event loop; the reentrancy flag needs no lock because the loop is the only
writer.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from collections import deque
from pathlib import Path
from typing import Awaitable, Callable, Deque, Dict, Optional

from core.exceptions import WorkerProcessError
from core.models import Job, JobStatus, utc_now
from core.signals import ProgressFile

logger = logging.getLogger(__name__)

__all__ = ["JobScheduler", "SubprocessWorkerSpawner", "WorkerSpawner"]

# Spawns the worker for a job and resolves to its exit code.
WorkerSpawner = Callable[[Job], Awaitable[int]]


class SubprocessWorkerSpawner:
    """Launch ``worker.py <job_id> <input> <output>`` as a child process.

    The child inherits stdout/stderr, so worker logs interleave with the
    server's. Session options travel through the environment.
    """

    def __init__(self, worker_script: str, python: str = sys.executable) -> None:
        self.worker_script = worker_script
        self.python = python

    def build_env(self, job: Job) -> Dict[str, str]:
        env = dict(os.environ)
        env.update(
            {
                "JOB_SELECTORS": json.dumps(job.details.selectors),
                "JOB_COOKIES": job.details.cookies or "",
                "JOB_MANUAL": "1" if job.details.manual_login else "0",
                "JOB_HEADLESS": "1" if job.details.headless else "0",
                "JOB_PROGRESS_PATH": str(job.progress_path),
                "JOB_SIGNAL_PATH": str(job.signal_path),
            }
        )
        return env

    async def __call__(self, job: Job) -> int:
        process = await asyncio.create_subprocess_exec(
            self.python,
            str(Path(self.worker_script)),
            job.id,
            str(job.input_path),
            str(job.output_path),
            env=self.build_env(job),
        )
        logger.info("Worker spawned | job=%s pid=%s", job.id, process.pid)
        return await process.wait()


class JobScheduler:
    """FIFO queue plus a single-flight drain loop.

    Args:
        jobs: Job map owned by the registry; looked up by id on dequeue.
        spawner: Coroutine function running one job's worker to exit.
    """

    def __init__(self, jobs: Dict[str, Job], spawner: WorkerSpawner) -> None:
        self._jobs = jobs
        self._spawner = spawner
        self._queue: Deque[str] = deque()
        self._draining: bool = False
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> str:
        return "running" if self._draining else "idle"

    @property
    def queued(self) -> list[str]:
        return list(self._queue)

    def enqueue(self, job_id: str) -> None:
        self._queue.append(job_id)

    def kick(self) -> Optional[asyncio.Task]:
        """Start the drain loop unless one is already running.

        Must be called from the event loop. Returns the new drain task, or
        ``None`` when a drain is already in progress (it will pick up the
        newly queued job).
        """
        if self._draining:
            return None
        self._draining = True
        self._task = asyncio.get_running_loop().create_task(self._drain())
        return self._task

    async def wait_idle(self) -> None:
        """Wait for the current drain loop, if any, to finish."""
        if self._task is not None:
            await self._task

    async def _drain(self) -> None:
        try:
            while self._queue:
                job_id = self._queue.popleft()
                job = self._jobs.get(job_id)
                if job is None:
                    logger.warning("Dequeued unknown job %s, skipping", job_id)
                    continue
                await self._run_job(job)
        finally:
            self._draining = False

    async def _run_job(self, job: Job) -> None:
        progress_file = ProgressFile(job.progress_path)
        job.status = JobStatus.RUNNING
        job.started_at = utc_now()
        logger.info("Job started | job=%s total=%d", job.id, job.total)

        try:
            exit_code = await self._spawner(job)
            if exit_code != 0:
                raise WorkerProcessError(
                    self._failure_message(progress_file, exit_code), exit_code
                )
        except WorkerProcessError as exc:
            job.status = JobStatus.ERROR
            job.error = str(exc)
        except OSError as exc:
            job.status = JobStatus.ERROR
            job.error = f"Worker could not be started: {exc}"
        except Exception as exc:  # noqa: BLE001
            logger.exception("Worker launch failed | job=%s", job.id)
            job.status = JobStatus.ERROR
            job.error = f"Worker could not be started: {exc}"
        else:
            job.status = JobStatus.FINISHED
        job.finished_at = utc_now()

        snapshot = progress_file.read() or {}
        reported = int(snapshot.get("progress", job.progress) or 0)
        job.progress = min(max(job.progress, reported), job.total) if job.total else max(job.progress, reported)
        try:
            progress_file.write(job.progress, job.total, job.status.value, job.error)
        except OSError as exc:
            logger.warning("Final progress snapshot failed | job=%s: %s", job.id, exc)

        if job.status is JobStatus.FINISHED:
            logger.info("Job finished | job=%s progress=%d/%d", job.id, job.progress, job.total)
        else:
            logger.error("Job failed | job=%s error=%s", job.id, job.error)

    @staticmethod
    def _failure_message(progress_file: ProgressFile, exit_code: int) -> str:
        snapshot = progress_file.read() or {}
        reported = snapshot.get("error")
        if reported:
            return str(reported)
        return f"Worker exited with code {exit_code}"
