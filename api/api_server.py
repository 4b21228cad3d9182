"""
FastAPI server for the contact enrichment agent.

HTTP boundary between the browser UI and the job registry. Accepts CSV
uploads, reports job status, releases workers waiting on manual login and
serves enriched output. No browser automation runs in this process; every
job is handed to a separate worker process by the scheduler.

Runs single-worker: the registry and scheduler live in this process's event
loop and must not be duplicated.
"""

import json
import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
import uvicorn

from config.settings import ServerConfig, server_config, worker_config
from core.exceptions import JobNotFound, JobNotReady, OutputMissing
from core.jobs import JobRegistry
from core.models import JobDetails
from Utils.csv_table import TableFormatError

logger = logging.getLogger(__name__)

__all__ = ["app", "create_app", "main"]

UPLOAD_CHUNK_SIZE = 1024 * 1024

# NUL and other C0 control characters (tab excluded) plus DEL.
CONTROL_CHARACTERS = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")


# ---------------------------------------------------------------------------
# Pydantic Models
# ---------------------------------------------------------------------------


class UploadResponse(BaseModel):
    """Response payload for ``POST /upload``.

    Attributes:
        jobId: Identifier of the newly queued job.
    """

    jobId: str


class JobView(BaseModel):
    """Response payload for ``GET /status/{job_id}``.

    Attributes:
        id: Job identifier.
        status: ``queued``, ``running``, ``finished`` or ``error``.
        progress: Records processed so far.
        total: Records in the uploaded table.
        error: Failure message, only present for ``error`` jobs.
        created_at: Submission time (ISO-8601 UTC).
        started_at: Worker start time, once running.
        finished_at: Worker exit time, once terminal.
    """

    id: str
    status: str
    progress: int
    total: int
    error: Optional[str] = None
    created_at: str
    started_at: Optional[str] = None
    finished_at: Optional[str] = None


class SignalResponse(BaseModel):
    """Response payload for ``POST /signal-start/{job_id}``."""

    jobId: str
    signaled: bool = True


class HealthResponse(BaseModel):
    """Response payload for ``GET /health``.

    Attributes:
        status: Always ``"healthy"`` when the server answers.
        timestamp: UTC ISO8601 timestamp of the check.
        scheduler: ``"idle"`` or ``"running"``.
        jobs: Job count per lifecycle status.
    """

    status: str
    timestamp: str
    scheduler: str
    jobs: Dict[str, int]


# ---------------------------------------------------------------------------
# Upload helpers
# ---------------------------------------------------------------------------


class UploadRejected(Exception):
    """Client supplied an unusable upload (mapped to 400)."""


async def read_upload_bytes(file: UploadFile, max_bytes: int) -> bytes:
    """Read an uploaded file in chunks with an explicit size guard."""
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            raise UploadRejected(
                f"Upload exceeds {max_bytes // (1024 * 1024)}MB limit."
            )
        chunks.append(chunk)
    raw = b"".join(chunks)
    if not raw.strip():
        raise UploadRejected("Uploaded file is empty.")
    return raw


def parse_selectors_field(raw: str) -> Dict[str, Any]:
    """Decode the optional ``selectors`` form field (a JSON object)."""
    if not raw or not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise UploadRejected(f"selectors is not valid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise UploadRejected("selectors must be a JSON object")
    return data


def parse_cookies_field(raw: str) -> str:
    """Validate the ``cookies`` form field; it is passed to the worker verbatim."""
    cookies = (raw or "").strip()
    if CONTROL_CHARACTERS.search(cookies):
        raise UploadRejected("cookies must not contain control characters")
    return cookies


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    registry: Optional[JobRegistry] = None,
    config: Optional[ServerConfig] = None,
) -> FastAPI:
    """Build the FastAPI application around a job registry.

    Args:
        registry: Registry to serve; a new one is built from ``config``
            when omitted.
        config: Server configuration; defaults to the ``server_config``
            singleton.

    Returns:
        Configured FastAPI instance.
    """
    config = config or (registry.config if registry else server_config)
    registry = registry or JobRegistry(config, headless=worker_config.headless)

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # type: ignore[type-arg]
        """Log startup, and wait for an in-flight job on shutdown."""
        logger.info(
            "FastAPI server starting | port=%s data_dir=%s", config.port, config.data_dir
        )
        yield
        if registry.scheduler.state == "running":
            logger.info("Waiting for the running job to finish before shutdown")
            await registry.scheduler.wait_idle()
        logger.info("FastAPI server shutting down")

    app = FastAPI(
        title="Contact Enrichment Agent API",
        description="Job queue for browser-driven contact enrichment of CSV tables",
        version="1.0.0",
        docs_url="/docs",
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.registry = registry

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(JobNotFound)
    async def job_not_found_handler(request: Request, exc: JobNotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": "Not found", "jobId": exc.job_id})

    @app.exception_handler(JobNotReady)
    async def job_not_ready_handler(request: Request, exc: JobNotReady) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "Job still in progress", "jobId": exc.job_id, "status": exc.status},
        )

    @app.exception_handler(OutputMissing)
    async def output_missing_handler(request: Request, exc: OutputMissing) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": "Output not ready", "jobId": exc.job_id})

    @app.exception_handler(UploadRejected)
    async def upload_rejected_handler(request: Request, exc: UploadRejected) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(TableFormatError)
    async def table_format_handler(request: Request, exc: TableFormatError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all handler for unhandled exceptions across all endpoints.

        Logs the exception with the request path and returns a structured
        500 JSON response.
        """
        logger.error("Unhandled exception: %s | path=%s", exc, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": str(exc), "path": str(request.url.path)},
        )

    # -----------------------------------------------------------------------
    # Endpoint 1: POST /upload
    # -----------------------------------------------------------------------

    @app.post("/upload", response_model=UploadResponse, tags=["jobs"])
    async def upload(
        file: Optional[UploadFile] = File(None),
        manual_login: str = Form("false"),
        cookies: str = Form(""),
        selectors: str = Form(""),
        headless: str = Form(""),
    ) -> UploadResponse:
        """Accept a CSV and queue an enrichment job for it.

        ``selectors`` (optional JSON object) is merged over the server's
        default selector file, so a client only sends the keys it changes.
        ``headless`` left empty uses the configured ``WORKER_HEADLESS``.

        Returns:
            UploadResponse with the new job id.
        """
        if file is None:
            raise UploadRejected("No file uploaded.")
        raw = await read_upload_bytes(file, config.max_upload_bytes)

        merged = registry.default_selectors()
        merged.update(parse_selectors_field(selectors))
        details = JobDetails(
            cookies=parse_cookies_field(cookies),
            manual_login=manual_login.strip().lower() == "true",
            headless=(
                headless.strip().lower() == "true" if headless.strip() else registry.headless
            ),
            selectors=merged,
        )
        job_id = await registry.submit(raw, details)
        logger.info("Upload accepted | job=%s filename=%s", job_id, file.filename)
        return UploadResponse(jobId=job_id)

    # -----------------------------------------------------------------------
    # Endpoint 2: GET /status/{job_id}
    # -----------------------------------------------------------------------

    @app.get(
        "/status/{job_id}",
        response_model=JobView,
        response_model_exclude_none=True,
        tags=["jobs"],
    )
    async def get_status(job_id: str) -> JobView:
        """Job lifecycle state with the worker's latest progress merged in."""
        return JobView(**registry.status(job_id))

    # -----------------------------------------------------------------------
    # Endpoint 3: POST /signal-start/{job_id}
    # -----------------------------------------------------------------------

    @app.post("/signal-start/{job_id}", response_model=SignalResponse, tags=["jobs"])
    async def signal_start(job_id: str) -> SignalResponse:
        """Release a worker blocked on manual login. Repeat calls are harmless."""
        registry.signal_start(job_id)
        return SignalResponse(jobId=job_id)

    # -----------------------------------------------------------------------
    # Endpoint 4: GET /download/{job_id}
    # -----------------------------------------------------------------------

    @app.get("/download/{job_id}", tags=["jobs"])
    async def download(job_id: str) -> FileResponse:
        """Enriched CSV as an attachment; partial output after a failed job."""
        path = registry.download_path(job_id)
        return FileResponse(
            path,
            media_type="text/csv",
            filename=f"enriched_{job_id}.csv",
        )

    # -----------------------------------------------------------------------
    # Endpoint 5: GET /health
    # -----------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        """Scheduler state and job counts. No side effects."""
        counts: Dict[str, int] = {}
        for job in registry.jobs():
            counts[job.status.value] = counts.get(job.status.value, 0) + 1
        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            scheduler=registry.scheduler.state,
            jobs=counts,
        )

    # Static UI last so API routes take precedence.
    public_dir = Path(config.public_dir)
    if public_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(public_dir), html=True), name="public")

    return app


app = create_app()


# ---------------------------------------------------------------------------
# Main Runner
# ---------------------------------------------------------------------------


def main(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Start the uvicorn ASGI server for the FastAPI application.

    Single-worker, no hot-reload: the job registry and scheduler are
    in-process state.
    """
    uvicorn.run(
        "api.api_server:app",
        host=host or server_config.host,
        port=port or server_config.port,
        log_level=server_config.log_level.lower(),
        reload=False,
        workers=1,
    )


if __name__ == "__main__":
    main()
