"""Contact enrichment worker — one process per job.

Spawned by the control process's scheduler as::

    python worker.py <job_id> <input_csv> <output_csv>

Session options arrive through the environment (``JOB_SELECTORS``,
``JOB_COOKIES``, ``JOB_MANUAL``, ``JOB_HEADLESS``, ``JOB_PROGRESS_PATH``,
``JOB_SIGNAL_PATH``). Exits 0 on success, 1 when the job failed and 2 on a
usage error.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# MODULE-LEVEL SETUP  (runs at import time)
# ---------------------------------------------------------------------------

# override=False so values already in the process environment win.
load_dotenv(override=False)

os.makedirs("logs", exist_ok=True)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler("logs/worker.log", mode="a", encoding="utf-8"),
    ],
)

logger: logging.Logger = logging.getLogger("worker")

# Deferred imports — placed here so env is loaded first.
from config.settings import rate_limit_config, server_config, worker_config  # noqa: E402
from core.signals import ProgressFile, StartSignal, progress_path_for, signal_path_for  # noqa: E402
from enrichment.worker_session import WorkerOptions, WorkerSession  # noqa: E402

__all__ = ["main"]


def parse_args() -> argparse.Namespace:
    """Parse the three positional job identifiers."""
    parser = argparse.ArgumentParser(description="Contact enrichment worker")
    parser.add_argument("job_id", help="Job identifier")
    parser.add_argument("input_path", help="Uploaded input CSV")
    parser.add_argument("output_path", help="Checkpointed output CSV")
    return parser.parse_args()


def main() -> int:
    """Build the session from argv + environment and run it to completion.

    Returns:
        Process exit code from :meth:`WorkerSession.run`.
    """
    args = parse_args()
    options = WorkerOptions.from_env()

    progress_path = options.progress_path or str(
        progress_path_for(server_config.status_path, args.job_id)
    )
    signal_path = options.signal_path or str(
        signal_path_for(server_config.status_path, args.job_id)
    )

    logger.info(
        "Worker starting | job=%s input=%s output=%s manual_login=%s headless=%s",
        args.job_id,
        args.input_path,
        args.output_path,
        options.manual_login,
        options.headless,
    )
    session = WorkerSession(
        job_id=args.job_id,
        input_path=Path(args.input_path),
        output_path=Path(args.output_path),
        options=options,
        progress=ProgressFile(progress_path),
        start_signal=StartSignal(signal_path),
        config=worker_config,
        rate_limit=rate_limit_config,
    )
    return asyncio.run(session.run())


if __name__ == "__main__":
    sys.exit(main())
