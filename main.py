"""Contact Enrichment Agent — control-process CLI entry point.

Boots logging, loads ``.env``, resolves configuration and serves the HTTP
API (job queue, status, start signal, download and the static UI) through
uvicorn. Browser automation never runs here; the scheduler spawns
``worker.py`` once per job.

No job logic lives here. This module is intentionally thin.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# MODULE-LEVEL SETUP  (runs at import time)
# ---------------------------------------------------------------------------

# override=False so values already in the process environment win.
load_dotenv(override=False)

# Ensure logs/ directory exists before any FileHandler is created.
os.makedirs("logs", exist_ok=True)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler("logs/server.log", mode="a", encoding="utf-8"),
    ],
)

logger: logging.Logger = logging.getLogger("main")

# Deferred imports — placed here so env is loaded first.
from config.settings import rate_limit_config, server_config, worker_config  # noqa: E402

__all__ = ["main"]


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse and return CLI arguments for the server entry point.

    Returns:
        Parsed :class:`argparse.Namespace` containing all recognised flags.
    """
    parser = argparse.ArgumentParser(
        description="Contact Enrichment Agent — job queue server"
    )
    parser.add_argument(
        "--host",
        default=None,
        help=f"Bind address (default: HOST or {server_config.host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help=f"HTTP port (default: PORT or {server_config.port})",
    )
    parser.add_argument(
        "--health-check",
        action="store_true",
        help="Print the resolved configuration as JSON and exit",
    )
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# SHORTCUTS
# ---------------------------------------------------------------------------


def resolved_config() -> dict:
    """Effective configuration of both processes, for ``--health-check``."""
    server = asdict(server_config)
    server.update(
        {
            "uploads_path": str(server_config.uploads_path),
            "outputs_path": str(server_config.outputs_path),
            "status_path": str(server_config.status_path),
        }
    )
    return {
        "server": server,
        "worker": asdict(worker_config),
        "rate_limit": asdict(rate_limit_config),
    }


def run_health_check() -> int:
    """Print resolved configuration and report whether it is usable.

    Returns:
        0 when the worker script exists, 1 otherwise.
    """
    print(json.dumps(resolved_config(), indent=2))
    if not os.path.isfile(server_config.worker_script):
        logger.error("Worker script not found: %s", server_config.worker_script)
        return 1
    if not os.path.isfile(server_config.selectors_file):
        logger.warning(
            "Selectors file %s not found; every upload must send its own selectors",
            server_config.selectors_file,
        )
    return 0


# ---------------------------------------------------------------------------
# MAIN
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and run the server until interrupted.

    Returns:
        POSIX exit code.
    """
    args = parse_args(argv)
    if args.health_check:
        return run_health_check()

    host = args.host or server_config.host
    port = args.port or server_config.port

    logger.info("=" * 60)
    logger.info("Contact Enrichment Agent starting")
    logger.info("  bind        : %s:%s", host, port)
    logger.info("  data dir    : %s", server_config.data_dir)
    logger.info("  worker      : %s", server_config.worker_script)
    logger.info("  profile dir : %s", worker_config.profile_dir)
    logger.info("  rate limit  : %s", rate_limit_config.policy)
    logger.info("=" * 60)

    from api.api_server import main as serve  # inline — thin entry point

    try:
        serve(host=host, port=port)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
