"""Filesystem signal channel between the control process and a worker.

Two artifacts per job, both under ``STATUS_DIR``:

* ``<job_id>.json`` — progress file. Only ever replaced as a whole
  (temp file + ``os.replace``) so a reader sees either the previous or the
  next snapshot, never a mix.
* ``<job_id>.start`` — start-signal marker. Existence is the signal; the
  worker deletes it when it proceeds past the manual-login wait, so the
  signal is consumed at most once.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

__all__ = [
    "ProgressFile",
    "StartSignal",
    "progress_path_for",
    "signal_path_for",
]


def progress_path_for(status_dir: Union[str, Path], job_id: str) -> Path:
    return Path(status_dir) / f"{job_id}.json"


def signal_path_for(status_dir: Union[str, Path], job_id: str) -> Path:
    return Path(status_dir) / f"{job_id}.start"


class ProgressFile:
    """Overwrite-only JSON progress snapshot written by the worker."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def write(
        self,
        progress: int,
        total: int,
        status: str = "running",
        error: Optional[str] = None,
    ) -> None:
        """Replace the snapshot with ``{progress, total, status, error?}``.

        Args:
            progress: Records completed so far.
            total: Records in the input table.
            status: Lifecycle status reported alongside the counters.
            error: Failure message, only for ``status="error"``.
        """
        payload: dict[str, Any] = {
            "progress": int(progress),
            "total": int(total),
            "status": status,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        if error:
            payload["error"] = error
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as handle:
            json.dump(payload, handle)
        os.replace(tmp, self.path)

    def read(self) -> Optional[dict[str, Any]]:
        """Return the latest snapshot, or ``None`` if absent or unreadable."""
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Unreadable progress file %s: %s", self.path, exc)
            return None
        return data if isinstance(data, dict) else None


class StartSignal:
    """Existence-based marker that releases a worker blocked on manual login."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def send(self) -> None:
        """Create the marker. Sending again before it is consumed is a no-op."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)
        logger.info("Start signal created: %s", self.path)

    def is_set(self) -> bool:
        return self.path.exists()

    def consume(self) -> None:
        """Delete the marker; a failed delete is logged and ignored."""
        try:
            self.path.unlink()
        except OSError as exc:
            logger.warning("Could not delete start signal %s: %s", self.path, exc)

    async def wait(
        self,
        poll_interval: float = 1.0,
        timeout: Optional[float] = None,
    ) -> bool:
        """Poll until the marker appears, then consume it.

        Args:
            poll_interval: Seconds between existence checks.
            timeout: Give up after this many seconds; ``None`` or ``0``
                waits forever.

        Returns:
            True once the signal was received, False on timeout.
        """
        deadline = time.monotonic() + timeout if timeout else None
        while True:
            if self.is_set():
                self.consume()
                logger.info("Start signal received")
                return True
            if deadline is not None and time.monotonic() >= deadline:
                return False
            await asyncio.sleep(poll_interval)
