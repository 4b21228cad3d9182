# core/tests/test_signals.py
# Progress file and start-signal marker shared by server and worker.

import asyncio

from core.signals import ProgressFile, StartSignal, progress_path_for, signal_path_for


def test_paths_are_per_job(tmp_path):
    assert progress_path_for(tmp_path, "abc") == tmp_path / "abc.json"
    assert signal_path_for(tmp_path, "abc") == tmp_path / "abc.start"


def test_progress_roundtrip_and_overwrite(tmp_path):
    progress = ProgressFile(tmp_path / "status" / "job.json")
    assert progress.read() is None

    progress.write(1, 3)
    progress.write(2, 3)
    data = progress.read()
    assert data["progress"] == 2
    assert data["total"] == 3
    assert data["status"] == "running"
    assert "error" not in data
    assert not (tmp_path / "status" / "job.json.tmp").exists()


def test_progress_records_error(tmp_path):
    progress = ProgressFile(tmp_path / "job.json")
    progress.write(0, 5, "error", "Search page selectors must be configured")
    assert progress.read()["error"] == "Search page selectors must be configured"


def test_unreadable_progress_is_none(tmp_path):
    path = tmp_path / "job.json"
    path.write_text("{not json")
    assert ProgressFile(path).read() is None


def test_signal_is_idempotent(tmp_path):
    signal = StartSignal(tmp_path / "job.start")
    signal.send()
    signal.send()
    assert signal.is_set()

    assert asyncio.run(signal.wait(poll_interval=0.01, timeout=1)) is True
    assert not signal.is_set()


def test_signal_wait_times_out(tmp_path):
    signal = StartSignal(tmp_path / "job.start")
    assert asyncio.run(signal.wait(poll_interval=0.01, timeout=0.05)) is False


def test_signal_sent_while_waiting(tmp_path):
    signal = StartSignal(tmp_path / "job.start")

    async def scenario():
        waiter = asyncio.create_task(signal.wait(poll_interval=0.01, timeout=2))
        await asyncio.sleep(0.05)
        signal.send()
        return await waiter

    assert asyncio.run(scenario()) is True
    assert not signal.is_set()


def test_consume_missing_marker_is_harmless(tmp_path):
    StartSignal(tmp_path / "never.start").consume()
