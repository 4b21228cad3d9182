# enrichment/tests/test_worker_session.py
# Worker lifecycle: init, cookie/manual login, processing, failure reporting.

import asyncio
import json

from conftest import FakeBrowser, FakePage
from core.signals import ProgressFile, StartSignal
from enrichment.worker_session import (
    WorkerOptions,
    WorkerSession,
    WorkerState,
    parse_cookie_string,
)
from Utils.csv_table import read_table

CSV = "Name,Company,Work Email,Work Email Status,Notes\nJane Doe,Acme,,,\n"


def make_session(tmp_path, worker_config, options, page, limiter, zero_timing, csv_text=CSV):
    input_path = tmp_path / "in.csv"
    input_path.write_text(csv_text, encoding="utf-8")
    browser = FakeBrowser(page)
    session = WorkerSession(
        job_id="job1",
        input_path=input_path,
        output_path=tmp_path / "out.csv",
        options=options,
        progress=ProgressFile(tmp_path / "job1.json"),
        start_signal=StartSignal(tmp_path / "job1.start"),
        config=worker_config,
        browser_factory=browser,
        rate_limiter=limiter,
        timing=zero_timing,
    )
    return session, browser


def test_parse_cookie_string_splits_on_first_equals():
    cookies = parse_cookie_string("a=1; b=two=x; ;=orphan; flag", ".example.com")
    assert cookies == [
        {"name": "a", "value": "1", "domain": ".example.com", "path": "/"},
        {"name": "b", "value": "two=x", "domain": ".example.com", "path": "/"},
        {"name": "flag", "value": "", "domain": ".example.com", "path": "/"},
    ]


def test_options_from_env_force_headed_for_manual():
    options = WorkerOptions.from_env(
        {"JOB_MANUAL": "1", "JOB_HEADLESS": "1", "JOB_COOKIES": "a=1", "JOB_SELECTORS": "{}"}
    )
    assert options.manual_login is True
    assert options.headless is False
    assert WorkerOptions.from_env({"JOB_HEADLESS": "1"}).headless is True


def test_cookie_session_runs_to_completion(
    tmp_path, worker_config, selectors_dict, recording_limiter, zero_timing
):
    page = FakePage([{".email": ["jane@acme.com"]}])
    options = WorkerOptions(selectors_json=json.dumps(selectors_dict), cookies="sid=abc; theme=dark")
    session, browser = make_session(tmp_path, worker_config, options, page, recording_limiter, zero_timing)

    assert asyncio.run(session.run()) == 0

    assert session.state is WorkerState.DONE
    assert browser.launches == [False]
    assert browser.context.closed
    assert [c["name"] for c in browser.context.cookies] == ["sid", "theme"]
    assert browser.context.cookies[0]["domain"] == ".example.com"
    assert page.visited == ["https://www.example.com/search"]
    assert read_table(tmp_path / "out.csv").record(0)["work_email"] == "jane@acme.com"
    assert ProgressFile(tmp_path / "job1.json").read()["progress"] == 1


def test_manual_login_waits_for_and_consumes_signal(
    tmp_path, worker_config, selectors_dict, recording_limiter, zero_timing
):
    page = FakePage([{".email": ["jane@acme.com"]}])
    options = WorkerOptions(selectors_json=json.dumps(selectors_dict), manual_login=True)
    session, _ = make_session(tmp_path, worker_config, options, page, recording_limiter, zero_timing)
    signal = StartSignal(tmp_path / "job1.start")

    async def scenario():
        task = asyncio.create_task(session.run())
        await asyncio.sleep(0.05)
        assert session.state is WorkerState.LOGGING_IN
        assert page.searches == []
        signal.send()
        return await task

    assert asyncio.run(scenario()) == 0
    assert not signal.is_set()
    assert page.searches == [("Jane Doe", "Acme")]


def test_manual_login_timeout_fails_job(
    tmp_path, worker_config, selectors_dict, recording_limiter, zero_timing
):
    page = FakePage()
    options = WorkerOptions(selectors_json=json.dumps(selectors_dict), manual_login=True)
    session, browser = make_session(tmp_path, worker_config, options, page, recording_limiter, zero_timing)

    assert asyncio.run(session.run()) == 1

    assert session.state is WorkerState.FAILED
    assert browser.context.closed
    snapshot = ProgressFile(tmp_path / "job1.json").read()
    assert snapshot["status"] == "error"
    assert "start signal" in snapshot["error"]
    assert not (tmp_path / "out.csv").exists()


def test_missing_selectors_fail_before_browser(
    tmp_path, worker_config, recording_limiter, zero_timing
):
    page = FakePage()
    options = WorkerOptions(selectors_json=json.dumps({"SEARCH_PAGE_URL": "https://example.com"}))
    session, browser = make_session(tmp_path, worker_config, options, page, recording_limiter, zero_timing)

    assert asyncio.run(session.run()) == 1

    assert browser.launches == []
    snapshot = ProgressFile(tmp_path / "job1.json").read()
    assert snapshot["status"] == "error"
    assert "NAME_INPUT_SELECTOR" in snapshot["error"]


def test_unknown_name_column_fails(
    tmp_path, worker_config, selectors_dict, recording_limiter, zero_timing
):
    selectors_dict["FULL_NAME_COLUMN_INDEX"] = "Full Name"
    options = WorkerOptions(selectors_json=json.dumps(selectors_dict))
    session, browser = make_session(tmp_path, worker_config, options, FakePage(), recording_limiter, zero_timing)

    assert asyncio.run(session.run()) == 1
    assert browser.launches == []
    assert "Full Name" in ProgressFile(tmp_path / "job1.json").read()["error"]
