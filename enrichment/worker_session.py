"""Worker-process session: one browser, one job.

State machine::

    init ──► logging_in ──► processing ──► done
      │           │              │
      └───────────┴──────────────┴──► failed

``init`` validates configuration, reads the input table, opens a persistent
Chromium profile, injects cookies and opens the search page. ``logging_in``
is only entered for manual-login jobs and blocks on the start signal.
``processing`` runs :class:`RecordEnrichmentPipeline`. The browser is closed
on every exit path; the exit code is 0 on success and 1 on failure, with the
failure message written to the progress file for the control process.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Tuple

from playwright.async_api import BrowserContext, Page, async_playwright

from config.settings import RateLimitConfig, WorkerConfig
from core.exceptions import ConfigurationError, LoginTimeoutError
from core.signals import ProgressFile, StartSignal
from enrichment.extraction_engine import EngineTiming, ExtractionEngine
from enrichment.pipeline import PipelineSummary, RecordEnrichmentPipeline
from enrichment.selectors import SelectorConfig, resolve_column
from Utils.csv_table import Table, TableFormatError, read_table
from Utils.rate_limit import RateLimiter, build_policy

logger = logging.getLogger(__name__)

__all__ = [
    "WorkerState",
    "WorkerOptions",
    "WorkerSession",
    "parse_cookie_string",
    "launch_browser",
]

EXIT_OK = 0
EXIT_FAILED = 1

BrowserFactory = Callable[[WorkerConfig, bool], Any]


class WorkerState(str, Enum):
    INIT = "init"
    LOGGING_IN = "logging_in"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class WorkerOptions:
    """Per-job options passed to the worker through its environment.

    Attributes:
        selectors_json: Raw ``JOB_SELECTORS`` value (JSON object).
        cookies: Raw ``JOB_COOKIES`` cookie string.
        manual_login: ``JOB_MANUAL == "1"``.
        headless: ``JOB_HEADLESS == "1"``; forced off for manual login.
        progress_path: ``JOB_PROGRESS_PATH`` override.
        signal_path: ``JOB_SIGNAL_PATH`` override.
    """

    selectors_json: str = ""
    cookies: str = ""
    manual_login: bool = False
    headless: bool = False
    progress_path: str = ""
    signal_path: str = ""

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "WorkerOptions":
        env = os.environ if environ is None else environ
        manual = env.get("JOB_MANUAL", "0") == "1"
        return cls(
            selectors_json=env.get("JOB_SELECTORS", ""),
            cookies=env.get("JOB_COOKIES", ""),
            manual_login=manual,
            headless=env.get("JOB_HEADLESS", "0") == "1" and not manual,
            progress_path=env.get("JOB_PROGRESS_PATH", ""),
            signal_path=env.get("JOB_SIGNAL_PATH", ""),
        )


def parse_cookie_string(raw: str, domain: str, path: str = "/") -> List[Dict[str, str]]:
    """Parse ``"k1=v1; k2=v2"`` into Playwright cookie dicts.

    Each pair is split on its first ``=`` only, so values may themselves
    contain ``=``. Entries with an empty name are dropped; an entry without
    ``=`` becomes a cookie with an empty value.

    Args:
        raw: Cookie header style string.
        domain: Domain every cookie is scoped to.
        path: Cookie path.

    Returns:
        List of ``{"name", "value", "domain", "path"}`` dicts.
    """
    cookies: List[Dict[str, str]] = []
    for part in (raw or "").split(";"):
        part = part.strip()
        if not part:
            continue
        name, _, value = part.partition("=")
        name = name.strip()
        if not name:
            continue
        cookies.append({"name": name, "value": value.strip(), "domain": domain, "path": path})
    return cookies


@asynccontextmanager
async def launch_browser(
    config: WorkerConfig, headless: bool
) -> AsyncIterator[Tuple[BrowserContext, Page]]:
    """Open a persistent Chromium context on the shared profile directory.

    Yields:
        ``(context, page)``; the context is closed on exit.
    """
    Path(config.profile_dir).mkdir(parents=True, exist_ok=True)
    async with async_playwright() as playwright:
        context = await playwright.chromium.launch_persistent_context(
            config.profile_dir,
            headless=headless,
            viewport={"width": config.viewport_width, "height": config.viewport_height},
            user_agent=config.user_agent,
        )
        try:
            page = context.pages[0] if context.pages else await context.new_page()
            page.set_default_timeout(config.browser_timeout_ms)
            yield context, page
        finally:
            await context.close()
            logger.info("Browser context closed")


class WorkerSession:
    """Run one job's login handshake and enrichment pipeline.

    Constructor Args:
        job_id: Job identifier (log context only).
        input_path: Uploaded CSV.
        output_path: Checkpoint target.
        options: Per-job options from the environment.
        progress: Progress channel to the control process.
        start_signal: Manual-login release marker.
        config: Browser/pacing configuration.
        rate_limit: Pacing policy configuration.
        browser_factory: ``(config, headless) -> async context manager``
            yielding ``(context, page)``; tests inject fakes.
        rate_limiter: Overrides the limiter built from ``rate_limit``.
        timing: Overrides the engine wait bounds.
    """

    def __init__(
        self,
        job_id: str,
        input_path: Path,
        output_path: Path,
        options: WorkerOptions,
        progress: ProgressFile,
        start_signal: StartSignal,
        config: WorkerConfig,
        rate_limit: Optional[RateLimitConfig] = None,
        browser_factory: BrowserFactory = launch_browser,
        rate_limiter: Optional[RateLimiter] = None,
        timing: Optional[EngineTiming] = None,
    ) -> None:
        self.job_id = job_id
        self.input_path = Path(input_path)
        self.output_path = Path(output_path)
        self.options = options
        self.progress = progress
        self.start_signal = start_signal
        self.config = config
        self.rate_limit = rate_limit or RateLimitConfig()
        self.browser_factory = browser_factory
        self._rate_limiter = rate_limiter
        self._timing = timing
        self.state = WorkerState.INIT
        self.summary: Optional[PipelineSummary] = None
        self._total = 0

    def _transition(self, state: WorkerState) -> None:
        logger.info("Worker state %s -> %s | job=%s", self.state.value, state.value, self.job_id)
        self.state = state

    # ------------------------------------------------------------------
    # Init
    # ------------------------------------------------------------------

    def _load_table(self) -> Table:
        try:
            return read_table(self.input_path)
        except (OSError, TableFormatError) as exc:
            raise ConfigurationError(f"Cannot read input table {self.input_path}: {exc}") from exc

    def _build_rate_limiter(self) -> RateLimiter:
        if self._rate_limiter is not None:
            return self._rate_limiter
        try:
            policy = build_policy(
                self.rate_limit.policy,
                self.rate_limit.min_seconds,
                self.rate_limit.max_seconds,
            )
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        return RateLimiter(policy)

    async def _open_session(
        self, context: BrowserContext, page: Page, selectors: SelectorConfig
    ) -> None:
        if self.options.cookies:
            domain = self.config.resolve_cookie_domain(selectors.search_page_url)
            cookies = parse_cookie_string(self.options.cookies, domain)
            if cookies:
                await context.add_cookies(cookies)
                logger.info("Injected %d cookie(s) for %s", len(cookies), domain)
        await page.goto(selectors.search_page_url, wait_until="domcontentloaded")

    # ------------------------------------------------------------------
    # Logging in
    # ------------------------------------------------------------------

    async def _await_manual_login(self) -> None:
        self._transition(WorkerState.LOGGING_IN)
        logger.info(
            "Manual login requested. Log in through the opened browser window, "
            "then send the start signal for job %s.",
            self.job_id,
        )
        timeout = self.config.login_timeout_seconds or None
        received = await self.start_signal.wait(
            poll_interval=self.config.start_signal_poll_seconds,
            timeout=timeout,
        )
        if not received:
            raise LoginTimeoutError(
                f"No start signal received within {self.config.login_timeout_seconds:.0f}s"
            )

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self) -> int:
        """Execute the whole session and return the process exit code."""
        try:
            selectors = SelectorConfig.from_json(self.options.selectors_json)
            table = self._load_table()
            name_column = resolve_column(table, selectors.full_name_column, "Full name")
            company_column = resolve_column(table, selectors.company_name_column, "Company name")
            rate_limiter = self._build_rate_limiter()
            self._total = len(table)
            self.progress.write(0, self._total)

            timing = self._timing or EngineTiming(
                navigation_timeout=self.config.navigation_timeout_ms
            )
            async with self.browser_factory(self.config, self.options.headless) as (context, page):
                await self._open_session(context, page, selectors)
                if self.options.manual_login:
                    await self._await_manual_login()

                self._transition(WorkerState.PROCESSING)
                pipeline = RecordEnrichmentPipeline(
                    engine=ExtractionEngine(page, selectors, timing=timing),
                    table=table,
                    output_path=self.output_path,
                    progress=self.progress,
                    rate_limiter=rate_limiter,
                    name_column=name_column,
                    company_column=company_column,
                    error_note_limit=self.config.error_note_limit,
                )
                self.summary = await pipeline.run()
        except Exception as exc:  # noqa: BLE001
            return self._fail(exc)

        self._transition(WorkerState.DONE)
        logger.info("Worker finished, output saved to %s", self.output_path)
        return EXIT_OK

    def _fail(self, exc: BaseException) -> int:
        self._transition(WorkerState.FAILED)
        message = str(exc) or exc.__class__.__name__
        if isinstance(exc, (ConfigurationError, LoginTimeoutError)):
            logger.error("Worker failed | job=%s: %s", self.job_id, message)
        else:
            logger.exception("Worker failed | job=%s", self.job_id)
        snapshot = self.progress.read() or {}
        try:
            self.progress.write(
                int(snapshot.get("progress", 0) or 0),
                int(snapshot.get("total", self._total) or self._total),
                "error",
                message[: self.config.error_note_limit],
            )
        except OSError as write_exc:
            logger.warning("Could not record failure in progress file: %s", write_exc)
        return EXIT_FAILED
