# conftest.py
# Shared fixtures: in-memory stand-ins for the Playwright page/context so the
# engine, pipeline and worker session run without a browser.

from contextlib import asynccontextmanager

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from config.settings import RateLimitConfig, ServerConfig, WorkerConfig
from enrichment.extraction_engine import EngineTiming
from Utils.rate_limit import RateLimiter, RateLimitPolicy, RateLimitTier

SELECTORS = {
    "SEARCH_PAGE_URL": "https://www.example.com/search",
    "NAME_INPUT_SELECTOR": "#name",
    "COMPANY_INPUT_SELECTOR": "#company",
    "SUBMIT_BUTTON_SELECTOR": "#submit",
    "RESULT_CONTAINER_SELECTOR": ".result",
    "EMAIL_ITEM_SELECTOR": ".email",
    "PHONE_REVEAL_BUTTON_SELECTOR": ".reveal",
    "PHONE_ITEM_SELECTOR": ".phone",
    "MULTI_VALUE_REMOVE_SELECTOR": ".tag-remove",
    "FULL_NAME_COLUMN_INDEX": 0,
    "COMPANY_NAME_COLUMN_INDEX": 1,
}

ZERO_TIMING = EngineTiming(
    keystroke_delay=(0, 0),
    backspace_pause=(0, 0),
    reset_settle=(0, 0),
    results_settle=(0, 0),
    reveal_settle=(0, 0),
    navigation_timeout=10,
    email_visible_timeout=10,
    reset_visible_timeout=10,
    item_visible_timeout=10,
    container_visible_timeout=10,
)


class FakeLocator:
    def __init__(self, page, selector):
        self.page = page
        self.selector = selector

    @property
    def first(self):
        return self

    async def wait_for(self, state="visible", timeout=None):
        if self.selector not in self.page.elements:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms waiting for {self.selector}")

    async def all_inner_texts(self):
        return list(self.page.elements.get(self.selector, []))

    async def inner_text(self):
        texts = self.page.elements.get(self.selector)
        if not texts:
            raise PlaywrightTimeoutError(f"No element for {self.selector}")
        return texts[0]

    async def click(self):
        await self.page.click(self.selector)

    async def input_value(self):
        return self.page.inputs.get(self.selector, "")


class FakeKeyboard:
    def __init__(self, page):
        self.page = page
        self.pressed = []

    async def press(self, key):
        self.pressed.append(key)
        focused = self.page.focused
        if key == "Backspace" and focused:
            self.page.inputs[focused] = self.page.inputs.get(focused, "")[:-1]


class FakePage:
    """Scripted result page.

    ``responses`` holds one entry per expected search: a mapping of
    selector -> visible texts shown after submit, or an exception raised by
    the submit click. ``reveal`` maps selectors to texts that appear once
    the phone reveal control is clicked.
    """

    def __init__(self, responses=None, selectors=None, navigates=False):
        self.selectors = dict(selectors or SELECTORS)
        self.responses = list(responses or [])
        self.navigates = navigates
        self.elements = {}
        self.inputs = {}
        self.focused = None
        self.keyboard = FakeKeyboard(self)
        self.typed = []
        self.clicks = []
        self.visited = []
        self.searches = []
        self._reveal = {}

    def locator(self, selector):
        return FakeLocator(self, selector)

    async def type(self, selector, text, delay=0):
        self.typed.append((selector, text))
        self.inputs[selector] = self.inputs.get(selector, "") + text
        if selector == self.selectors["COMPANY_INPUT_SELECTOR"] and text:
            # Tag-style company input: shows a remove control once filled.
            self.elements[self.selectors["MULTI_VALUE_REMOVE_SELECTOR"]] = ["x"]

    async def click(self, selector):
        self.clicks.append(selector)
        self.focused = selector
        if selector == self.selectors["SUBMIT_BUTTON_SELECTOR"]:
            self._submit()
        elif selector == self.selectors["MULTI_VALUE_REMOVE_SELECTOR"]:
            self.elements.pop(selector, None)
            self.inputs[self.selectors["COMPANY_INPUT_SELECTOR"]] = ""
        elif selector == self.selectors["PHONE_REVEAL_BUTTON_SELECTOR"]:
            self.elements.pop(selector, None)
            self.elements.update(self._reveal)

    def _submit(self):
        self.searches.append(
            (
                self.inputs.get(self.selectors["NAME_INPUT_SELECTOR"], ""),
                self.inputs.get(self.selectors["COMPANY_INPUT_SELECTOR"], ""),
            )
        )
        remove = self.selectors["MULTI_VALUE_REMOVE_SELECTOR"]
        keep = {remove: self.elements[remove]} if remove in self.elements else {}
        response = self.responses.pop(0) if self.responses else {}
        if isinstance(response, Exception):
            self.elements = keep
            raise response
        response = dict(response)
        self._reveal = response.pop("__reveal__", {})
        self.elements = {**keep, **response}

    async def wait_for_timeout(self, ms):
        return None

    @asynccontextmanager
    async def expect_navigation(self, wait_until=None, timeout=None):
        yield
        if not self.navigates:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for navigation")

    async def goto(self, url, wait_until=None):
        self.visited.append(url)

    def set_default_timeout(self, ms):
        pass


class FakeContext:
    def __init__(self, page):
        self.pages = [page]
        self.cookies = []
        self.closed = False

    async def add_cookies(self, cookies):
        self.cookies.extend(cookies)


class FakeBrowser:
    """Browser factory recording how it was launched."""

    def __init__(self, page):
        self.page = page
        self.context = FakeContext(page)
        self.launches = []

    @asynccontextmanager
    async def __call__(self, config, headless):
        self.launches.append(headless)
        try:
            yield self.context, self.page
        finally:
            self.context.closed = True


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def selectors_dict():
    return dict(SELECTORS)


@pytest.fixture
def zero_timing():
    return ZERO_TIMING


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def recording_limiter(recording_sleep):
    """Rate limiter drawing a fixed 1s delay that records instead of sleeping."""
    policy = RateLimitPolicy("fixed", (RateLimitTier(1.0, 1.0, 1.0),))
    return RateLimiter(policy, sleep=recording_sleep)


@pytest.fixture
def server_config(tmp_path):
    return ServerConfig(
        host="127.0.0.1",
        port=3000,
        data_dir=str(tmp_path / "data"),
        upload_dir="",
        output_dir="",
        status_dir="",
        public_dir=str(tmp_path / "public"),
        selectors_file=str(tmp_path / "selectors.json"),
        max_upload_bytes=1024 * 1024,
        worker_script="worker.py",
        log_level="INFO",
    )


@pytest.fixture
def worker_config(tmp_path):
    return WorkerConfig(
        profile_dir=str(tmp_path / "profile"),
        headless=False,
        browser_timeout_ms=1000,
        navigation_timeout_ms=10,
        start_signal_poll_seconds=0.01,
        login_timeout_seconds=1,
        cookie_domain="",
        user_agent="pytest",
        viewport_width=800,
        viewport_height=600,
        error_note_limit=500,
    )


@pytest.fixture
def rate_limit_config():
    return RateLimitConfig(policy="none", min_seconds=0, max_seconds=0)
