"""Playwright extraction engine for one search-and-extract cycle.

Wraps a live Playwright async ``Page`` and a :class:`SelectorConfig` and
exposes the three steps the pipeline runs per record: reset the search form,
submit a search, extract contact values from the result. Human-paced delays
go through ``page.wait_for_timeout`` so they are driven by the browser clock.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, TimeoutError as PlaywrightTimeoutError

from enrichment.selectors import SelectorConfig
from Utils.contact_parsing import clean_values, extract_emails, extract_phones, is_masked

logger = logging.getLogger(__name__)

__all__ = ["ExtractionEngine", "ExtractedContacts", "EngineTiming"]


# ---------------------------------------------------------------------------
# Data Classes
# ---------------------------------------------------------------------------


@dataclass
class ExtractedContacts:
    """Raw contact values found for one record.

    Attributes:
        emails: Emails in discovery order.
        phones: Unmasked phone numbers in discovery order.
        source: ``"structured"`` (item selectors), ``"fallback"`` (regex
            over the result container) or ``"none"``.
    """

    emails: List[str] = field(default_factory=list)
    phones: List[str] = field(default_factory=list)
    source: str = "none"

    @property
    def empty(self) -> bool:
        return not self.emails and not self.phones


@dataclass(frozen=True)
class EngineTiming:
    """Millisecond bounds of every wait the engine performs.

    Each pair is a ``(min, max)`` range drawn uniformly per wait.
    """

    keystroke_delay: tuple[int, int] = (50, 150)
    backspace_pause: tuple[int, int] = (20, 50)
    reset_settle: tuple[int, int] = (500, 1000)
    results_settle: tuple[int, int] = (2500, 4000)
    reveal_settle: tuple[int, int] = (1500, 2500)
    navigation_timeout: int = 30000
    email_visible_timeout: int = 5000
    reset_visible_timeout: int = 1000
    item_visible_timeout: int = 2000
    container_visible_timeout: int = 2000


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ExtractionEngine:
    """Drive the target site's search form and read contact details.

    Constructor Args:
        page: Live Playwright async Page object.
        selectors: Validated selector configuration.
        timing: Wait bounds; tests pass zero ranges.
        rng: Random source for human-paced delays.
    """

    def __init__(
        self,
        page: Page,
        selectors: SelectorConfig,
        timing: Optional[EngineTiming] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.page = page
        self.selectors = selectors
        self.timing = timing or EngineTiming()
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _between(self, bounds: tuple[int, int]) -> int:
        low, high = bounds
        return self._rng.randint(low, high) if high > low else low

    async def _pause(self, bounds: tuple[int, int]) -> None:
        await self.page.wait_for_timeout(self._between(bounds))

    async def _is_visible(self, selector: str, timeout: int) -> bool:
        """Wait up to ``timeout`` ms for the first match to become visible."""
        if not selector:
            return False
        try:
            await self.page.locator(selector).first.wait_for(
                state="visible", timeout=timeout
            )
            return True
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as e:
            logger.debug("Visibility check failed for %s: %s", selector, e)
            return False

    # ------------------------------------------------------------------
    # Search form
    # ------------------------------------------------------------------

    async def reset_search(self) -> None:
        """Clear state the target form keeps between searches.

        Removes a tag-style company value when the remove control is shown,
        then deletes the name input one character at a time.
        """
        remove_selector = self.selectors.multi_value_remove_selector
        if await self._is_visible(remove_selector, self.timing.reset_visible_timeout):
            await self.page.locator(remove_selector).first.click()

        name_input = self.page.locator(self.selectors.name_input_selector)
        current = await name_input.input_value()
        if current:
            await name_input.click()
            for _ in range(len(current)):
                await self.page.keyboard.press("Backspace")
                await self._pause(self.timing.backspace_pause)
        await self._pause(self.timing.reset_settle)

    async def search(self, full_name: str, company_name: str) -> None:
        """Type the search values, submit and wait for results to settle.

        A missing navigation event after submit is expected for sites that
        update results in place and is not an error.
        """
        await self.page.type(
            self.selectors.name_input_selector,
            full_name,
            delay=self._between(self.timing.keystroke_delay),
        )
        await self.page.type(
            self.selectors.company_input_selector,
            company_name,
            delay=self._between(self.timing.keystroke_delay),
        )

        try:
            async with self.page.expect_navigation(
                wait_until="domcontentloaded",
                timeout=self.timing.navigation_timeout,
            ):
                await self.page.click(self.selectors.submit_button_selector)
        except PlaywrightTimeoutError:
            logger.info("No navigation after submit, continuing")

        await self._pause(self.timing.results_settle)

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    async def _structured_emails(self) -> List[str]:
        selector = self.selectors.email_item_selector
        if not await self._is_visible(selector, self.timing.email_visible_timeout):
            return []
        texts = await self.page.locator(selector).all_inner_texts()
        return clean_values(texts)

    async def _structured_phones(self) -> List[str]:
        reveal = self.selectors.phone_reveal_button_selector
        if await self._is_visible(reveal, self.timing.item_visible_timeout):
            await self.page.locator(reveal).first.click()
            await self._pause(self.timing.reveal_settle)

        selector = self.selectors.phone_item_selector
        if not await self._is_visible(selector, self.timing.item_visible_timeout):
            return []
        texts = await self.page.locator(selector).all_inner_texts()
        phones = []
        for text in clean_values(texts):
            if is_masked(text):
                logger.debug("Skipping masked phone value %r", text)
                continue
            phones.append(text)
        return phones

    async def _fallback_contacts(self) -> ExtractedContacts:
        selector = self.selectors.result_container_selector
        if not await self._is_visible(selector, self.timing.container_visible_timeout):
            return ExtractedContacts()
        raw = await self.page.locator(selector).first.inner_text()
        contacts = ExtractedContacts(
            emails=extract_emails(raw),
            phones=extract_phones(raw),
            source="fallback",
        )
        if contacts.empty:
            contacts.source = "none"
        return contacts

    async def extract(self) -> ExtractedContacts:
        """Read contact values from the current result page.

        Structured item selectors are tried first; only when they yield no
        email and no phone is the result container's text scanned with the
        email/phone patterns.

        Returns:
            ExtractedContacts with the source that produced the values.
        """
        emails = await self._structured_emails()
        phones = await self._structured_phones()
        if emails or phones:
            return ExtractedContacts(emails=emails, phones=phones, source="structured")
        return await self._fallback_contacts()
