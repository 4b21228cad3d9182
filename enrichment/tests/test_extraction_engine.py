# enrichment/tests/test_extraction_engine.py
# Search/reset/extract cycle against a scripted page.

import asyncio

from conftest import FakePage
from enrichment.extraction_engine import ExtractionEngine
from enrichment.selectors import SelectorConfig


def make_engine(page, selectors_dict, zero_timing):
    return ExtractionEngine(page, SelectorConfig.from_mapping(selectors_dict), timing=zero_timing)


def test_structured_extraction_with_reveal(selectors_dict, zero_timing):
    page = FakePage(
        [
            {
                ".email": ["jane@acme.com", "jane@gmail.com", "jane@acme.com"],
                ".reveal": ["Show phone"],
                "__reveal__": {".phone": ["+14155551234", "+1 415 ***"]},
            }
        ]
    )
    engine = make_engine(page, selectors_dict, zero_timing)

    async def scenario():
        await engine.search("Jane Doe", "Acme")
        return await engine.extract()

    contacts = asyncio.run(scenario())
    assert page.searches == [("Jane Doe", "Acme")]
    assert contacts.source == "structured"
    assert contacts.emails == ["jane@acme.com", "jane@gmail.com"]
    assert contacts.phones == ["+14155551234"]
    assert ".reveal" in page.clicks


def test_fallback_scans_result_container(selectors_dict, zero_timing):
    page = FakePage([{".result": ["Jane Doe\njane.doe@corp.io\n+14155551234"]}])
    engine = make_engine(page, selectors_dict, zero_timing)

    async def scenario():
        await engine.search("Jane Doe", "Acme")
        return await engine.extract()

    contacts = asyncio.run(scenario())
    assert contacts.source == "fallback"
    assert contacts.emails == ["jane.doe@corp.io"]
    assert contacts.phones == ["+14155551234"]


def test_nothing_found(selectors_dict, zero_timing):
    page = FakePage([{}])
    engine = make_engine(page, selectors_dict, zero_timing)

    async def scenario():
        await engine.search("Nobody", "Nowhere")
        return await engine.extract()

    contacts = asyncio.run(scenario())
    assert contacts.empty
    assert contacts.source == "none"


def test_reset_clears_previous_search(selectors_dict, zero_timing):
    page = FakePage([{}, {}])
    engine = make_engine(page, selectors_dict, zero_timing)

    async def scenario():
        await engine.search("Jane Doe", "Acme")
        await engine.reset_search()
        await engine.search("John Roe", "Globex")

    asyncio.run(scenario())
    assert page.searches == [("Jane Doe", "Acme"), ("John Roe", "Globex")]
    assert page.keyboard.pressed.count("Backspace") == len("Jane Doe")
    assert ".tag-remove" in page.clicks


def test_navigation_event_is_optional(selectors_dict, zero_timing):
    page = FakePage([{".email": ["a@b.com"]}], navigates=True)
    engine = make_engine(page, selectors_dict, zero_timing)

    async def scenario():
        await engine.search("A", "B")
        return await engine.extract()

    assert asyncio.run(scenario()).emails == ["a@b.com"]
