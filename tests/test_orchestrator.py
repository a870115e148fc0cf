import asyncio
import time

import httpx
import pytest

from menu_scraper.config import ScraperConfig
from menu_scraper.google_maps import GoogleMapsMenuScraper
from menu_scraper.orchestrator import merge_results, scrape_all
from menu_scraper.types import ColorPalette, ScrapeResult
from menu_scraper.website import WebsiteMenuScraper

from conftest import FakeSession, session_factory


WEBSITE_TEXT = "Website menu: Margherita Pizza, San Marzano tomato, fior di latte, basil $16. " * 2
MAPS_TEXT = "\n\n=== LUNCH ===\nClub Sandwich - turkey and bacon on sourdough $13. " * 2


class DummyScraper:
    def __init__(self, result=None, error=None, delay=0.0, hang=False):
        self.result = result
        self.error = error
        self.delay = delay
        self.hang = hang
        self.calls = []
        self.cancelled = False

    async def scrape(self, target):
        self.calls.append(target)
        try:
            if self.hang:
                await asyncio.Event().wait()
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error:
            raise self.error
        return self.result


def result(text="", logo=None, colors=None):
    return ScrapeResult(text=text, logo=logo, colors=colors)


@pytest.mark.parametrize("website_logo", [None, "https://site/logo.png"])
@pytest.mark.parametrize("maps_logo", [None, "https://maps/logo.png"])
@pytest.mark.parametrize("website_present", [True, False])
@pytest.mark.parametrize("maps_present", [True, False])
def test_logo_precedence(website_logo, maps_logo, website_present, maps_present):
    website = result(WEBSITE_TEXT, logo=website_logo) if website_present else None
    maps = result(MAPS_TEXT, logo=maps_logo) if maps_present else None

    combined = merge_results(website, maps)

    expected = (website_logo if website_present else None) or (maps_logo if maps_present else None)
    assert combined.logo == expected


def test_colors_precedence_is_independent_of_logo():
    website = result(WEBSITE_TEXT, logo="https://site/logo.png")
    maps = result(MAPS_TEXT, colors=ColorPalette(primary="#123456"))

    combined = merge_results(website, maps)

    assert combined.logo == "https://site/logo.png"
    assert combined.colors == ColorPalette(primary="#123456")


def test_website_text_comes_first():
    combined = merge_results(result(WEBSITE_TEXT), result(MAPS_TEXT))

    assert combined.text == (WEBSITE_TEXT.strip() + "\n\n" + MAPS_TEXT.strip())
    assert combined.has_website_content


def test_short_text_is_treated_as_absent():
    combined = merge_results(result("Menu coming soon"), result(MAPS_TEXT))

    assert combined.website_text == ""
    assert combined.text == MAPS_TEXT.strip()
    assert not combined.has_website_content


def test_both_missing_gives_empty_content():
    combined = merge_results(None, None)

    assert combined.text == ""
    assert combined.logo is None and combined.colors is None


def test_scrape_all_isolates_failures():
    website = DummyScraper(error=RuntimeError("boom"))
    maps = DummyScraper(result=result(MAPS_TEXT))

    combined = asyncio.run(scrape_all(
        "P1", "https://acme-diner.com", website_scraper=website, maps_scraper=maps,
    ))

    assert combined.text == MAPS_TEXT.strip()
    assert website.calls == ["https://acme-diner.com"]
    assert maps.calls == ["P1"]


def test_scrape_all_skips_website_without_url():
    website = DummyScraper(result=result(WEBSITE_TEXT))
    maps = DummyScraper(result=result(MAPS_TEXT))

    asyncio.run(scrape_all("P1", None, website_scraper=website, maps_scraper=maps))

    assert website.calls == []


def test_scrape_all_runs_sources_concurrently():
    website = DummyScraper(result=result(WEBSITE_TEXT), delay=0.2)
    maps = DummyScraper(result=result(MAPS_TEXT), delay=0.2)

    started = time.monotonic()
    asyncio.run(scrape_all("P1", "https://acme-diner.com", website_scraper=website, maps_scraper=maps))

    assert time.monotonic() - started < 0.39


def test_scrape_all_timeout_discards_both_sources():
    website = DummyScraper(result=result(WEBSITE_TEXT))
    maps = DummyScraper(hang=True)

    started = time.monotonic()
    combined = asyncio.run(scrape_all(
        "P1", "https://acme-diner.com", config=ScraperConfig(),
        website_scraper=website, maps_scraper=maps, timeout=0.2,
    ))

    assert time.monotonic() - started < 2
    assert combined.text == ""
    assert combined.website is None and combined.maps is None
    assert maps.cancelled


def test_scrape_all_timeout_closes_browser_sessions_mid_navigation():
    website_session = FakeSession(block_on="navigate")
    maps_session = FakeSession(block_on="navigate")

    def handler(request):
        return httpx.Response(404, text="")

    async def run():
        config = ScraperConfig()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            website = WebsiteMenuScraper(config, session_factory=session_factory(website_session), client=client)
            maps = GoogleMapsMenuScraper(config, session_factory=session_factory(maps_session))
            return await scrape_all("P1", "https://acme-diner.com/", config=config,
                                    website_scraper=website, maps_scraper=maps, timeout=0.2)

    combined = asyncio.run(run())

    assert combined.text == ""
    assert website_session.navigations == ["https://acme-diner.com/"]
    assert maps_session.entered and maps_session.closed
    assert website_session.entered and website_session.closed
