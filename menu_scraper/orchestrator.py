"""
Concurrent scrape orchestration.

Runs the website and map-page scrapers side by side under one joint
timeout and merges whatever they produced into a single CombinedContent.
"""
import asyncio
import logging
from typing import Awaitable, Optional

from .config import ScraperConfig
from .google_maps import GoogleMapsMenuScraper
from .scraper_logger import get_scraper_logger
from .types import CombinedContent, ScrapeResult
from .website import WebsiteMenuScraper

logger = logging.getLogger(__name__)


def usable_text(result: Optional[ScrapeResult], config: ScraperConfig) -> str:
    """Source text if it clears the content floor, otherwise empty"""
    if result is None:
        return ""
    text = result.text.strip()
    return text if len(text) >= config.min_content_length else ""


def merge_results(
    website: Optional[ScrapeResult],
    maps: Optional[ScrapeResult],
    config: Optional[ScraperConfig] = None,
) -> CombinedContent:
    """
    Merge both sources. Website text comes first; logo and colors each
    prefer the website, then the map page.
    """
    config = config or ScraperConfig()
    website_text = usable_text(website, config)
    maps_text = usable_text(maps, config)

    text = "\n\n".join(part for part in (website_text, maps_text) if part).strip()

    logo = (website.logo if website else None) or (maps.logo if maps else None)
    colors = (website.colors if website else None) or (maps.colors if maps else None)

    return CombinedContent(
        text=text,
        logo=logo,
        colors=colors,
        website_text=website_text,
        maps_text=maps_text,
        website=website,
        maps=maps,
    )


async def _isolated(name: str, scrape: Awaitable[Optional[ScrapeResult]]) -> Optional[ScrapeResult]:
    try:
        return await scrape
    except Exception as e:
        logger.warning(f"{name} scraper failed: {e}")
        return None


async def _nothing() -> None:
    return None


async def scrape_all(
    place_id: str,
    website_url: Optional[str] = None,
    config: Optional[ScraperConfig] = None,
    website_scraper: Optional[WebsiteMenuScraper] = None,
    maps_scraper: Optional[GoogleMapsMenuScraper] = None,
    timeout: Optional[float] = None,
) -> CombinedContent:
    """
    Scrape both sources concurrently and merge them.

    Each scraper is isolated so one failing never affects the other. The
    pair is raced against a single timeout; when it fires, both sources are
    treated as failed and their tasks cancelled. Never returns None.
    """
    config = config or ScraperConfig()
    timeout = config.scrape_timeout if timeout is None else timeout
    website_scraper = website_scraper or WebsiteMenuScraper(config)
    maps_scraper = maps_scraper or GoogleMapsMenuScraper(config)

    detail_logger = get_scraper_logger()
    detail_logger.log_restaurant_processing(place_id, "Scraping", f"website={website_url or 'none'}")

    website_task = asyncio.ensure_future(
        _isolated("Website", website_scraper.scrape(website_url)) if website_url else _nothing()
    )
    maps_task = asyncio.ensure_future(_isolated("Google Maps", maps_scraper.scrape(place_id)))

    try:
        website, maps = await asyncio.wait_for(asyncio.gather(website_task, maps_task), timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Scraping timed out after {timeout}s for {place_id}")
        detail_logger.log_warning(f"Scrape timeout after {timeout}s, discarding both sources")
        for task in (website_task, maps_task):
            task.cancel()
        website, maps = None, None

    combined = merge_results(website, maps, config)
    detail_logger.log_data_summary(place_id, {
        "website_text": f"{len(combined.website_text)} chars",
        "maps_text": f"{len(combined.maps_text)} chars",
        "logo": combined.logo,
        "colors": combined.colors.to_dict() if combined.colors else None,
    })
    return combined
