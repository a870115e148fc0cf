"""
Menu acquisition flows.

``fetch_menu`` is the blocking flow behind ``GET /api/menu`` and
``scrape_and_save`` the blocking save flow. The two
``stream_*`` generators yield the event dicts of the server-sent-event
flows; ``sse_stream`` turns them into wire frames and guarantees that every
stream ends with exactly one ``complete`` or ``error`` event.
"""
import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from menu_scraper.config import ScraperConfig
from menu_scraper.orchestrator import scrape_all
from menu_scraper.scraper_logger import get_scraper_logger
from menu_scraper.types import CombinedContent

from .menu_parser import MenuParser, PLACEHOLDER_TEXT
from .models import MenuChunk, MenuDebug, MenuResponse, RestaurantInfo, StreamRequest, StructuredMenu
from .places import PlacesClient
from .storage import Storage, generate_slug

logger = logging.getLogger(__name__)

ScrapeFunc = Callable[..., Awaitable[CombinedContent]]

TERMINAL_EVENTS = ("complete", "error")

SCRAPE_JOB_STALE_SECONDS = 5 * 60


def format_sse(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


def status_event(message: str, step: int, total_steps: int) -> Dict[str, Any]:
    return {"type": "status", "message": message, "step": step, "totalSteps": total_steps}


def branding_event(combined: CombinedContent) -> Optional[Dict[str, Any]]:
    """Branding event, or None when neither a logo nor colors were found"""
    if not combined.has_branding:
        return None
    data: Dict[str, Any] = {}
    if combined.logo:
        data["logo"] = combined.logo
    if combined.colors:
        data["colors"] = combined.colors.to_dict()
    return {"type": "branding", "data": data}


def model_input(combined: CombinedContent) -> str:
    return combined.text or PLACEHOLDER_TEXT


async def sse_stream(events: AsyncIterator[Dict[str, Any]]) -> AsyncIterator[str]:
    """
    Frame events as ``data: <json>\\n\\n``. Stops after the first terminal
    event; an exception from the flow becomes a single ``error`` event.
    """
    try:
        async for event in events:
            yield format_sse(event)
            if event["type"] in TERMINAL_EVENTS:
                return
    except Exception as e:
        logger.error(f"Stream error: {e}", exc_info=True)
        yield format_sse({"type": "error", "message": str(e) or "Unknown error"})
    finally:
        await events.aclose()


async def stream_menu_chunks(
    parser: MenuParser,
    text: str,
    restaurant_name: str,
    has_website_content: bool,
) -> AsyncIterator[MenuChunk]:
    """Yield chunks as the parser produces them; parser errors are re-raised after the last chunk"""
    queue: asyncio.Queue = asyncio.Queue()
    done = object()

    async def produce():
        try:
            await parser.parse_stream(text, restaurant_name, has_website_content, queue.put_nowait)
        finally:
            queue.put_nowait(done)

    task = asyncio.ensure_future(produce())
    try:
        while True:
            chunk = await queue.get()
            if chunk is done:
                break
            yield chunk
        await task
    finally:
        if not task.done():
            task.cancel()


async def fetch_menu(
    place_id: str,
    places: PlacesClient,
    parser: MenuParser,
    scrape: ScrapeFunc = scrape_all,
    config: Optional[ScraperConfig] = None,
) -> MenuResponse:
    """Place details, both scrapers, then a single-shot parse when there is any content"""
    detail_logger = get_scraper_logger()
    detail_logger.log_separator(f"Menu request: {place_id}")

    details = await places.get_place_details(place_id)
    combined = await scrape(place_id, details.website_url, config=config)

    menu = StructuredMenu()
    gpt_input = ""
    if combined.text:
        gpt_input = model_input(combined)
        menu = await parser.parse(gpt_input, details.name, combined.has_website_content)

    website, maps = combined.website, combined.maps
    detail_logger.log_restaurant_processing(place_id, "Parsed", f"{len(menu.items)} items")

    return MenuResponse(
        restaurant=RestaurantInfo(
            name=details.name,
            websiteUrl=details.website_url,
            city=details.city,
            currency=details.currency,
            logo=combined.logo,
            colors=combined.colors.to_dict() if combined.colors else None,
        ),
        menu=menu,
        debug=MenuDebug(
            websiteScraperOutput=combined.website_text,
            googleMapsScraperOutput=combined.maps_text,
            websiteLogo=website.logo if website else None,
            googleMapsLogo=maps.logo if maps else None,
            websiteColors=website.colors.to_dict() if website and website.colors else None,
            googleMapsColors=maps.colors.to_dict() if maps and maps.colors else None,
            gptInput=gpt_input,
            inputLength=len(gpt_input),
        ),
    )


async def stream_scrape_events(
    request: StreamRequest,
    places: PlacesClient,
    parser: MenuParser,
    scrape: ScrapeFunc = scrape_all,
    config: Optional[ScraperConfig] = None,
) -> AsyncIterator[Dict[str, Any]]:
    """Scrape and parse without saving; five-step progress"""
    yield status_event("Fetching restaurant details...", 1, 5)

    details = await places.get_place_details(request.placeId)
    yield {
        "type": "restaurant_info",
        "data": {
            "name": request.restaurantName,
            "websiteUrl": details.website_url,
            "city": details.city,
            "currency": details.currency,
        },
    }

    yield status_event("Scraping website and menu data...", 2, 5)
    combined = await scrape(request.placeId, details.website_url, config=config)

    branding = branding_event(combined)
    if branding:
        yield branding

    yield status_event("Parsing menu with AI...", 3, 5)
    async for chunk in stream_menu_chunks(
        parser, model_input(combined), request.restaurantName, combined.has_website_content
    ):
        yield {"type": "menu_chunk", "data": chunk.model_dump()}

    yield {"type": "complete", "message": "Menu parsing complete!", "step": 5, "totalSteps": 5}


def restaurant_row(
    request: StreamRequest,
    restaurant: RestaurantInfo,
    description: Optional[str],
    phone: Optional[str],
) -> Dict[str, Any]:
    """Restaurant table row for a freshly scraped place"""
    colors = restaurant.colors or {}
    return {
        "google_place_id": request.placeId,
        "name": restaurant.name,
        "slug": generate_slug(restaurant.name),
        "address": request.address or None,
        "city": restaurant.city,
        "website_url": restaurant.websiteUrl,
        "currency": restaurant.currency,
        "logo_url": restaurant.logo,
        "description": description,
        "primary_colour": colors.get("primary"),
        "secondary_colour": colors.get("secondary"),
        "accent_colour": colors.get("accent"),
        "latitude": request.latitude,
        "longitude": request.longitude,
        "phone": phone,
        "rating": request.rating,
        "verified": False,
    }


class MenuAccumulator:
    """Collects streamed chunks into the shape the storage layer saves"""

    def __init__(self):
        self.description: Optional[str] = None
        self.cuisine: Optional[str] = None
        self.tags: List[str] = []
        self.categories: List[str] = []
        self.items: List[Dict[str, Any]] = []

    def add(self, chunk: MenuChunk):
        if chunk.type == "description":
            self.description = chunk.data.get("description")
        elif chunk.type == "cuisine":
            self.cuisine = chunk.data.get("cuisine")
        elif chunk.type == "tags":
            self.tags = chunk.data.get("tags") or []
        elif chunk.type == "category" and chunk.data.get("categoryName"):
            self.categories.append(chunk.data["categoryName"])
        elif chunk.type == "item" and chunk.data.get("item"):
            self.items.append(chunk.data["item"])

    def menu(self) -> Dict[str, Any]:
        return {"categories": self.categories, "items": self.items}


async def stream_and_save_events(
    request: StreamRequest,
    storage: Storage,
    places: PlacesClient,
    parser: MenuParser,
    scrape: ScrapeFunc = scrape_all,
    config: Optional[ScraperConfig] = None,
) -> AsyncIterator[Dict[str, Any]]:
    """Return the stored restaurant if there is one, otherwise scrape, parse and save it"""
    detail_logger = get_scraper_logger()
    yield status_event("Finding menu...", 1, 2)

    existing = await storage.get_restaurant_by_place_id(request.placeId)
    if existing:
        detail_logger.log_restaurant_processing(request.placeId, "Already stored", f"id={existing.get('id')}")
        yield {
            "type": "complete",
            "message": "Restaurant already exists",
            "alreadyExists": True,
            "restaurant": existing,
        }
        return

    details = await places.get_place_details(request.placeId)
    combined = await scrape(request.placeId, details.website_url, config=config)

    branding = branding_event(combined)
    if branding:
        yield branding

    yield status_event("Crafting menu...", 2, 2)

    collected = MenuAccumulator()
    async for chunk in stream_menu_chunks(
        parser, model_input(combined), request.restaurantName, combined.has_website_content
    ):
        collected.add(chunk)
        yield {"type": "menu_chunk", "data": chunk.model_dump()}

    saved = await storage.save_restaurant(restaurant_row(
        request,
        RestaurantInfo(
            name=request.restaurantName,
            websiteUrl=details.website_url,
            city=details.city,
            currency=details.currency,
            logo=combined.logo,
            colors=combined.colors.to_dict() if combined.colors else None,
        ),
        description=collected.description,
        phone=details.preferred_phone(request.phone),
    ), collected.menu())

    detail_logger.log_data_summary(request.placeId, {
        "restaurant_id": saved["id"],
        "categories": collected.categories,
        "items": collected.items,
    })

    yield {
        "type": "complete",
        "message": "Restaurant saved successfully!",
        "restaurantId": saved["id"],
        "restaurantSlug": saved["slug"],
        "totalCategories": len(collected.categories),
        "totalItems": len(collected.items),
    }


class ScrapeJobRegistry:
    """
    In-flight scrape-and-save jobs keyed by place id.

    A job leaves the registry when it finishes, or on the next ``cleanup``
    once it has been running longer than ``stale_after`` seconds.
    """

    def __init__(self, stale_after: float = SCRAPE_JOB_STALE_SECONDS):
        self.stale_after = stale_after
        self.jobs: Dict[str, Tuple[float, asyncio.Task]] = {}

    def cleanup(self):
        now = time.monotonic()
        for place_id, (started, _) in list(self.jobs.items()):
            if now - started >= self.stale_after:
                logger.info(f"Removing stale scrape job for {place_id}")
                self.jobs.pop(place_id, None)

    def get(self, place_id: str) -> Optional[asyncio.Task]:
        job = self.jobs.get(place_id)
        return job[1] if job else None

    def start(self, place_id: str, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self.jobs[place_id] = (time.monotonic(), task)

        def forget(finished):
            if self.get(place_id) is finished:
                self.jobs.pop(place_id, None)

        task.add_done_callback(forget)
        return task

    def discard(self, place_id: str):
        self.jobs.pop(place_id, None)


async def scrape_and_save(
    request: StreamRequest,
    storage: Storage,
    places: PlacesClient,
    parser: MenuParser,
    jobs: ScrapeJobRegistry,
    scrape: ScrapeFunc = scrape_all,
    config: Optional[ScraperConfig] = None,
) -> Dict[str, Any]:
    """
    Blocking scrape, parse and save for one place.

    A second request for a place that is already being scraped waits for
    that job and reports it as in progress instead of scraping again. The
    shared job is shielded so a disconnecting client never cancels it.
    """
    jobs.cleanup()

    running = jobs.get(request.placeId)
    if running is not None:
        logger.info(f"Scrape job already in progress for {request.placeId}, waiting")
        try:
            await asyncio.shield(running)
        except Exception as e:
            logger.warning(f"In-progress scrape job for {request.placeId} failed: {e}")
            jobs.discard(request.placeId)
        return {"success": True, "message": "Scrape job in progress", "inProgress": True}

    task = jobs.start(request.placeId, _scrape_and_save(request, storage, places, parser, scrape, config))
    return await asyncio.shield(task)


async def _scrape_and_save(request, storage, places, parser, scrape, config) -> Dict[str, Any]:
    detail_logger = get_scraper_logger()

    existing = await storage.get_restaurant_by_place_id(request.placeId)
    if existing:
        detail_logger.log_restaurant_processing(request.placeId, "Already stored", f"id={existing.get('id')}")
        return {
            "success": True,
            "restaurantId": existing.get("id"),
            "restaurantSlug": existing.get("slug"),
            "message": "Restaurant already exists",
            "alreadyExists": True,
        }

    response = await fetch_menu(request.placeId, places, parser, scrape=scrape, config=config)
    menu = response.menu

    saved = await storage.save_restaurant(
        restaurant_row(request, response.restaurant, description=menu.description, phone=request.phone or None),
        {"categories": menu.categories, "items": [item.model_dump() for item in menu.items]},
    )
    detail_logger.log_data_summary(request.placeId, {
        "restaurant_id": saved["id"],
        "categories": menu.categories,
        "items": menu.items,
    })

    return {
        "success": True,
        "restaurantId": saved["id"],
        "restaurantSlug": saved["slug"],
        "totalCategories": saved["total_categories"],
        "totalItems": saved["total_items"],
        "message": "Restaurant and menu saved successfully",
        "alreadyExists": False,
    }
