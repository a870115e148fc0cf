from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.exceptions import RequestValidationError
from typing import Optional
import logging
from datetime import datetime, timezone

from menu_scraper.config import load_config_from_env

from .menu_parser import MenuParser, MenuParserError
from .models import MenuResponse, StreamRequest
from .pipeline import (
    ScrapeJobRegistry,
    fetch_menu,
    scrape_and_save,
    sse_stream,
    stream_and_save_events,
    stream_scrape_events,
)
from .places import PlacesClient, PlacesConfigError, PlacesError
from .storage import Storage

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Menu Scraper API",
    description="Restaurant menu acquisition from websites and Google Maps, structured with Gemini",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


# Global exception handler to ensure all errors return JSON
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions and return JSON responses"""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": f"Internal server error: {str(exc)}"
        }
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors and return JSON responses"""
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid request",
            "detail": exc.errors()
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


# Lazy initialization so missing credentials surface as explicit 500s
storage = None
menu_parser = None
scraper_config = load_config_from_env()
scrape_jobs = ScrapeJobRegistry()


def get_storage() -> Storage:
    """Get storage instance, initializing if needed"""
    global storage
    if storage is None:
        try:
            storage = Storage()
        except ValueError as e:
            raise HTTPException(status_code=500, detail=str(e))
    return storage


def get_menu_parser() -> MenuParser:
    """Get menu parser instance, initializing if needed"""
    global menu_parser
    if menu_parser is None:
        try:
            menu_parser = MenuParser()
        except ValueError as e:
            raise HTTPException(status_code=500, detail=str(e))
    return menu_parser


def get_places_client() -> PlacesClient:
    try:
        return PlacesClient()
    except PlacesConfigError as e:
        raise HTTPException(status_code=500, detail=str(e))


def require_stream_request(body: StreamRequest):
    if not body.placeId or not body.restaurantName:
        raise HTTPException(status_code=400, detail="placeId and restaurantName are required")


@app.get("/health")
@app.head("/health")
async def health_check():
    """Health check endpoint"""
    return JSONResponse(
        status_code=200,
        content={
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    )


@app.get("/api/menu", response_model=MenuResponse)
async def get_menu(placeId: Optional[str] = Query(None)):
    """Scrape and structure a restaurant's menu in one blocking call"""
    if not placeId:
        raise HTTPException(status_code=400, detail="placeId parameter is required")

    places = get_places_client()
    parser = get_menu_parser()

    try:
        return await fetch_menu(placeId, places, parser, config=scraper_config)
    except PlacesError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except MenuParserError as e:
        logger.error(f"Menu parsing failed for {placeId}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to parse menu: {e}")


@app.post("/api/restaurant/stream-scrape")
async def stream_scrape(body: StreamRequest):
    """Stream restaurant info, branding and menu chunks without saving"""
    require_stream_request(body)
    places = get_places_client()
    parser = get_menu_parser()

    events = stream_scrape_events(body, places, parser, config=scraper_config)
    return StreamingResponse(sse_stream(events), media_type="text/event-stream", headers=SSE_HEADERS)


@app.post("/api/restaurant/stream-and-save")
async def stream_and_save(body: StreamRequest):
    """Stream menu chunks and save the restaurant once parsing completes"""
    require_stream_request(body)
    storage_instance = get_storage()
    places = get_places_client()
    parser = get_menu_parser()

    events = stream_and_save_events(body, storage_instance, places, parser, config=scraper_config)
    return StreamingResponse(sse_stream(events), media_type="text/event-stream", headers=SSE_HEADERS)


@app.post("/api/restaurant/scrape-and-save")
async def scrape_and_save_restaurant(body: StreamRequest):
    """Scrape, parse and save a restaurant in one blocking call"""
    if not body.placeId:
        raise HTTPException(status_code=400, detail="placeId is required")

    storage_instance = get_storage()
    places = get_places_client()
    parser = get_menu_parser()

    try:
        return await scrape_and_save(body, storage_instance, places, parser, scrape_jobs, config=scraper_config)
    except PlacesError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except MenuParserError as e:
        logger.error(f"Menu parsing failed for {body.placeId}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to parse menu: {e}")


@app.get("/api/restaurant/get")
async def get_restaurant(placeId: Optional[str] = Query(None), slug: Optional[str] = Query(None)):
    """Stored restaurant by place id or slug"""
    if not placeId and not slug:
        raise HTTPException(status_code=400, detail="placeId or slug is required")

    restaurant = await get_storage().get_restaurant(place_id=placeId, slug=slug)
    if restaurant is None:
        return {"exists": False, "restaurant": None}
    return {"exists": True, "restaurant": restaurant}


@app.get("/api/places/autocomplete")
async def places_autocomplete(input: Optional[str] = Query(None)):
    """City suggestions from Google Places"""
    if not input or len(input) < 2:
        return {"predictions": []}

    try:
        return await get_places_client().autocomplete_cities(input)
    except PlacesError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@app.get("/api/places/geocode")
async def places_geocode(latlng: Optional[str] = Query(None)):
    """Reverse geocode a "lat,lng" pair"""
    if not latlng:
        raise HTTPException(status_code=400, detail="Missing latlng parameter")

    try:
        return await get_places_client().reverse_geocode(latlng)
    except PlacesError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
