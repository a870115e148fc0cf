"""
Google Places client.

Place details (name, address, website, city, currency, phone) plus the
city autocomplete and reverse geocode pass-throughs used by the frontend.
"""
import os
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

PLACE_DETAILS_URL = "https://places.googleapis.com/v1/places/{place_id}"
AUTOCOMPLETE_URL = "https://maps.googleapis.com/maps/api/place/autocomplete/json"
GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

PLACE_FIELD_MASK = ",".join([
    "id",
    "displayName",
    "formattedAddress",
    "websiteUri",
    "addressComponents",
    "nationalPhoneNumber",
    "internationalPhoneNumber",
])

CITY_COMPONENT_TYPES = ("locality", "administrative_area_level_3")


class PlacesError(Exception):
    """Place lookup failed upstream"""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


class PlacesConfigError(PlacesError):
    """API key missing"""

    def __init__(self, message: str = "Google Maps API key not configured"):
        super().__init__(message, status_code=500)


@dataclass(frozen=True)
class PlaceDetails:
    place_id: str
    name: str
    address: Optional[str] = None
    website_url: Optional[str] = None
    city: Optional[str] = None
    country_code: str = "US"
    currency: str = "USD"
    national_phone: Optional[str] = None
    international_phone: Optional[str] = None

    def preferred_phone(self, fallback: Optional[str] = None) -> Optional[str]:
        """International format first, since it works in ``tel:`` links"""
        return self.international_phone or self.national_phone or fallback or None


def derive_currency(country_code: Optional[str]) -> str:
    return "CAD" if country_code == "CA" else "USD"


def _find_component(components: List[Dict[str, Any]], types) -> Optional[Dict[str, Any]]:
    for component in components or []:
        if any(t in component.get("types", []) for t in types):
            return component
    return None


def extract_city(components: List[Dict[str, Any]]) -> Optional[str]:
    """First component typed locality or administrative_area_level_3"""
    component = _find_component(components, CITY_COMPONENT_TYPES)
    if not component:
        return None
    return component.get("longText") or component.get("shortText") or None


def extract_country_code(components: List[Dict[str, Any]]) -> str:
    component = _find_component(components, ("country",))
    return (component or {}).get("shortText") or "US"


def parse_place_details(place_id: str, data: Dict[str, Any]) -> PlaceDetails:
    components = data.get("addressComponents") or []
    country_code = extract_country_code(components)
    return PlaceDetails(
        place_id=place_id,
        name=(data.get("displayName") or {}).get("text") or "Unknown Restaurant",
        address=data.get("formattedAddress"),
        website_url=data.get("websiteUri") or None,
        city=extract_city(components),
        country_code=country_code,
        currency=derive_currency(country_code),
        national_phone=data.get("nationalPhoneNumber"),
        international_phone=data.get("internationalPhoneNumber"),
    )


class PlacesClient:
    def __init__(self, api_key: Optional[str] = None, client: Optional[httpx.AsyncClient] = None,
                 timeout: float = 30.0):
        self.api_key = api_key or os.getenv("GOOGLE_MAPS_API_KEY")
        if not self.api_key:
            raise PlacesConfigError()
        self.client = client
        self.timeout = timeout

    async def _get(self, url: str, params: Optional[Dict[str, str]] = None,
                   headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        if self.client is not None:
            return await self.client.get(url, params=params, headers=headers)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(url, params=params, headers=headers)

    async def get_place_details(self, place_id: str) -> PlaceDetails:
        url = PLACE_DETAILS_URL.format(place_id=quote(place_id, safe=""))
        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": PLACE_FIELD_MASK,
        }

        try:
            response = await self._get(url, headers=headers)
        except httpx.HTTPError as e:
            raise PlacesError(f"Failed to fetch place details: {e}") from e

        if response.status_code >= 400:
            logger.error(f"Google Places API error {response.status_code}: {response.text[:500]}")
            raise PlacesError(
                "Failed to fetch place details from Google Places API",
                status_code=response.status_code,
            )

        details = parse_place_details(place_id, response.json())
        logger.info(f"Restaurant details: name={details.name}, city={details.city}, website={details.website_url}")
        return details

    async def autocomplete_cities(self, text: str) -> Dict[str, Any]:
        if not text or len(text) < 2:
            return {"predictions": []}
        try:
            response = await self._get(AUTOCOMPLETE_URL, params={
                "input": text,
                "types": "(cities)",
                "key": self.api_key,
            })
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PlacesError(f"Failed to fetch suggestions: {e}", status_code=500) from e

    async def reverse_geocode(self, latlng: str) -> Dict[str, Any]:
        try:
            response = await self._get(GEOCODE_URL, params={"latlng": latlng, "key": self.api_key})
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PlacesError(f"Failed to geocode location: {e}", status_code=500) from e
