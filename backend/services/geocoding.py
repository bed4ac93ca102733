"""Location extraction and geocoding for free-text disaster descriptions.

Two steps, mirroring how a real deployment would chain services:
1. Extract a location name from text (Foundry model when configured,
   otherwise a neighbourhood pattern table).
2. Resolve the name to coordinates (lookup table; unknown names map to
   the NYC centre).

Results are cached for 24h keyed on a SHA-256 of the full description.
"""

import asyncio
import hashlib
import logging
import re

from errors import LocationExtractionError
from services.cache import TTLCache
from services.foundry_client import complete, parse_json_reply

logger = logging.getLogger(__name__)

GEOCODE_TTL_MINUTES = 1440

DEFAULT_LOCATION = "New York City"
DEFAULT_COORDINATES = {"lat": 40.7128, "lng": -74.006}

# First match wins, so more specific names must come before broader ones.
LOCATION_PATTERNS = [
    (re.compile(r"times square", re.I), "Times Square, NYC"),
    (re.compile(r"central park", re.I), "Central Park, NYC"),
    (re.compile(r"lower east side", re.I), "Lower East Side, NYC"),
    (re.compile(r"washington square", re.I), "Washington Square Park, NYC"),
    (re.compile(r"union square", re.I), "Union Square, NYC"),
    (re.compile(r"wall street", re.I), "Wall Street, NYC"),
    (re.compile(r"chinatown", re.I), "Chinatown, NYC"),
    (re.compile(r"soho", re.I), "SoHo, NYC"),
    (re.compile(r"brooklyn", re.I), "Brooklyn, NYC"),
    (re.compile(r"queens", re.I), "Queens, NYC"),
    (re.compile(r"bronx", re.I), "Bronx, NYC"),
    (re.compile(r"manhattan|nyc|new york city", re.I), "Manhattan, NYC"),
]

KNOWN_COORDINATES = {
    "Manhattan, NYC": {"lat": 40.7831, "lng": -73.9712},
    "Brooklyn, NYC": {"lat": 40.6782, "lng": -73.9442},
    "Queens, NYC": {"lat": 40.7282, "lng": -73.7949},
    "Bronx, NYC": {"lat": 40.8448, "lng": -73.8648},
    "Times Square, NYC": {"lat": 40.758, "lng": -73.9855},
    "Central Park, NYC": {"lat": 40.7829, "lng": -73.9654},
    "Lower East Side, NYC": {"lat": 40.7209, "lng": -73.9896},
    "Washington Square Park, NYC": {"lat": 40.7308, "lng": -73.9973},
    "Union Square, NYC": {"lat": 40.7359, "lng": -73.9911},
    "Wall Street, NYC": {"lat": 40.7074, "lng": -74.0113},
    "Chinatown, NYC": {"lat": 40.7158, "lng": -73.997},
    "SoHo, NYC": {"lat": 40.723, "lng": -74.003},
    "Madison Square Garden, NYC": {"lat": 40.7505, "lng": -73.9934},
    "Prospect Park, Brooklyn": {"lat": 40.6602, "lng": -73.969},
    "Brooklyn Bridge Park, Brooklyn": {"lat": 40.7023, "lng": -73.9969},
    DEFAULT_LOCATION: DEFAULT_COORDINATES,
}

EXTRACTION_PROMPT = (
    "Extract the most specific place name mentioned in the user's disaster report. "
    'Respond in JSON: {"location_name": "<place>, <city>"}. '
    'If no place is mentioned, respond {"location_name": null}.'
)


def geocode_cache_key(description: str) -> str:
    digest = hashlib.sha256(description.encode("utf-8")).hexdigest()
    return f"geocode:{digest}"


def match_location(description: str) -> str:
    """Pattern-table extraction; falls back to the city default."""
    for pattern, location in LOCATION_PATTERNS:
        if pattern.search(description):
            return location
    return DEFAULT_LOCATION


def lookup_coordinates(location_name: str) -> dict:
    return dict(KNOWN_COORDINATES.get(location_name, DEFAULT_COORDINATES))


class Geocoder:
    def __init__(self, cache: TTLCache, use_ai: bool = False, timeout_seconds: float = 5.0):
        self._cache = cache
        self._use_ai = use_ai
        self._timeout = timeout_seconds

    async def extract_location(self, description: str) -> str:
        if self._use_ai:
            try:
                name = await asyncio.wait_for(self._extract_with_model(description), self._timeout)
                if name:
                    return name
            except Exception as e:
                logger.warning("Model location extraction failed, using pattern table: %s", e)
        return match_location(description)

    async def _extract_with_model(self, description: str) -> str | None:
        reply = await asyncio.to_thread(
            complete,
            messages=[
                {"role": "system", "content": EXTRACTION_PROMPT},
                {"role": "user", "content": description},
            ],
            max_tokens=60,
        )
        name = parse_json_reply(reply).get("location_name")
        return name.strip() if isinstance(name, str) and name.strip() else None

    async def locate(self, description: str, mock_mode: bool = False) -> dict:
        """Extract + geocode a description, consulting the cache first."""
        key = geocode_cache_key(description)
        cached = await self._cache.get(key)
        if cached:
            logger.info("Returning cached geocoding result")
            return cached

        try:
            location_name = await self.extract_location(description)
            coordinates = lookup_coordinates(location_name)
        except Exception as e:
            logger.exception("Geocoding failed")
            raise LocationExtractionError(str(e)) from e

        result = {
            "location_name": location_name,
            "coordinates": coordinates,
            "extracted_from": description,
        }
        if mock_mode:
            result["mock_mode"] = True

        await self._cache.set(key, result, GEOCODE_TTL_MINUTES)
        logger.info("Geocoded %s -> %s, %s", location_name, coordinates["lat"], coordinates["lng"])
        return result

    async def coordinates_for(self, *parts: str | None, mock_mode: bool = False) -> dict | None:
        """Coordinates for a new entity, or None. Failures only cost the location."""
        text = " ".join(p for p in parts if p).strip()
        if not text:
            return None
        try:
            result = await self.locate(text, mock_mode=mock_mode)
        except LocationExtractionError as e:
            logger.warning("Geocoding error, storing without coordinates: %s", e.reason)
            return None
        return result["coordinates"]
