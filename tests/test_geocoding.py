import pytest

from errors import LocationExtractionError
from services import geocoding
from services.cache import MemoryCacheBackend, TTLCache
from services.geocoding import Geocoder, geocode_cache_key, lookup_coordinates, match_location


@pytest.fixture
def cache(clock):
    return TTLCache(MemoryCacheBackend(), clock=clock)


def test_neighbourhood_beats_city_wide_pattern():
    assert match_location("Brooklyn Power Outage in Brooklyn, NYC") == "Brooklyn, NYC"
    assert match_location("Flooding near Times Square, NYC") == "Times Square, NYC"
    assert match_location("Storm surge across Manhattan") == "Manhattan, NYC"


def test_unmatched_text_falls_back_to_city():
    assert match_location("Something happened somewhere") == "New York City"
    assert lookup_coordinates("Atlantis") == {"lat": 40.7128, "lng": -74.006}


def test_cache_key_covers_full_description():
    prefix = "Severe flooding reported along the waterfront, residents evacuating " * 2
    assert geocode_cache_key(prefix + "in Brooklyn") != geocode_cache_key(prefix + "in Queens")
    assert geocode_cache_key("same") == geocode_cache_key("same")


@pytest.mark.asyncio
async def test_locate_returns_coordinates_and_caches(cache):
    geocoder = Geocoder(cache)

    result = await geocoder.locate("Water rising in Chinatown")

    assert result == {
        "location_name": "Chinatown, NYC",
        "coordinates": {"lat": 40.7158, "lng": -73.997},
        "extracted_from": "Water rising in Chinatown",
    }
    assert await cache.get(geocode_cache_key("Water rising in Chinatown")) == result


@pytest.mark.asyncio
async def test_locate_serves_cached_result(cache):
    description = "Flooding in SoHo"
    cached = {"location_name": "Cached Place", "coordinates": {"lat": 1.0, "lng": 2.0}}
    await cache.set(geocode_cache_key(description), cached, 10)

    assert await Geocoder(cache).locate(description) == cached


@pytest.mark.asyncio
async def test_mock_mode_flag_is_reported(cache):
    result = await Geocoder(cache).locate("Bronx fire", mock_mode=True)
    assert result["mock_mode"] is True


@pytest.mark.asyncio
async def test_model_extraction_used_when_enabled(cache, monkeypatch):
    monkeypatch.setattr(geocoding, "complete", lambda **kwargs: '{"location_name": "Wall Street, NYC"}')

    result = await Geocoder(cache, use_ai=True).locate("Crowd gathering downtown")

    assert result["location_name"] == "Wall Street, NYC"
    assert result["coordinates"] == {"lat": 40.7074, "lng": -74.0113}


@pytest.mark.asyncio
async def test_model_failure_falls_back_to_patterns(cache, monkeypatch):
    def boom(**kwargs):
        raise RuntimeError("endpoint down")

    monkeypatch.setattr(geocoding, "complete", boom)

    result = await Geocoder(cache, use_ai=True).locate("Outage in Queens")
    assert result["location_name"] == "Queens, NYC"


@pytest.mark.asyncio
async def test_unexpected_failure_surfaces_as_structured_error(cache, monkeypatch):
    def broken_lookup(name):
        raise KeyError(name)

    monkeypatch.setattr(geocoding, "lookup_coordinates", broken_lookup)

    with pytest.raises(LocationExtractionError) as excinfo:
        await Geocoder(cache).locate("Queens")
    assert excinfo.value.status_code == 500
    assert excinfo.value.to_dict()["error"] == "Geocoding failed"


@pytest.mark.asyncio
async def test_coordinates_for_swallows_failures(cache, monkeypatch):
    geocoder = Geocoder(cache)
    assert await geocoder.coordinates_for(None, "  ") is None
    assert await geocoder.coordinates_for("Soho", "gallery flooded") == {"lat": 40.723, "lng": -74.003}

    def broken_lookup(name):
        raise KeyError(name)

    monkeypatch.setattr(geocoding, "lookup_coordinates", broken_lookup)
    assert await geocoder.coordinates_for("Queens warehouse") is None
