from datetime import datetime, timezone

from services.feeds import (
    OFFICIAL_UPDATES,
    SOCIAL_POSTS,
    classify_priority,
    official_updates_for,
    search_posts,
    social_media_for,
)

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

FLOOD = {"id": "1", "tags": ["flood", "urgent"], "location_name": "Manhattan, NYC"}
OUTAGE = {"id": "2", "tags": ["power-outage"], "location_name": "Chicago, IL"}


def test_priority_tiers():
    assert classify_priority("SOS! trapped on the roof") == "high"
    assert classify_priority("Offering blankets at the church") == "medium"
    assert classify_priority("Power restored downtown") == "low"


def test_high_keywords_win_over_medium():
    assert classify_priority("Need help urgently, shelter flooded, URGENT") == "high"


def test_flood_disaster_keeps_only_water_related_posts():
    posts = social_media_for(FLOOD, now=NOW)

    assert [p["user"] for p in posts] == ["citizen1", "helper_nyc"]
    assert all(p["priority"] == "medium" for p in posts)
    assert posts[0]["timestamp"] == "2026-01-01T12:00:00+00:00"


def test_non_flood_disaster_sees_every_post():
    posts = social_media_for(OUTAGE, now=NOW)

    assert len(posts) == len(SOCIAL_POSTS)
    priorities = {p["user"]: p["priority"] for p in posts}
    assert priorities["witness123"] == "high"
    assert priorities["nyc_updates"] == "medium"


def test_official_updates_filtered_by_tags_and_location():
    updates = official_updates_for(FLOOD)

    assert updates == [OFFICIAL_UPDATES[0], OFFICIAL_UPDATES[1]]


def test_official_updates_unfiltered_elsewhere():
    assert official_updates_for(OUTAGE) == OFFICIAL_UPDATES


def test_search_matches_text_and_location():
    result = search_posts("brooklyn", now=NOW)

    assert [s["user"]["screen_name"] for s in result["statuses"]] == ["helper_nyc"]
    assert result["search_metadata"]["count"] == 1
    assert result["search_metadata"]["query"] == "brooklyn"


def test_search_limits_count():
    result = search_posts("", count=2, now=NOW)
    assert len(result["statuses"]) == 2
