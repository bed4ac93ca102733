"""Social media mentions and official updates for a disaster.

Both feeds are static demo sources filtered by the disaster's tags and
location. Routes cache the filtered output per disaster for an hour.
"""

import logging
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)

FEED_TTL_MINUTES = 60

SOCIAL_POSTS = [
    {
        "id": "1",
        "post": "#floodrelief Need food and water in Lower East Side NYC. Families stranded on 3rd floor.",
        "user": "citizen1",
        "name": "NYC Resident",
        "location": "Lower East Side, NYC",
        "age_minutes": 0,
    },
    {
        "id": "2",
        "post": "Offering shelter for 5 people in Brooklyn. DM me if you need help. #disasterrelief",
        "user": "helper_nyc",
        "name": "Brooklyn Helper",
        "location": "Brooklyn, NYC",
        "age_minutes": 60,
    },
    {
        "id": "3",
        "post": "Red Cross station set up at Washington Square Park. Medical aid available. #emergency",
        "user": "redcross_ny",
        "name": "Red Cross NY",
        "location": "Washington Square Park, NYC",
        "age_minutes": 120,
    },
    {
        "id": "4",
        "post": "SOS! Elderly person trapped in apartment building on 42nd Street. Need immediate help! #emergency",
        "user": "witness123",
        "name": "Witness",
        "location": "Midtown, NYC",
        "age_minutes": 30,
    },
    {
        "id": "5",
        "post": "Power restored in Midtown area. Charging stations available at local community center.",
        "user": "nyc_updates",
        "name": "NYC Updates",
        "location": "Midtown, NYC",
        "age_minutes": 90,
    },
]

OFFICIAL_UPDATES = [
    "FEMA has deployed emergency response teams to affected areas. Evacuation centers are operational at Madison Square Garden and Brooklyn Bridge Park.",
    "NYC Emergency Management: All subway lines below 14th Street are suspended due to flooding. Alternative transportation is being arranged.",
    "Red Cross Update: 15 emergency shelters are now open across Manhattan and Brooklyn. Food and medical supplies are being distributed.",
    "National Weather Service: Flood warning remains in effect until 6 PM EST. Residents in low-lying areas should remain vigilant.",
    "NYC Mayor's Office: Emergency hotline 311 is operational 24/7 for assistance requests. Non-emergency services are temporarily suspended.",
]

# Checked in order; the first tier with a keyword hit wins.
PRIORITY_KEYWORDS = {
    "high": ["sos", "urgent", "trapped", "emergency", "help needed"],
    "medium": ["need", "offering", "available", "shelter"],
}

FLOOD_POST_KEYWORDS = ["flood", "water", "relief"]
FLOOD_UPDATE_KEYWORDS = ["flood", "water", "evacuation"]
NYC_LOCATION_KEYWORDS = ["nyc", "manhattan"]
NYC_UPDATE_KEYWORDS = ["nyc", "manhattan", "brooklyn"]


def classify_priority(text: str) -> str:
    content = text.lower()
    for priority, keywords in PRIORITY_KEYWORDS.items():
        if any(keyword in content for keyword in keywords):
            return priority
    return "low"


def _mentions_any(text: str, keywords: list[str]) -> bool:
    content = text.lower()
    return any(keyword in content for keyword in keywords)


def social_media_for(disaster: dict, now: datetime | None = None) -> list[dict]:
    """Posts relevant to a disaster, each tagged with a keyword priority."""
    now = now or datetime.now(timezone.utc)
    posts = SOCIAL_POSTS
    if "flood" in (disaster.get("tags") or []):
        posts = [p for p in posts if _mentions_any(p["post"], FLOOD_POST_KEYWORDS)]

    result = [
        {
            "post": p["post"],
            "user": p["user"],
            "timestamp": (now - timedelta(minutes=p["age_minutes"])).isoformat(),
            "priority": classify_priority(p["post"]),
        }
        for p in posts
    ]
    logger.info("Social media monitoring: found %d posts for disaster %s", len(result), disaster.get("id"))
    return result


def official_updates_for(disaster: dict) -> list[str]:
    updates = OFFICIAL_UPDATES
    if "flood" in (disaster.get("tags") or []):
        updates = [u for u in updates if _mentions_any(u, FLOOD_UPDATE_KEYWORDS)]

    if _mentions_any(disaster.get("location_name") or "", NYC_LOCATION_KEYWORDS):
        updates = [u for u in updates if _mentions_any(u, NYC_UPDATE_KEYWORDS)]

    logger.info("Official updates: found %d updates for disaster %s", len(updates), disaster.get("id"))
    return updates


def search_posts(query: str = "", count: int = 10, now: datetime | None = None) -> dict:
    """Twitter-style search over the demo posts."""
    now = now or datetime.now(timezone.utc)
    q = query.lower()
    matches = [p for p in SOCIAL_POSTS if not q or q in p["post"].lower() or q in p["location"].lower()]
    statuses = [
        {
            "id": p["id"],
            "text": p["post"],
            "user": {"screen_name": p["user"], "name": p["name"]},
            "created_at": (now - timedelta(minutes=p["age_minutes"])).isoformat(),
            "location": p["location"],
        }
        for p in matches[: max(count, 0)]
    ]
    return {
        "statuses": statuses,
        "search_metadata": {
            "count": len(statuses),
            "query": query,
            "completed_in": 0.1,
        },
    }
