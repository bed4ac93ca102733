"""Social media and official update feeds, cached per disaster."""

import logging

from fastapi import APIRouter, Depends, Query

from services import feeds
from services.container import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/disasters/{disaster_id}/social-media")
async def social_media(disaster_id: str, services: AppServices = Depends(get_services)) -> list[dict]:
    # A deleted disaster must 404 even while its feed is still cached.
    disaster = await services.store.get_disaster(disaster_id)
    key = f"social_media:{disaster_id}"
    cached = await services.cache.get(key)
    if cached is not None:
        logger.info("Returning cached social media data for %s", disaster_id)
        return cached

    posts = feeds.social_media_for(disaster)
    await services.cache.set(key, posts, feeds.FEED_TTL_MINUTES)
    return posts


@router.get("/disasters/{disaster_id}/official-updates")
async def official_updates(disaster_id: str, services: AppServices = Depends(get_services)) -> list[str]:
    disaster = await services.store.get_disaster(disaster_id)
    key = f"official_updates:{disaster_id}"
    cached = await services.cache.get(key)
    if cached is not None:
        logger.info("Returning cached official updates for %s", disaster_id)
        return cached

    updates = feeds.official_updates_for(disaster)
    await services.cache.set(key, updates, feeds.FEED_TTL_MINUTES)
    return updates


@router.get("/mock-social-media")
async def mock_social_media(
    q: str = Query(""),
    count: int = Query(10, ge=0, le=100),
) -> dict:
    """Twitter-style search endpoint used for local testing of the feed."""
    return feeds.search_posts(q, count)
