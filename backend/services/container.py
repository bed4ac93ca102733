"""Process-wide service wiring, built once per app from ``Settings``."""

import logging
from dataclasses import dataclass

from fastapi import Request

from config import Settings
from services.broadcaster import Broadcaster
from services.cache import TTLCache, create_cache
from services.datastore import Datastore, create_datastore
from services.geocoding import Geocoder
from services.image_verification import FoundryImageVerifier, ImageVerifier, MockImageVerifier
from services.store import Store, create_store

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    settings: Settings
    datastore: Datastore | None
    cache: TTLCache
    broadcaster: Broadcaster
    store: Store
    geocoder: Geocoder
    image_verifier: ImageVerifier

    @property
    def mock_mode(self) -> bool:
        return self.datastore is None

    async def aclose(self) -> None:
        self.broadcaster.close()
        if self.datastore is not None:
            await self.datastore.aclose()


def build_services(settings: Settings) -> AppServices:
    datastore = create_datastore(settings)
    cache = create_cache(
        settings.resolved_cache_backend(),
        datastore,
        default_ttl_minutes=settings.cache_default_ttl_minutes,
        timeout_seconds=settings.external_timeout_seconds,
    )
    image_verifier: ImageVerifier
    if settings.ai_configured:
        image_verifier = FoundryImageVerifier(timeout_seconds=settings.external_timeout_seconds)
    else:
        image_verifier = MockImageVerifier()

    return AppServices(
        settings=settings,
        datastore=datastore,
        cache=cache,
        broadcaster=Broadcaster(max_pending=settings.broadcast_queue_size),
        store=create_store(datastore),
        geocoder=Geocoder(cache, use_ai=settings.ai_configured, timeout_seconds=settings.external_timeout_seconds),
        image_verifier=image_verifier,
    )


def get_services(request: Request) -> AppServices:
    """FastAPI dependency: the services attached to the running app."""
    return request.app.state.services
