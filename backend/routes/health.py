"""Health, readiness and summary statistics routes."""

import logging
from collections import Counter
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from services.container import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter()

STATS_CACHE_KEY = "stats"
STATS_TTL_MINUTES = 5


@router.get("/ready")
async def ready(services: AppServices = Depends(get_services)) -> dict:
    """Lightweight readiness check, no external calls."""
    return {"status": "ok", "service": "disaster-response-api", "commit": services.settings.git_sha}


@router.get("/health")
async def health(services: AppServices = Depends(get_services)) -> dict:
    """Configuration-derived status of each backing service."""
    settings = services.settings
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "commit": settings.git_sha,
        "services": {
            "database": "mock_mode" if services.mock_mode else "configured",
            "cache": services.cache.backend_name,
            "websockets": {"status": "operational", "sessions": services.broadcaster.session_count},
            "imageVerification": services.image_verifier.name,
            "externalAPIs": settings.external_apis(),
        },
        "features": {
            "disasterManagement": "operational",
            "locationExtraction": "operational",
            "socialMediaMonitoring": "operational",
            "imageVerification": "operational",
            "geospatialQueries": "mock_mode" if services.mock_mode else "operational",
            "realTimeUpdates": "operational",
        },
    }


@router.get("/stats")
async def stats(services: AppServices = Depends(get_services)) -> dict:
    """Counts over disasters, reports and resources. Cached for a few minutes."""
    cached = await services.cache.get(STATS_CACHE_KEY)
    if cached is not None:
        return cached

    disasters = await services.store.list_disasters()
    reports = await services.store.list_reports()
    resources = await services.store.list_resources()

    by_tag = Counter(tag for d in disasters for tag in (d.get("tags") or []))
    by_status = Counter(r.get("verification_status", "pending") for r in reports)
    by_type = Counter(r.get("type") for r in resources)

    result = {
        "disasters": {"total": len(disasters), "byTag": dict(by_tag)},
        "reports": {
            "total": len(reports),
            "verified": by_status.get("verified", 0),
            "pending": by_status.get("pending", 0),
            "rejected": by_status.get("rejected", 0),
        },
        "resources": {"total": len(resources), "byType": dict(by_type)},
        "coverage": {
            "areas": sorted({d["location_name"] for d in disasters if d.get("location_name")}),
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
        },
    }
    await services.cache.set(STATS_CACHE_KEY, result, STATS_TTL_MINUTES)
    return result
