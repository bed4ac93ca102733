"""Relief resources (shelters, medical, supplies) for a disaster."""

import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from errors import InvalidInputError
from services.container import AppServices, get_services
from services.store import DEFAULT_RADIUS_METERS

logger = logging.getLogger(__name__)

router = APIRouter()


class ResourceCreate(BaseModel):
    name: str = Field(min_length=1)
    type: str = Field(min_length=1)
    location_name: str | None = None


@router.get("/disasters/{disaster_id}/resources")
async def list_resources(
    disaster_id: str,
    lat: float | None = Query(None, ge=-90, le=90),
    lon: float | None = Query(None, ge=-180, le=180),
    radius: float = Query(DEFAULT_RADIUS_METERS, gt=0, description="Search radius in meters"),
    services: AppServices = Depends(get_services),
) -> list[dict]:
    if (lat is None) != (lon is None):
        raise InvalidInputError("lat and lon must be given together")

    near = (lat, lon, radius) if lat is not None else None
    return await services.store.list_resources(disaster_id, near=near)


@router.post("/disasters/{disaster_id}/resources")
async def create_resource(
    disaster_id: str,
    body: ResourceCreate,
    services: AppServices = Depends(get_services),
) -> dict:
    coordinates = await services.geocoder.coordinates_for(body.location_name, mock_mode=services.mock_mode)
    resource = await services.store.create_resource(disaster_id, body.model_dump(), coordinates)
    logger.info("Resource %s added to disaster %s", resource["name"], disaster_id)

    services.broadcaster.resources_updated(disaster_id, resource)
    return resource
