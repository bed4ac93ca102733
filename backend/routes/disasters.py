"""Disaster CRUD routes. Every mutation announces itself on the disaster's topic."""

import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator

from services.container import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


class DisasterCreate(BaseModel):
    title: str = Field(min_length=1)
    owner_id: str = Field(min_length=1)
    location_name: str | None = None
    description: str | None = None
    tags: list[str] = Field(default_factory=list)


class DisasterUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    location_name: str | None = None
    description: str | None = None
    tags: list[str] | None = None
    user_id: str = "anonymous"

    @field_validator("title", "tags", mode="before")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


@router.get("/disasters")
async def list_disasters(
    tag: str | None = Query(None),
    services: AppServices = Depends(get_services),
) -> list[dict]:
    return await services.store.list_disasters(tag=tag)


@router.post("/disasters")
async def create_disaster(body: DisasterCreate, services: AppServices = Depends(get_services)) -> dict:
    coordinates = await services.geocoder.coordinates_for(
        body.location_name, body.description, mock_mode=services.mock_mode
    )
    disaster = await services.store.create_disaster(body.model_dump(), coordinates)

    services.broadcaster.disaster_updated(disaster["id"], disaster)
    return disaster


@router.get("/disasters/{disaster_id}")
async def get_disaster(disaster_id: str, services: AppServices = Depends(get_services)) -> dict:
    return await services.store.get_disaster(disaster_id)


@router.put("/disasters/{disaster_id}")
async def update_disaster(
    disaster_id: str,
    body: DisasterUpdate,
    services: AppServices = Depends(get_services),
) -> dict:
    changes = body.model_dump(exclude_unset=True, exclude={"user_id"})
    disaster = await services.store.update_disaster(disaster_id, changes, user_id=body.user_id)

    services.broadcaster.disaster_updated(disaster_id, disaster)
    return disaster


@router.delete("/disasters/{disaster_id}")
async def delete_disaster(disaster_id: str, services: AppServices = Depends(get_services)) -> dict:
    await services.store.delete_disaster(disaster_id)

    services.broadcaster.disaster_updated(disaster_id, {"id": disaster_id, "deleted": True})
    return {"success": True}
