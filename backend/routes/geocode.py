"""Location extraction + geocoding route."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from errors import InvalidInputError
from services.container import AppServices, get_services

router = APIRouter()


class GeocodeRequest(BaseModel):
    description: str | None = None


@router.post("/geocode")
async def geocode(body: GeocodeRequest, services: AppServices = Depends(get_services)) -> dict:
    if not body.description or not body.description.strip():
        raise InvalidInputError("Description is required")
    return await services.geocoder.locate(body.description, mock_mode=services.mock_mode)
