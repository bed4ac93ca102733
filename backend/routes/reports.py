"""Citizen reports and image verification for a disaster."""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from errors import InvalidInputError
from services.container import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


class ReportCreate(BaseModel):
    content: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    image_url: str | None = None


class VerifyImageRequest(BaseModel):
    image_url: str | None = None
    report_id: str | None = None


@router.get("/disasters/{disaster_id}/reports")
async def list_reports(disaster_id: str, services: AppServices = Depends(get_services)) -> list[dict]:
    return await services.store.list_reports(disaster_id)


@router.post("/disasters/{disaster_id}/reports")
async def create_report(
    disaster_id: str,
    body: ReportCreate,
    services: AppServices = Depends(get_services),
) -> dict:
    report = await services.store.create_report(disaster_id, body.model_dump())

    services.broadcaster.reports_updated(disaster_id, report)
    # New ground reports change what the feed panel should show.
    services.broadcaster.social_media_updated(disaster_id, {"disaster_id": disaster_id})
    return report


@router.post("/disasters/{disaster_id}/verify-image")
async def verify_image(
    disaster_id: str,
    body: VerifyImageRequest,
    services: AppServices = Depends(get_services),
) -> dict:
    if not body.image_url:
        raise InvalidInputError("Image URL is required")

    verification = await services.image_verifier.verify(body.image_url)

    if not body.report_id:
        return {
            "success": True,
            "verification": verification,
            "message": "Image verification completed (no report attached)",
        }

    report = await services.store.set_report_verification(disaster_id, body.report_id, verification)
    logger.info("Image verified for report %s: %s", body.report_id, verification["status"])

    services.broadcaster.reports_updated(disaster_id, report)
    return {"success": True, "verification": verification, "report": report}
