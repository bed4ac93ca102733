"""Custom exceptions and centralized FastAPI error handlers."""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DisasterResponseError(Exception):
    """Base exception with HTTP status code."""

    def __init__(self, message: str, status_code: int = 500, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"error": str(self)}
        if self.details is not None:
            body["details"] = self.details
        return body


class InvalidInputError(DisasterResponseError):
    def __init__(self, message: str, details: Any = None):
        super().__init__(message, status_code=400, details=details)


class NotFoundError(DisasterResponseError):
    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found", status_code=404)
        self.entity = entity
        self.entity_id = entity_id


class DatastoreError(DisasterResponseError):
    """Raised when the hosted datastore rejects or fails a request."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, status_code=500, details=details)


class LocationExtractionError(DisasterResponseError):
    def __init__(self, message: str):
        super().__init__(
            "Geocoding failed",
            status_code=500,
            details="Location extraction and geocoding service encountered an error",
        )
        self.reason = message


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(DisasterResponseError)
    async def handle_disaster_response_error(_request: Request, exc: DisasterResponseError):
        if exc.status_code >= 500:
            logger.error("%s: %s (details=%s)", type(exc).__name__, exc, exc.details)
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_request: Request, exc: RequestValidationError):
        details = [
            {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
            for err in exc.errors()
        ]
        return JSONResponse({"error": "Invalid request", "details": details}, status_code=400)

    @app.exception_handler(ValueError)
    async def handle_value_error(_request: Request, exc: ValueError):
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            {"error": "Internal server error", "message": str(exc)},
            status_code=500,
        )
