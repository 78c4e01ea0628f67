"""Service error taxonomy and the FastAPI handlers that render it."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request


logger = logging.getLogger(__name__)


class ServiceError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class AuthenticationError(ServiceError):
    """Missing or invalid credential. Raised before any side effect."""

    status_code = 401
    code = "unauthorized"


class ValidationError(ServiceError):
    status_code = 400
    code = "invalid_request"


class PayloadTooLargeError(ValidationError):
    status_code = 413
    code = "payload_too_large"


class NotFoundError(ServiceError):
    status_code = 404
    code = "not_found"


class StorageError(ServiceError):
    """Filesystem failure on the request path."""

    code = "storage_error"


class ConversionError(ServiceError):
    """The converter exited unsuccessfully; ``details`` holds its diagnostics."""

    code = "conversion_failed"


class FetchError(ServiceError):
    status_code = 502
    code = "fetch_failed"


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def _service_error_handler(_request: Request, exc: ServiceError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code in (404, 405):
            return JSONResponse(status_code=404, content={"error": "URL Not found", "code": "not_found"})
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail), "code": "http_error"},
        )

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("Rejected malformed request: %s", exc.errors())
        return JSONResponse(status_code=400, content={"error": "Malformed request", "code": "invalid_request"})
