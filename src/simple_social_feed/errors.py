from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Fehler mit HTTP-Status, wird zentral in ein JSON-Envelope übersetzt."""

    status_code: int = 500

    def __init__(self, message: str, *, status_code: int | None = None, data: Any = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.data = data


class ValidationFailed(ApiError):
    status_code = 422


class NotFound(ApiError):
    # bewusst 400 statt 404, Clients werten genau diesen Code aus
    status_code = 400


class NotAuthenticated(ApiError):
    status_code = 401


class NotAuthorized(ApiError):
    status_code = 403


def _envelope(message: str, data: Any = None) -> dict:
    body: dict[str, Any] = {"message": message}
    if data is not None:
        body["data"] = jsonable_encoder(data)
    return body


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=_envelope(exc.message, exc.data))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content=_envelope("Validation failed.", exc.errors()),
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=_envelope("Internal server error."),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
