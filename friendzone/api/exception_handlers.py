"""
friendzone.api.exception_handlers — Domain errors → HTTP responses
====================================================================
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from friendzone.errors import (
    AuthorizationError,
    ConflictError,
    FriendZoneError,
    NotFoundError,
    QuotaExceeded,
    TransientError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_CODES: dict[type[FriendZoneError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ConflictError: status.HTTP_409_CONFLICT,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    QuotaExceeded: status.HTTP_429_TOO_MANY_REQUESTS,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    TransientError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(exc: FriendZoneError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return status.HTTP_400_BAD_REQUEST


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(FriendZoneError)
    async def friendzone_error_handler(request: Request, exc: FriendZoneError):
        code = status_for(exc)
        if code == status.HTTP_503_SERVICE_UNAVAILABLE:
            logger.warning("%s %s: %s", request.method, request.url.path, exc.message)
        headers = {"Retry-After": "5"} if code == 503 else None
        return JSONResponse(
            status_code=code,
            content={"detail": exc.message, "error": type(exc).__name__},
            headers=headers,
        )
