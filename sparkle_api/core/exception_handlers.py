# File: sparkle_api/core/exception_handlers.py

"""
Exception handlers for the FastAPI application.

``AuthError`` becomes ``{"detail": ..., "code": ...}`` with its own status.
Anything else that escapes a route is logged with its traceback and answered
with a 500 carrying an ``error_id`` the client can quote when reporting it.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sparkle_api.core.exceptions import AuthError
from sparkle_api.core.logging_config import get_logger

logger = get_logger(__name__)


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    logger.debug("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.code)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    error_id = id(exc)
    logger.error(
        "Unhandled exception [%s] in %s %s: %s",
        error_id,
        request.method,
        request.url.path,
        exc,
        exc_info=exc,
        extra={
            "error_id": error_id,
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else "unknown",
            "error_type": type(exc).__name__,
        },
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error_id": error_id,
            "error_type": type(exc).__name__,
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
