"""
Error taxonomy and JSON error handlers.

Every error leaves the service as ``{"error": ..., "code": ..., "message": ...}``.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from app.clients.identity import CredentialRejected, ProviderError, ProviderUnavailable

log = structlog.get_logger()


class APIError(HTTPException):
    """HTTPException with a stable machine-readable code."""

    status_code = 500
    code = "INTERNAL_ERROR"
    error = "Internal server error"

    def __init__(self, message: Optional[str] = None, *, error: Optional[str] = None):
        self.message = message or self.error
        if error is not None:
            self.error = error
        super().__init__(status_code=self.status_code, detail=self.message)


class BadRequest(APIError):
    status_code = 400
    code = "BAD_REQUEST"
    error = "Bad request"


class Unauthenticated(APIError):
    status_code = 401
    code = "UNAUTHENTICATED"
    error = "Unauthorized"


class EmailNotVerified(APIError):
    status_code = 403
    code = "EMAIL_NOT_VERIFIED"
    error = "Email verification required"

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message or "Please verify your email address before accessing this resource"
        )


class Forbidden(APIError):
    status_code = 403
    code = "FORBIDDEN"
    error = "Forbidden"


class NotFound(APIError):
    status_code = 404
    code = "NOT_FOUND"
    error = "Not found"


class Conflict(APIError):
    status_code = 409
    code = "CONFLICT"
    error = "Conflict"


class UpstreamUnavailable(APIError):
    status_code = 502
    code = "UPSTREAM_UNAVAILABLE"
    error = "Upstream service unavailable"


class ServiceUnavailable(APIError):
    status_code = 503
    code = "SERVICE_UNAVAILABLE"
    error = "Service unavailable"


class InternalError(APIError):
    pass


def error_body(error: str, code: str, message: str) -> dict:
    return {"error": error, "code": code, "message": message}


_STATUS_CODES = {
    400: ("Bad request", "BAD_REQUEST"),
    401: ("Unauthorized", "UNAUTHENTICATED"),
    403: ("Forbidden", "FORBIDDEN"),
    404: ("Not found", "NOT_FOUND"),
    405: ("Method not allowed", "METHOD_NOT_ALLOWED"),
    409: ("Conflict", "CONFLICT"),
}


async def _api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.error, exc.code, exc.message),
        headers=getattr(exc, "headers", None),
    )


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    error, code = _STATUS_CODES.get(exc.status_code, ("Error", f"HTTP_{exc.status_code}"))
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(error, code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
    return JSONResponse(
        status_code=422,
        content=error_body("Invalid request", "VALIDATION_ERROR", message),
    )


async def _integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    log.warning("db.integrity_error", path=request.url.path, error=str(exc.orig))
    return JSONResponse(
        status_code=409,
        content=error_body("Conflict", "CONFLICT", "Resource conflicts with an existing record"),
    )


async def _database_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error("db.unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=503,
        content=error_body("Service unavailable", "SERVICE_UNAVAILABLE", "Database unavailable"),
    )


async def _provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
    if isinstance(exc, CredentialRejected):
        return JSONResponse(
            status_code=401,
            content=error_body("Unauthorized", "UNAUTHENTICATED", str(exc)),
        )
    log.error(
        "upstream.error",
        path=request.url.path,
        unavailable=isinstance(exc, ProviderUnavailable),
        status=exc.status_code,
        error=str(exc),
    )
    return JSONResponse(
        status_code=502,
        content=error_body(
            UpstreamUnavailable.error, UpstreamUnavailable.code, "Upstream service error"
        ),
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("request.unhandled_error", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content=error_body("Internal server error", "INTERNAL_ERROR", "An unexpected error occurred"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Map the error taxonomy onto HTTP responses."""
    app.add_exception_handler(APIError, _api_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(IntegrityError, _integrity_error_handler)
    app.add_exception_handler(ProviderError, _provider_error_handler)
    app.add_exception_handler(PoolTimeoutError, _database_unavailable_handler)
    app.add_exception_handler(OperationalError, _database_unavailable_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
