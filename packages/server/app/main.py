"""
userms API Server

Entry point for the FastAPI application.
"""

import structlog
import uvicorn
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import router as api_router
from app.clients.identity import IdentityClient
from app.clients.oauth2 import OAuth2ProviderClient
from app.core.config import Settings, get_settings
from app.core.database import connect_with_retry, dispose_engine, get_session, ping
from app.core.errors import error_body, register_error_handlers
from app.core.logging import LoggingConfig, configure_logging
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

log = structlog.get_logger()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    configure_logging(LoggingConfig.from_settings(settings))

    app = FastAPI(
        title="userms",
        description="User, organization and OAuth2 client management over Ory Kratos and Hydra.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.state.identity_client = IdentityClient(
        settings.kratos_public_url,
        settings.kratos_admin_url,
        timeout=settings.external_timeout_seconds,
    )
    app.state.oauth2_client = OAuth2ProviderClient(
        settings.hydra_public_url,
        settings.hydra_admin_url,
        timeout=settings.external_timeout_seconds,
    )

    # Middleware (last added runs outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Cookie"],
    )

    register_error_handlers(app)
    app.include_router(api_router)

    @app.get("/health", tags=["System"])
    async def health_check():
        """Liveness check."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check(session: AsyncSession = Depends(get_session)):
        """Readiness check: the database must answer."""
        if not await ping(session):
            return JSONResponse(
                status_code=503,
                content=error_body("Service unavailable", "SERVICE_UNAVAILABLE", "Database unavailable"),
            )
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("userms starting", port=settings.port, log_format=settings.log_format)
        await connect_with_retry()
        await app.state.identity_client.open()
        await app.state.oauth2_client.open()

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("userms shutting down")
        await app.state.identity_client.close()
        await app.state.oauth2_client.close()
        await dispose_engine()

    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.host, port=settings.port)
