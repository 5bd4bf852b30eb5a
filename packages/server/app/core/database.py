"""
Database connection and session management.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.core.config import Settings, get_settings

log = structlog.get_logger()

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the pooled async engine. The pool is bounded; exhaustion raises
    ``sqlalchemy.exc.TimeoutError`` after ``db_pool_timeout_seconds``."""
    return create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout_seconds,
        pool_recycle=300,
        pool_pre_ping=True,
    )


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings())
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Create all tables (development only; use migrations in production)."""
    import app.models  # noqa: F401

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def connect_with_retry(
    engine: Optional[AsyncEngine] = None,
    *,
    attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
) -> None:
    """Wait for the database at startup with a fixed backoff.

    Raises the last connection error once ``attempts`` are exhausted so the
    process fails fast.
    """
    settings = get_settings()
    engine = engine or get_engine()
    attempts = attempts or settings.db_connect_attempts
    backoff_seconds = settings.db_connect_backoff_seconds if backoff_seconds is None else backoff_seconds

    log.info("db.connecting", url=settings.masked_database_url)
    last_error: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
                has_users = await conn.run_sync(
                    lambda sync_conn: sync_conn.dialect.has_table(sync_conn, "users")
                )
        except Exception as exc:  # driver-specific connection errors
            last_error = exc
            log.warning("db.not_ready", attempt=attempt, max_attempts=attempts, error=str(exc))
            if attempt < attempts:
                await asyncio.sleep(backoff_seconds)
            continue

        log.info("db.connected", attempt=attempt)
        if not has_users:
            log.warning("db.tables_missing", hint="run `alembic upgrade head`")
        return

    raise RuntimeError(f"Failed to connect to database after {attempts} attempts") from last_error


async def ping(session: AsyncSession) -> bool:
    """Return True when the database answers a trivial query."""
    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:
        log.error("db.ping_failed", error=str(exc))
        return False
    return True


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_session_context():
    """Context manager for use outside of FastAPI request lifecycle."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def dialect_name(session: AsyncSession) -> str:
    return session.bind.dialect.name
