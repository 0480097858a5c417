# src/Zigport/db.py
from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator

import structlog
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from Zigport.config import load_settings

settings = load_settings()
log = structlog.get_logger()


def normalize_url(url: str) -> str:
    # Upgrade to async drivers if user supplies sync URLs
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://") and not url.startswith("sqlite+aiosqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


DATABASE_URL = normalize_url(settings.database_url)


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def is_sqlite_url(url: str) -> bool:
    return url.startswith("sqlite")


def create_engine_for(url: str) -> AsyncEngine:
    """Create an async engine with per-backend pool defaults."""
    url = normalize_url(url)
    kwargs: dict[str, object] = {}
    if url.startswith("sqlite+aiosqlite://"):
        kwargs.update(connect_args={"timeout": 30})
        # In-memory DBs must share a single connection so the schema persists
        if ":memory:" in url:
            kwargs.update(poolclass=StaticPool)
    elif url.startswith("postgresql+asyncpg://"):
        kwargs.update(
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
        )
    engine = create_async_engine(url, **kwargs)
    parsed = make_url(url)
    log.info(
        "db.connection.config",
        backend="sqlite" if is_sqlite_url(url) else parsed.get_backend_name(),
        host=parsed.host or "",
        database=parsed.database or "",
        driver=parsed.drivername,
    )
    return engine


def get_engine() -> AsyncEngine:
    global _engine, _sessionmaker
    if _engine is None:
        _engine = create_engine_for(DATABASE_URL)
        _sessionmaker = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    if _sessionmaker is None:
        get_engine()
    return _sessionmaker  # type: ignore[return-value]


async def init_schema(engine: AsyncEngine | None = None) -> None:
    """Create all tables. Idempotent; migrations remain the path for real databases."""
    from Zigport import models as _models  # noqa: F401  registers tables on Base

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@contextlib.asynccontextmanager
async def session_scope(
    sessionmaker: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[AsyncSession]:
    sm = sessionmaker or get_sessionmaker()
    async with sm() as s:
        try:
            yield s
            await s.commit()
        except Exception:
            log.error("db.session.error", exc_info=True)
            await s.rollback()
            raise
