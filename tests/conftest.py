# tests/conftest.py

import functools
import os
from collections.abc import AsyncIterator

# Point module-level settings at a throwaway database before Zigport is imported
os.environ["ZIGPORT_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ZIGPORT_LOGGING_FILE"] = "NONE"

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker  # noqa: E402

from Zigport.db import create_engine_for, init_schema, session_scope  # noqa: E402
from Zigport.metrics import reset_counters  # noqa: E402
from Zigport.store import SqlStore  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_counters()
    yield
    reset_counters()


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """Fresh in-memory SQLite database with the full schema, per test."""
    eng = create_engine_for("sqlite+aiosqlite:///:memory:")
    await init_schema(eng)
    try:
        yield eng
    finally:
        await eng.dispose()


@pytest.fixture
def sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def store(sessionmaker) -> SqlStore:
    return SqlStore(sessionmaker)


@pytest.fixture
def db(sessionmaker):
    """``async with db() as s:`` opens a committed session on the test database.

    Keep these blocks sequential with store calls; every session shares the one
    in-memory connection.
    """
    return functools.partial(session_scope, sessionmaker)
