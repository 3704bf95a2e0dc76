"""Database engine, session factories, and the declarative base.

Every workflow operation runs inside exactly one transaction:
  - get_db()          → FastAPI dependency, commits on success
  - session_scope()   → the same contract for CLI / tests / workers

Storage that is slow or unreachable surfaces as TransientFailure; the
enclosing transaction is always rolled back so no partial state is visible.
"""

import asyncio
from datetime import datetime, timezone
from contextlib import asynccontextmanager

from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings
from app.middleware.exceptions import TransientFailure


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine with bounded connection and statement timeouts."""
    if url.startswith("sqlite"):
        connect_args = {"timeout": settings.operation_timeout_seconds}
    else:
        connect_args = {"command_timeout": settings.operation_timeout_seconds}
        kwargs.setdefault("pool_size", settings.db_pool_size)
        kwargs.setdefault("max_overflow", settings.db_max_overflow)
        kwargs.setdefault("pool_timeout", settings.db_pool_timeout_seconds)
    connect_args.update(kwargs.pop("connect_args", {}))
    return create_async_engine(url, connect_args=connect_args, **kwargs)


engine = build_engine(settings.database_url, echo=settings.debug)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# ── Base class ──────────────────────────────────────────────

def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Declarative base for all production-tracking tables."""
    pass


# ── Transaction helpers ─────────────────────────────────────

TRANSIENT_ERRORS = (OperationalError, PoolTimeoutError, asyncio.TimeoutError)


async def bounded(awaitable, what: str = "storage operation"):
    """Await a persistence call, failing with TransientFailure past the bound."""
    try:
        return await asyncio.wait_for(awaitable, settings.operation_timeout_seconds)
    except TRANSIENT_ERRORS as exc:
        raise TransientFailure(f"{what} did not complete: {exc.__class__.__name__}") from exc


@asynccontextmanager
async def session_scope(factory: async_sessionmaker | None = None):
    """Yield a session whose work commits atomically or not at all."""
    async with (factory or async_session)() as session:
        try:
            yield session
            await bounded(session.commit(), "commit")
        except TRANSIENT_ERRORS as exc:
            await session.rollback()
            raise TransientFailure(f"storage unavailable: {exc.__class__.__name__}") from exc
        except Exception:
            await session.rollback()
            raise


# ── Session dependency ──────────────────────────────────────

async def get_db() -> AsyncSession:
    """Yield a session for one request; commit on success, roll back on error."""
    async with session_scope() as session:
        yield session
