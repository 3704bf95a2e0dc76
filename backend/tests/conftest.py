"""
Pytest configuration and fixtures for PanelTrace tests.

Every test gets its own SQLite file database.  Transactions open with
BEGIN IMMEDIATE so concurrent sessions serialize on the write lock the
same way row locks serialize them on PostgreSQL.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./paneltrace_test.db")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

from datetime import date, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import Base, build_engine, get_db, session_scope
from app.main import app
from app.services.inspections import record_inspection
from app.services.orders import create_order
from app.services.panels import create_panel, record_electrical_readings
from app.utils import cache
from app.utils.barcode import generate_identifier

TEST_YEAR = 25
INSPECTOR = "inspector-7"


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite engine with all tables created."""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'paneltrace.db'}")

    @event.listens_for(test_engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        # let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """A single session for service-level tests; rolled back at teardown."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def tx(session_factory):
    """Run one service call in its own committed transaction.

        panel = await tx(create_panel, code, order.id)
    """
    async def run(fn, *args, **kwargs):
        async with session_scope(session_factory) as session:
            return await fn(session, *args, **kwargs)

    return run


@pytest_asyncio.fixture
async def client(session_factory):
    """HTTP client; each request gets its own committed transaction."""

    async def override_get_db():
        async with session_scope(session_factory) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


# ============================================================================
# Redis Fixtures
# ============================================================================

@pytest_asyncio.fixture(autouse=True)
async def reset_redis_client():
    """The module-level client is bound to one event loop; drop it per test."""
    yield
    try:
        await cache.close_redis()
    except (RuntimeError, OSError):
        cache._redis_client = None


@pytest_asyncio.fixture
async def redis_client():
    """Live Redis; tests using it are skipped when no server is reachable."""
    client = await cache.get_redis()
    try:
        await client.ping()
    except (cache.redis.RedisError, OSError):
        pytest.skip("Redis is not reachable")
    await client.flushdb()
    yield client
    await client.flushdb()


# ============================================================================
# Workflow Fixtures
# ============================================================================

def panel_code(sequence: int, panel_type: int = 36, **kwargs) -> str:
    """Silver frame, transparent backsheet unless told otherwise: CRS25WT36xxxxx."""
    kwargs.setdefault("backsheet_type", "transparent")
    return generate_identifier(panel_type, sequence, year=TEST_YEAR, **kwargs)


@pytest.fixture
def make_order(tx):
    counter = {"n": 0}

    async def make(panel_type: int = 36, target_quantity: int = 100, **kwargs):
        counter["n"] += 1
        today = date.today()
        return await tx(
            create_order,
            kwargs.pop("order_number", f"MO-{panel_type}-{counter['n']:03d}"),
            panel_type,
            target_quantity,
            kwargs.pop("start_date", today),
            kwargs.pop("end_date", today + timedelta(days=30)),
            **kwargs,
        )

    return make


@pytest_asyncio.fixture
async def order(make_order):
    """Line A order for 100 type-36 panels."""
    return await make_order(36, 100)


@pytest.fixture
def make_panel(tx):
    counter = {"n": 0}

    async def make(order, sequence: int | None = None):
        counter["n"] += 1
        code = panel_code(sequence or counter["n"], order.panel_type)
        return await tx(create_panel, code, order.id)

    return make


@pytest_asyncio.fixture
async def panel(make_panel, order):
    return await make_panel(order)


@pytest.fixture
def inspect(tx):
    """Record an inspection in its own transaction."""
    async def run(panel_id, station, result="pass", **kwargs):
        kwargs.setdefault("inspector_id", INSPECTOR)
        inspector = kwargs.pop("inspector_id")
        return await tx(record_inspection, panel_id, station, inspector, result, **kwargs)

    return run


@pytest.fixture
def complete_panel(tx, inspect):
    """Drive a panel through all four stations."""
    async def run(panel_id, wattage=400.0, vmp=40.0, imp=10.0):
        for station in (1, 2, 3):
            await inspect(panel_id, station)
        await tx(record_electrical_readings, panel_id, wattage, vmp, imp)
        return await inspect(panel_id, 4)

    return run


# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    config.addinivalue_line("markers", "unit: Unit tests for pure functions")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "concurrency: Concurrent transaction tests")
    config.addinivalue_line("markers", "cache: Redis cache tests")
    config.addinivalue_line("markers", "slow: Slow tests")
