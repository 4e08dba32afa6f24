"""
Shared test fixtures.

Uses an in-memory SQLite database for fast testing.
JSONB columns are compiled as JSON for SQLite compatibility.
For integration tests against PostgreSQL, use docker compose.
"""

import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.compiler import compiles

from assethub.core.config import settings
from assethub.core.database import Base, get_db, get_session_factory
from assethub.main import app
from assethub.models.core import Asset, Location
from assethub.models.infrastructure import Company, User


# ─── SQLite compatibility: JSONB → JSON ───────────────────────

@compiles(JSONB, "sqlite")
def compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


# Use SQLite async for tests (aiosqlite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(TEST_DATABASE_URL, echo=False)
test_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# The executor isolates rows with SAVEPOINTs. pysqlite's implicit BEGIN
# handling breaks them, so emit BEGIN ourselves.
@event.listens_for(engine.sync_engine, "connect")
def do_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine.sync_engine, "begin")
def do_begin(conn):
    conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def storage_dir(tmp_path, monkeypatch):
    """Point uploads, reports and labels at a per-test directory."""
    root = tmp_path / "storage"
    monkeypatch.setattr(settings, "STORAGE_DIR", str(root))
    monkeypatch.setattr(
        settings,
        "IMPORT_TEMPLATE_PATH",
        str(root / "templates" / "asset-import-template.xlsx"),
    )
    return root


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a test database session."""
    async with test_session() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Provide a test HTTP client with database override."""

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: test_session

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ─── Helper factories ─────────────────────────────────────────

@pytest_asyncio.fixture
async def make_company(db_session: AsyncSession):
    async def _make(name: str | None = None) -> Company:
        company = Company(name=name or f"Company {uuid.uuid4().hex[:6]}")
        db_session.add(company)
        await db_session.flush()
        return company
    return _make


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession):
    async def _make(company: Company, name: str = "Test User") -> User:
        user = User(
            company_id=company.id,
            email=f"user-{uuid.uuid4().hex[:8]}@example.com",
            name=name,
        )
        db_session.add(user)
        await db_session.flush()
        return user
    return _make


@pytest_asyncio.fixture
async def make_location(db_session: AsyncSession):
    """Factory fixture for locations; pass ``parent`` to nest."""
    async def _make(company: Company, name: str, parent: Location | None = None) -> Location:
        location = Location(
            company_id=company.id,
            parent_id=parent.id if parent else None,
            name=name,
        )
        db_session.add(location)
        await db_session.flush()
        return location
    return _make


@pytest_asyncio.fixture
async def make_asset(db_session: AsyncSession):
    async def _make(
        company: Company,
        name: str = "Existing Asset",
        serial_number: str | None = None,
        asset_id: str | None = None,
    ) -> Asset:
        asset = Asset(
            asset_id=asset_id or f"ASSET-{company.id}-{uuid.uuid4().hex[:6].upper()}",
            company_id=company.id,
            name=name,
            serial_number=serial_number,
            status="active",
        )
        db_session.add(asset)
        await db_session.flush()
        return asset
    return _make


@pytest_asyncio.fixture
async def tenant(make_company, make_user, db_session: AsyncSession):
    """A company with one user, committed so API requests can see it."""
    company = await make_company("Acme Facilities")
    user = await make_user(company)
    await db_session.commit()
    return company, user


@pytest.fixture
def auth_headers(tenant) -> dict[str, str]:
    company, user = tenant
    return {"X-User-Id": str(user.id), "X-Company-Id": str(company.id)}
