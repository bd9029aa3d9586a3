"""Async test fixtures for sync tests using SQLite."""

from __future__ import annotations

import uuid
from typing import Callable

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from crmsync.config import settings
from crmsync.database import get_db, get_session_factory
from crmsync.models.base import Base
from crmsync.models.connection import Connection
from crmsync.models.organization import Organization


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    """No real sleeping between retries, pages or sends."""
    monkeypatch.setattr(settings, "http_base_delay_seconds", 0.0)
    monkeypatch.setattr(settings, "http_max_delay_seconds", 0.0)
    monkeypatch.setattr(settings, "scheduled_messages_send_delay_seconds", 0.0)
    monkeypatch.setattr(settings, "asaas_page_delay_seconds", 0.0)
    monkeypatch.setattr(settings, "scheduler_enabled", False)
    monkeypatch.setattr(settings, "aasp_base_url", "https://aasp.test")
    monkeypatch.setattr(settings, "wapi_base_url", "https://wapi.test/v1")


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def make_organization(db: AsyncSession, slug: str) -> Organization:
    org = Organization(id=uuid.uuid4(), name=slug.title(), slug=slug)
    db.add(org)
    await db.commit()
    await db.refresh(org)
    return org


async def make_connection(
    db: AsyncSession,
    organization: Organization,
    *,
    provider: str = "evolution",
    status: str = "connected",
    name: str = "Main",
) -> Connection:
    conn = Connection(
        organization_id=organization.id,
        name=name,
        provider=provider,
        status=status,
    )
    if provider == "wapi":
        conn.instance_id = "inst-1"
        conn.wapi_token = "wapi-token"
    else:
        conn.api_url = "https://evo.test"
        conn.api_key = "evo-key"
        conn.instance_name = "main"
    db.add(conn)
    await db.commit()
    await db.refresh(conn)
    return conn


@pytest_asyncio.fixture
async def organization(db: AsyncSession) -> Organization:
    return await make_organization(db, "test-org")


@pytest_asyncio.fixture
async def connection(db: AsyncSession, organization: Organization) -> Connection:
    return await make_connection(db, organization)


class Recorder:
    """Collects requests seen by a MockTransport."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


@pytest.fixture
def mock_http():
    """Build an AsyncClient backed by ``httpx.MockTransport``.

    Usage: ``client, calls = mock_http(handler)``.
    """
    def factory(handler):
        recorder = Recorder(handler)
        http = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
        return http, recorder

    return factory


@pytest_asyncio.fixture
async def client(engine, session_factory):
    """HTTPX async test client against the sync API."""
    from crmsync.app import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
