"""Shared fixtures for the query cache tests.

Provides:
- A frozen clock and sequential id generator for deterministic stores
- A counting executor registered for the ``test`` datasource kind
- In-memory stores, cache and QueryCacheService
- A FastAPI app with those components on app.state (the lifespan does not
  run under ASGITransport) and an AsyncClient bound to it
- An aiosqlite-backed session factory for the SQL repositories
- auth_headers: builds Bearer headers for an arbitrary user id
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Iterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

from src.bissy.apikeys.store import InMemoryAPIKeyStore
from src.bissy.core.clock import FrozenClock
from src.bissy.core.database import init_db, session_factory_for
from src.bissy.core.security import create_access_token
from src.bissy.main import create_app
from src.bissy.querycache.cache import InMemoryQueryCache
from src.bissy.querycache.executor import EchoExecutor, ExecutorFactory
from src.bissy.querycache.schemas import Query
from src.bissy.querycache.service import QueryCacheService
from src.bissy.querycache.store import InMemoryDatasourceStore, InMemoryQueryStore


# ── Test Doubles ─────────────────────────────────────────────────────────────


class SequentialIds:
    """Ids that sort in creation order: id-0001, id-0002, ..."""

    def __init__(self, prefix: str = "id") -> None:
        self._prefix = prefix
        self._next = 0

    def generate(self) -> str:
        self._next += 1
        return f"{self._prefix}-{self._next:04d}"


class FixedKeys:
    """Key generator returning predictable secrets."""

    def __init__(self) -> None:
        self._next = 0

    def generate(self, size: int) -> str:
        self._next += 1
        return f"secret-{self._next}".ljust(size, "x")


class CountingExecutor:
    """Echo executor that records every query it runs."""

    def __init__(self) -> None:
        self._echo = EchoExecutor()
        self.calls: list[str] = []

    @property
    def count(self) -> int:
        return len(self.calls)

    async def execute(self, query: Query) -> str:
        self.calls.append(query.sql)
        return await self._echo.execute(query)


# ── Component Fixtures ───────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def make_ids():
    return SequentialIds


@pytest.fixture
def fixed_keys() -> FixedKeys:
    return FixedKeys()


@pytest.fixture
def counting_executor() -> CountingExecutor:
    return CountingExecutor()


@pytest.fixture
def executor_factory(counting_executor) -> Iterator[ExecutorFactory]:
    factory = ExecutorFactory(pool_size=1)
    factory.register("test", counting_executor)
    yield factory
    factory.dispose()


@pytest.fixture
def cache() -> InMemoryQueryCache:
    return InMemoryQueryCache()


@pytest.fixture
def service(clock, cache, executor_factory) -> QueryCacheService:
    return QueryCacheService(
        datasources=InMemoryDatasourceStore(clock=clock, ids=SequentialIds("ds")),
        queries=InMemoryQueryStore(clock=clock, ids=SequentialIds("q")),
        cache=cache,
        executors=executor_factory,
        clock=clock,
    )


@pytest.fixture
def api_key_store(clock) -> InMemoryAPIKeyStore:
    return InMemoryAPIKeyStore(clock=clock, ids=SequentialIds("key"))


# ── App Fixtures ─────────────────────────────────────────────────────────────


@pytest.fixture
def app(service, api_key_store):
    """FastAPI app with in-memory components on app.state."""
    application = create_app()
    application.state.query_cache_service = service
    application.state.api_key_store = api_key_store
    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing the API."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers():
    """Build Bearer headers for a user, signed with the configured key."""

    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers


# ── SQL Fixtures ─────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory on a fresh SQLite database with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'bissy.db'}")
    await init_db(engine)
    yield session_factory_for(engine)
    await engine.dispose()
