"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, domain
exception handlers, lifespan events that assemble the query cache
components, and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.bissy.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.bissy.api.responses import UTF8JSONResponse
from src.bissy.api.v1.router import router as v1_router
from src.bissy.apikeys.repository import APIKeyRepository
from src.bissy.apikeys.store import InMemoryAPIKeyStore
from src.bissy.config import CacheBackend, Settings, StoreBackend, get_settings
from src.bissy.core.clock import SystemClock
from src.bissy.core.database import close_db, get_session, init_db
from src.bissy.core.errors import register_exception_handlers
from src.bissy.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.bissy.core.redis import close_redis, get_redis_pool
from src.bissy.querycache.cache import InMemoryQueryCache, RedisQueryCache
from src.bissy.querycache.executor import ExecutorFactory
from src.bissy.querycache.repository import DatasourceRepository, QueryRepository
from src.bissy.querycache.service import QueryCacheService
from src.bissy.querycache.store import InMemoryDatasourceStore, InMemoryQueryStore


async def init_components(app: FastAPI, settings: Settings) -> None:
    """Build stores, cache, executors and the service onto ``app.state``."""
    log = structlog.get_logger(__name__)
    clock = SystemClock()

    if settings.STORE_BACKEND == StoreBackend.sql:
        await init_db()
        datasources = DatasourceRepository(session_factory=get_session, clock=clock)
        queries = QueryRepository(session_factory=get_session, clock=clock)
        api_keys = APIKeyRepository(session_factory=get_session, clock=clock)
    else:
        datasources = InMemoryDatasourceStore(clock=clock)
        queries = InMemoryQueryStore(clock=clock)
        api_keys = InMemoryAPIKeyStore(clock=clock)

    if settings.CACHE_BACKEND == CacheBackend.redis:
        cache = RedisQueryCache(get_redis_pool())
    else:
        cache = InMemoryQueryCache()

    executors = ExecutorFactory(pool_size=settings.EXECUTOR_POOL_SIZE)

    app.state.executor_factory = executors
    app.state.api_key_store = api_keys
    app.state.query_cache_service = QueryCacheService(
        datasources=datasources,
        queries=queries,
        cache=cache,
        executors=executors,
        clock=clock,
    )
    log.info(
        "querycache.initialized",
        store_backend=settings.STORE_BACKEND.value,
        cache_backend=settings.CACHE_BACKEND.value,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: assemble components on startup, release them on shutdown."""
    settings = get_settings()
    configure_structlog()

    # Initialize Sentry if DSN is configured
    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    await init_components(app, settings)

    yield

    executors = getattr(app.state, "executor_factory", None)
    if executors is not None:
        executors.dispose()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="bissy-api",
        version="0.1.0",
        description="Query result cache: register SQL queries, fetch their results as CSV",
        lifespan=lifespan,
        default_response_class=UTF8JSONResponse,
    )

    register_exception_handlers(app)

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
