"""QueryCacheService -- the operations the HTTP layer calls.

Wraps the stores, the cache and the cached executor, adding the checks
that span more than one store: a query may only reference a datasource
owned by the same user, datasource kinds must have an executor, an
owner-supplied ``last_refresh`` is never later than now, and deleting a
query drops its cached artifact.
"""

from __future__ import annotations

import structlog

from src.bissy.core.clock import Clock, SystemClock
from src.bissy.core.errors import ConstraintViolationError, NotFoundError
from src.bissy.querycache.cache import QueryCache
from src.bissy.querycache.executor import ExecutorFactory
from src.bissy.querycache.orchestrator import CachedQueryExecutor
from src.bissy.querycache.schemas import (
    Datasource,
    DatasourceCreate,
    DatasourceUpdate,
    Query,
    QueryCreate,
    QueryUpdate,
)
from src.bissy.querycache.store import DatasourceStore, QueryStore

logger = structlog.get_logger(__name__)


class QueryCacheService:
    def __init__(
        self,
        datasources: DatasourceStore,
        queries: QueryStore,
        cache: QueryCache,
        executors: ExecutorFactory,
        clock: Clock | None = None,
    ) -> None:
        self.datasources = datasources
        self.queries = queries
        self.cache = cache
        self.executors = executors
        self.clock = clock or SystemClock()
        self.executor = CachedQueryExecutor(queries, datasources, cache, executors, self.clock)

    # ── Datasources ─────────────────────────────────────────────────────────

    def _check_kind(self, kind: str | None) -> None:
        if kind is not None and not self.executors.supports(kind):
            raise ConstraintViolationError(f"unsupported datasource type: {kind}")

    async def create_datasource(self, user_id: str, data: DatasourceCreate) -> Datasource:
        self._check_kind(data.kind)
        return await self.datasources.create(user_id, data)

    async def get_datasource(self, user_id: str, datasource_id: str) -> Datasource:
        return await self.datasources.get(user_id, datasource_id)

    async def list_datasources(self, user_id: str, page: int, per: int) -> list[Datasource]:
        return await self.datasources.list(user_id, page, per)

    async def update_datasource(
        self, user_id: str, datasource_id: str, data: DatasourceUpdate
    ) -> Datasource:
        self._check_kind(data.kind)
        return await self.datasources.update(user_id, datasource_id, data)

    async def delete_datasource(self, user_id: str, datasource_id: str) -> Datasource:
        return await self.datasources.delete(user_id, datasource_id)

    # ── Queries ─────────────────────────────────────────────────────────────

    async def _check_datasource(self, user_id: str, datasource_id: str | None) -> None:
        if datasource_id is None:
            return
        try:
            await self.datasources.get(user_id, datasource_id)
        except NotFoundError:
            raise ConstraintViolationError(f"datasource (id: {datasource_id}) does not exist")

    async def create_query(self, user_id: str, data: QueryCreate) -> Query:
        await self._check_datasource(user_id, data.datasource_id)
        return await self.queries.create(user_id, data)

    async def get_query(self, user_id: str, query_id: str) -> Query:
        return await self.queries.get(user_id, query_id)

    async def list_queries(self, user_id: str, page: int, per: int) -> list[Query]:
        return await self.queries.list(user_id, page, per)

    async def update_query(self, user_id: str, query_id: str, data: QueryUpdate) -> Query:
        await self._check_datasource(user_id, data.datasource_id)
        if data.last_refresh is not None:
            now = self.clock.now()
            if data.last_refresh > now:
                data = data.model_copy(update={"last_refresh": now})
        return await self.queries.update(user_id, query_id, data)

    async def delete_query(self, user_id: str, query_id: str) -> Query:
        query = await self.queries.delete(user_id, query_id)
        try:
            await self.cache.delete(query)
        except Exception:
            logger.warning("querycache.cache_delete_failed", query_id=query_id, exc_info=True)
        return query

    async def query_result(self, user_id: str, query_id: str) -> str:
        return await self.executor.result(user_id, query_id)
