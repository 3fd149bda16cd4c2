"""Cached query execution.

CachedQueryExecutor answers "give me the result of query X for user U":

1. load the query and its datasource (both scoped to the user)
2. if the query was refreshed less than ``lifetime`` ago and the cache holds
   an artifact, return it
3. otherwise execute against the datasource, then store the artifact and
   record ``last_refresh = now``

The writes in step 3 are best-effort: a failing cache or store is logged and
the freshly computed result is still returned. Execution failures propagate
and leave both the cache and ``last_refresh`` untouched.

Freshness depends on ``last_refresh`` only. Changing a query's SQL does not
by itself invalidate the cached artifact; the owner resets ``lastRefresh``
for that. Concurrent stale reads may each execute the query.
"""

from __future__ import annotations

from datetime import datetime

import structlog

from src.bissy.core.clock import Clock, SystemClock
from src.bissy.core.errors import DatasourceMissingError, NotFoundError
from src.bissy.core.monitoring import (
    querycache_lookups_total,
    querycache_write_failures_total,
    track_execution,
)
from src.bissy.querycache.cache import QueryCache
from src.bissy.querycache.duration import timedelta_to_nanoseconds
from src.bissy.querycache.executor import ExecutorFactory
from src.bissy.querycache.schemas import Datasource, Query, QueryUpdate
from src.bissy.querycache.store import DatasourceStore, QueryStore

logger = structlog.get_logger(__name__)


def is_fresh(query: Query, now: datetime) -> bool:
    """True while less than ``query.lifetime`` has passed since the last refresh.

    A zero lifetime is never fresh.
    """
    return timedelta_to_nanoseconds(now - query.last_refresh) < query.lifetime


class CachedQueryExecutor:
    """Serve query results from the cache while fresh, execute otherwise.

    Args:
        queries: Store used to load the query and record ``last_refresh``.
        datasources: Store used to resolve the query's datasource.
        cache: Artifact cache.
        executors: Builds the executor for a datasource.
        clock: Time source for freshness and ``last_refresh``.
    """

    def __init__(
        self,
        queries: QueryStore,
        datasources: DatasourceStore,
        cache: QueryCache,
        executors: ExecutorFactory,
        clock: Clock | None = None,
    ) -> None:
        self._queries = queries
        self._datasources = datasources
        self._cache = cache
        self._executors = executors
        self._clock = clock or SystemClock()

    async def _datasource_for(self, user_id: str, query: Query) -> Datasource:
        if not query.datasource_id:
            raise DatasourceMissingError(query.id, query.datasource_id)
        try:
            return await self._datasources.get(user_id, query.datasource_id)
        except NotFoundError:
            raise DatasourceMissingError(query.id, query.datasource_id)

    async def result(self, user_id: str, query_id: str) -> str:
        """CSV artifact for the query, executing it if stale or uncached.

        Raises:
            NotFoundError: the query does not exist for this user.
            DatasourceMissingError: its datasource was deleted.
            ExecutionError: the backend failed the query.
        """
        log = logger.bind(user_id=user_id, query_id=query_id)

        query = await self._queries.get(user_id, query_id)
        datasource = await self._datasource_for(user_id, query)

        if is_fresh(query, self._clock.now()):
            cached = await self._cache.get(query)
            if cached is not None:
                querycache_lookups_total.labels(outcome="hit").inc()
                log.debug("querycache.cache_hit")
                return cached
            querycache_lookups_total.labels(outcome="miss").inc()
            log.info("querycache.cache_miss")
        else:
            querycache_lookups_total.labels(outcome="stale").inc()
            log.info("querycache.stale", last_refresh=query.last_refresh.isoformat())

        async with track_execution(datasource.kind):
            executor = self._executors.for_datasource(datasource)
            result = await executor.execute(query)

        log.info("querycache.executed", datasource_id=datasource.id, kind=datasource.kind)
        await self._record_refresh(user_id, query, result)
        return result

    async def _record_refresh(self, user_id: str, query: Query, result: str) -> None:
        try:
            await self._cache.set(query, result)
        except Exception:
            querycache_write_failures_total.labels(target="cache").inc()
            logger.warning("querycache.cache_set_failed", query_id=query.id, exc_info=True)

        try:
            await self._queries.update(user_id, query.id, QueryUpdate(last_refresh=self._clock.now()))
        except Exception:
            querycache_write_failures_total.labels(target="last_refresh").inc()
            logger.warning("querycache.last_refresh_update_failed", query_id=query.id, exc_info=True)
