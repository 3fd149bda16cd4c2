"""Datasource and query stores -- interfaces and in-memory implementations.

Every operation takes the owning user_id first. Rows owned by another user
behave exactly as missing rows. Lists are ordered by (created_at, id) and
paged by offset.

The in-memory stores keep entities in a dict guarded by a reader-writer
lock; they back single-process deployments and the API tests. The SQL
implementations live in ``repository``.
"""

from __future__ import annotations

from typing import Protocol

from src.bissy.core.clock import Clock, IdGenerator, SystemClock, UUIDGenerator
from src.bissy.core.errors import NotFoundError
from src.bissy.core.locks import ReadWriteLock
from src.bissy.querycache.schemas import (
    Datasource,
    DatasourceCreate,
    DatasourceUpdate,
    Page,
    Query,
    QueryCreate,
    QueryUpdate,
)


class DatasourceStore(Protocol):
    async def create(self, user_id: str, data: DatasourceCreate) -> Datasource: ...

    async def get(self, user_id: str, datasource_id: str) -> Datasource: ...

    async def list(self, user_id: str, page: int = 1, per: int = 25) -> list[Datasource]: ...

    async def update(self, user_id: str, datasource_id: str, data: DatasourceUpdate) -> Datasource: ...

    async def delete(self, user_id: str, datasource_id: str) -> Datasource: ...


class QueryStore(Protocol):
    async def create(self, user_id: str, data: QueryCreate) -> Query: ...

    async def get(self, user_id: str, query_id: str) -> Query: ...

    async def list(self, user_id: str, page: int = 1, per: int = 25) -> list[Query]: ...

    async def update(self, user_id: str, query_id: str, data: QueryUpdate) -> Query: ...

    async def delete(self, user_id: str, query_id: str) -> Query: ...


# ── In-memory Datasources ───────────────────────────────────────────────────


class InMemoryDatasourceStore:
    def __init__(self, clock: Clock | None = None, ids: IdGenerator | None = None) -> None:
        self._clock = clock or SystemClock()
        self._ids = ids or UUIDGenerator()
        self._rows: dict[str, Datasource] = {}
        self._lock = ReadWriteLock()

    def _owned(self, user_id: str, datasource_id: str) -> Datasource:
        row = self._rows.get(datasource_id)
        if row is None or row.user_id != user_id:
            raise NotFoundError("datasource", datasource_id)
        return row

    async def create(self, user_id: str, data: DatasourceCreate) -> Datasource:
        now = self._clock.now()
        row = Datasource(
            id=self._ids.generate(),
            user_id=user_id,
            name=data.name,
            kind=data.kind,
            options=data.options,
            created_at=now,
            updated_at=now,
        )
        with self._lock.write():
            self._rows[row.id] = row
        return row.model_copy()

    async def get(self, user_id: str, datasource_id: str) -> Datasource:
        with self._lock.read():
            return self._owned(user_id, datasource_id).model_copy()

    async def list(self, user_id: str, page: int = 1, per: int = 25) -> list[Datasource]:
        window = Page.of(page, per)
        with self._lock.read():
            owned = [r for r in self._rows.values() if r.user_id == user_id]
        owned.sort(key=lambda r: (r.created_at, r.id))
        return [r.model_copy() for r in owned[window.offset : window.offset + window.limit]]

    async def update(self, user_id: str, datasource_id: str, data: DatasourceUpdate) -> Datasource:
        changes = data.model_dump(exclude_none=True)
        with self._lock.write():
            row = self._owned(user_id, datasource_id)
            row = row.model_copy(update={**changes, "updated_at": self._clock.now()})
            self._rows[datasource_id] = row
        return row.model_copy()

    async def delete(self, user_id: str, datasource_id: str) -> Datasource:
        with self._lock.write():
            row = self._owned(user_id, datasource_id)
            del self._rows[datasource_id]
        return row


# ── In-memory Queries ───────────────────────────────────────────────────────


class InMemoryQueryStore:
    def __init__(self, clock: Clock | None = None, ids: IdGenerator | None = None) -> None:
        self._clock = clock or SystemClock()
        self._ids = ids or UUIDGenerator()
        self._rows: dict[str, Query] = {}
        self._lock = ReadWriteLock()

    def _owned(self, user_id: str, query_id: str) -> Query:
        row = self._rows.get(query_id)
        if row is None or row.user_id != user_id:
            raise NotFoundError("query", query_id)
        return row

    async def create(self, user_id: str, data: QueryCreate) -> Query:
        now = self._clock.now()
        row = Query(
            id=self._ids.generate(),
            user_id=user_id,
            sql=data.sql,
            datasource_id=data.datasource_id,
            lifetime=data.lifetime,
            created_at=now,
            updated_at=now,
            last_refresh=now,
        )
        with self._lock.write():
            self._rows[row.id] = row
        return row.model_copy()

    async def get(self, user_id: str, query_id: str) -> Query:
        with self._lock.read():
            return self._owned(user_id, query_id).model_copy()

    async def list(self, user_id: str, page: int = 1, per: int = 25) -> list[Query]:
        window = Page.of(page, per)
        with self._lock.read():
            owned = [r for r in self._rows.values() if r.user_id == user_id]
        owned.sort(key=lambda r: (r.created_at, r.id))
        return [r.model_copy() for r in owned[window.offset : window.offset + window.limit]]

    async def update(self, user_id: str, query_id: str, data: QueryUpdate) -> Query:
        changes = data.model_dump(exclude_none=True)
        with self._lock.write():
            row = self._owned(user_id, query_id)
            row = row.model_copy(update={**changes, "updated_at": self._clock.now()})
            self._rows[query_id] = row
        return row.model_copy()

    async def delete(self, user_id: str, query_id: str) -> Query:
        with self._lock.write():
            row = self._owned(user_id, query_id)
            del self._rows[query_id]
        return row
