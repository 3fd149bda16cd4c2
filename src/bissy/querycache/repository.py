"""Query cache repository -- async SQL CRUD for datasources and queries.

Provides DatasourceRepository and QueryRepository with the session_factory
callable pattern: each operation opens one session, does its work and
commits. All methods take user_id as first argument and include it in
every predicate, so another user's row is reported as not found.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.bissy.core.clock import Clock, IdGenerator, SystemClock, UUIDGenerator
from src.bissy.core.errors import NotFoundError
from src.bissy.querycache.models import DatasourceModel, QueryModel
from src.bissy.querycache.schemas import (
    Datasource,
    DatasourceCreate,
    DatasourceUpdate,
    Page,
    Query,
    QueryCreate,
    QueryUpdate,
)

logger = structlog.get_logger(__name__)

SessionFactory = Callable[..., AsyncGenerator[AsyncSession, None]]


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_datasource(model: DatasourceModel) -> Datasource:
    return Datasource(
        id=model.id,
        user_id=model.user_id,
        name=model.name,
        kind=model.kind,
        options=model.options,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_query(model: QueryModel) -> Query:
    return Query(
        id=model.id,
        user_id=model.user_id,
        sql=model.sql,
        datasource_id=model.datasource_id,
        lifetime=model.lifetime,
        created_at=model.created_at,
        updated_at=model.updated_at,
        last_refresh=model.last_refresh,
    )


# ── Datasources ─────────────────────────────────────────────────────────────


class DatasourceRepository:
    """SQL-backed DatasourceStore.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
        clock: Source of created_at / updated_at.
        ids: Source of new datasource ids.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._ids = ids or UUIDGenerator()

    async def _owned(self, session: AsyncSession, user_id: str, datasource_id: str) -> DatasourceModel:
        stmt = select(DatasourceModel).where(
            DatasourceModel.user_id == user_id,
            DatasourceModel.id == datasource_id,
        )
        result = await session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            raise NotFoundError("datasource", datasource_id)
        return model

    async def create(self, user_id: str, data: DatasourceCreate) -> Datasource:
        now = self._clock.now()
        async for session in self._session_factory():
            model = DatasourceModel(
                id=self._ids.generate(),
                user_id=user_id,
                name=data.name,
                kind=data.kind,
                options=data.options,
                created_at=now,
                updated_at=now,
            )
            session.add(model)
            await session.commit()
            logger.info("querycache.datasource_created", user_id=user_id, datasource_id=model.id)
            return _model_to_datasource(model)

    async def get(self, user_id: str, datasource_id: str) -> Datasource:
        async for session in self._session_factory():
            return _model_to_datasource(await self._owned(session, user_id, datasource_id))

    async def list(self, user_id: str, page: int = 1, per: int = 25) -> list[Datasource]:
        window = Page.of(page, per)
        if window.out_of_range:
            return []
        async for session in self._session_factory():
            stmt = (
                select(DatasourceModel)
                .where(DatasourceModel.user_id == user_id)
                .order_by(DatasourceModel.created_at, DatasourceModel.id)
                .offset(window.offset)
                .limit(window.limit)
            )
            result = await session.execute(stmt)
            return [_model_to_datasource(m) for m in result.scalars().all()]

    async def update(self, user_id: str, datasource_id: str, data: DatasourceUpdate) -> Datasource:
        async for session in self._session_factory():
            model = await self._owned(session, user_id, datasource_id)
            for field, value in data.model_dump(exclude_none=True).items():
                setattr(model, field, value)
            model.updated_at = self._clock.now()
            await session.commit()
            return _model_to_datasource(model)

    async def delete(self, user_id: str, datasource_id: str) -> Datasource:
        async for session in self._session_factory():
            model = await self._owned(session, user_id, datasource_id)
            deleted = _model_to_datasource(model)
            await session.delete(model)
            await session.commit()
            logger.info("querycache.datasource_deleted", user_id=user_id, datasource_id=datasource_id)
            return deleted


# ── Queries ─────────────────────────────────────────────────────────────────


class QueryRepository:
    """SQL-backed QueryStore.

    ``update`` is also the path the cached executor uses to record
    ``last_refresh`` after a successful execution.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._ids = ids or UUIDGenerator()

    async def _owned(self, session: AsyncSession, user_id: str, query_id: str) -> QueryModel:
        stmt = select(QueryModel).where(
            QueryModel.user_id == user_id,
            QueryModel.id == query_id,
        )
        result = await session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            raise NotFoundError("query", query_id)
        return model

    async def create(self, user_id: str, data: QueryCreate) -> Query:
        now = self._clock.now()
        async for session in self._session_factory():
            model = QueryModel(
                id=self._ids.generate(),
                user_id=user_id,
                sql=data.sql,
                datasource_id=data.datasource_id,
                lifetime=data.lifetime,
                created_at=now,
                updated_at=now,
                last_refresh=now,
            )
            session.add(model)
            await session.commit()
            logger.info("querycache.query_created", user_id=user_id, query_id=model.id)
            return _model_to_query(model)

    async def get(self, user_id: str, query_id: str) -> Query:
        async for session in self._session_factory():
            return _model_to_query(await self._owned(session, user_id, query_id))

    async def list(self, user_id: str, page: int = 1, per: int = 25) -> list[Query]:
        window = Page.of(page, per)
        if window.out_of_range:
            return []
        async for session in self._session_factory():
            stmt = (
                select(QueryModel)
                .where(QueryModel.user_id == user_id)
                .order_by(QueryModel.created_at, QueryModel.id)
                .offset(window.offset)
                .limit(window.limit)
            )
            result = await session.execute(stmt)
            return [_model_to_query(m) for m in result.scalars().all()]

    async def update(self, user_id: str, query_id: str, data: QueryUpdate) -> Query:
        async for session in self._session_factory():
            model = await self._owned(session, user_id, query_id)
            for field, value in data.model_dump(exclude_none=True).items():
                setattr(model, field, value)
            model.updated_at = self._clock.now()
            await session.commit()
            return _model_to_query(model)

    async def delete(self, user_id: str, query_id: str) -> Query:
        async for session in self._session_factory():
            model = await self._owned(session, user_id, query_id)
            deleted = _model_to_query(model)
            await session.delete(model)
            await session.commit()
            logger.info("querycache.query_deleted", user_id=user_id, query_id=query_id)
            return deleted
