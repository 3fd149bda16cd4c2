"""Pydantic schemas for the query cache -- datasources, queries, pagination.

Defines the wire and store-level types:
- Datasource: DatasourceCreate / DatasourceUpdate / Datasource
- Query: QueryCreate / QueryUpdate / Query
- Page: validated page / per pair with the derived offset

JSON uses camelCase (``datasourceId``, ``lastRefresh``); the datasource kind
travels as ``type`` and the query text as ``query``. Update schemas are
partial: a field left out (or sent as null) keeps the stored value.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.bissy.core.errors import InvalidPaginationError
from src.bissy.querycache.duration import Lifetime


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Datasources ─────────────────────────────────────────────────────────────


class DatasourceCreate(_CamelModel):
    name: str
    kind: str = Field(alias="type")
    options: str = ""


class DatasourceUpdate(_CamelModel):
    name: str | None = None
    kind: str | None = Field(default=None, alias="type")
    options: str | None = None


class Datasource(_CamelModel):
    """A named, owner-scoped handle to a SQL backend."""

    id: str
    user_id: str
    name: str
    kind: str = Field(alias="type")
    options: str
    created_at: datetime
    updated_at: datetime


# ── Queries ─────────────────────────────────────────────────────────────────


class QueryCreate(_CamelModel):
    sql: str = Field(alias="query")
    lifetime: Lifetime
    datasource_id: str


class QueryUpdate(_CamelModel):
    """Partial query update.

    ``last_refresh`` lets the owner force the next read to execute after
    changing ``sql``; the cached executor uses it to record a refresh.
    """

    sql: str | None = Field(default=None, alias="query")
    lifetime: Lifetime | None = None
    datasource_id: str | None = None
    last_refresh: datetime | None = None

    @field_validator("last_refresh")
    @classmethod
    def _normalise_last_refresh(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class Query(_CamelModel):
    """SQL text tied to a datasource with a freshness lifetime (nanoseconds)."""

    id: str
    user_id: str
    sql: str = Field(alias="query")
    datasource_id: str | None = None
    lifetime: Lifetime
    created_at: datetime
    updated_at: datetime
    last_refresh: datetime


# ── Pagination ──────────────────────────────────────────────────────────────


# Largest OFFSET/LIMIT a SQL backend accepts (signed 64-bit).
_MAX_ROWS = (1 << 63) - 1


class Page(BaseModel):
    """Offset pagination, 1-based."""

    model_config = ConfigDict(frozen=True)

    page: int = 1
    per: int = 25

    @classmethod
    def of(cls, page: int, per: int) -> Page:
        if page < 1 or per < 1:
            raise InvalidPaginationError(page, per)
        return cls(page=page, per=per)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per

    @property
    def limit(self) -> int:
        return min(self.per, _MAX_ROWS)

    @property
    def out_of_range(self) -> bool:
        """True when the window starts past any row a backend could hold."""
        return self.offset > _MAX_ROWS
