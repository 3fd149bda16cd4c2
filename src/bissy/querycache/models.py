"""Query cache persistence models -- user-scoped datasources and queries.

Two SQLAlchemy models on the shared declarative Base:
- DatasourceModel: named handle to a SQL backend (kind + connection options)
- QueryModel: SQL text bound to a datasource with a freshness lifetime

Ownership is enforced by filtering on user_id in every statement; the
datasource reference is checked by the service layer rather than a foreign
key, since deleting a datasource that queries still reference is allowed.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.bissy.core.database import Base, UTCDateTime


class DatasourceModel(Base):
    """A SQL backend registered by a user."""

    __tablename__ = "querycache_datasources"
    __table_args__ = (
        Index("ix_querycache_datasources_user_created", "user_id", "created_at", "id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[str] = mapped_column("type", String(50), nullable=False)
    options: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class QueryModel(Base):
    """A cached query.

    ``lifetime`` is stored as nanoseconds; ``last_refresh`` moves forward on
    every successful execution and may be reset by the owner to force one.
    """

    __tablename__ = "querycache_queries"
    __table_args__ = (
        Index("ix_querycache_queries_user_created", "user_id", "created_at", "id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    sql: Mapped[str] = mapped_column("query", Text, nullable=False)
    datasource_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    lifetime: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    last_refresh: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
