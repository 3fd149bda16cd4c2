"""Tests for CSV rendering, the echo executor, the SQLite-backed SQL
executor and the executor factory's connection URL handling."""

from __future__ import annotations

import sqlite3
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from src.bissy.core.errors import ExecutionError, UnsupportedDatasourceError
from src.bissy.querycache.executor import (
    EchoExecutor,
    ExecutorFactory,
    SQLExecutor,
    connection_url,
    format_value,
    render_csv,
)
from src.bissy.querycache.schemas import Datasource, Query

NOW = datetime(2020, 1, 1, tzinfo=timezone.utc)


def _query(sql: str) -> Query:
    return Query(
        id="q-1",
        user_id="u-1",
        sql=sql,
        datasource_id="ds-1",
        lifetime=0,
        created_at=NOW,
        updated_at=NOW,
        last_refresh=NOW,
    )


def _datasource(kind: str, options: str = "") -> Datasource:
    return Datasource(
        id="ds-1", user_id="u-1", name="db", kind=kind, options=options, created_at=NOW, updated_at=NOW
    )


# ── Value Formatting ─────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, ""),
        (b"bytes", "bytes"),
        (bytearray("café".encode()), "café"),
        (memoryview(b"view"), "view"),
        (True, "true"),
        (False, "false"),
        (42, "42"),
        (-7, "-7"),
        (1.0, "1"),
        (0.1, "0.1"),
        (2.5, "2.5"),
        (1e21, "1e+21"),
        (1.5e-7, "1.5e-07"),
        (123456.789, "123456.789"),
        (Decimal("10.50"), "10.50"),
        ("plain", "plain"),
        (date(2020, 3, 4), "2020-03-04"),
    ],
)
def test_format_value(value, expected):
    assert format_value(value) == expected


def test_format_datetime_rfc3339():
    assert format_value(datetime(2006, 1, 2, 15, 4, 5, 999, tzinfo=timezone.utc)) == "2006-01-02T15:04:05Z"
    assert format_value(datetime(2006, 1, 2, 15, 4, 5)) == "2006-01-02T15:04:05Z"
    offset = timezone(timedelta(hours=-7))
    assert format_value(datetime(2006, 1, 2, 15, 4, 5, tzinfo=offset)) == "2006-01-02T15:04:05-07:00"


# ── CSV Rendering ────────────────────────────────────────────────────────────


def test_render_csv_header_rows_and_trailing_newline():
    csv = render_csv(["id", "name"], [(1, "alice"), (2, None)])
    assert csv == "id,name\n1,alice\n2,\n"


def test_render_csv_quotes_special_fields():
    csv = render_csv(["a", "b", "c", "d"], [("x,y", 'say "hi"', "line\nbreak", "cr\rhere")])
    assert csv == 'a,b,c,d\n"x,y","say ""hi""","line\nbreak","cr\rhere"\n'


def test_render_csv_quotes_leading_whitespace():
    csv = render_csv(["v"], [(" padded",), ("\ttabbed",), ("trailing ",), ("\\.",)])
    assert csv == 'v\n" padded"\n"\ttabbed"\ntrailing \n"\\."\n'


def test_render_csv_header_only():
    assert render_csv(["count"], []) == "count\n"


# ── Executors ────────────────────────────────────────────────────────────────


async def test_echo_executor():
    assert await EchoExecutor().execute(_query("SELECT * FROM users")) == "Got: SELECT * FROM users"


@pytest.fixture
def sqlite_path(tmp_path):
    path = tmp_path / "data.db"
    conn = sqlite3.connect(path)
    conn.executescript(
        """
        CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, score REAL, avatar BLOB);
        INSERT INTO users VALUES (1, 'alice', 1.5, X'6869');
        INSERT INTO users VALUES (2, 'bob, jr', NULL, NULL);
        """
    )
    conn.commit()
    conn.close()
    return str(path)


async def test_sql_executor_renders_rows(sqlite_path):
    factory = ExecutorFactory()
    try:
        executor = factory.for_datasource(_datasource("sqlite", sqlite_path))
        result = await executor.execute(_query("SELECT id, name, score, avatar FROM users ORDER BY id"))
    finally:
        factory.dispose()

    assert result == 'id,name,score,avatar\n1,alice,1.5,hi\n2,"bob, jr",,\n'


async def test_sql_executor_wraps_driver_errors(sqlite_path):
    factory = ExecutorFactory()
    try:
        executor = factory.for_datasource(_datasource("sqlite", sqlite_path))
        with pytest.raises(ExecutionError, match="no such table"):
            await executor.execute(_query("SELECT * FROM missing"))
    finally:
        factory.dispose()


def test_factory_reuses_engine_per_kind_and_options(sqlite_path):
    factory = ExecutorFactory()
    try:
        first = factory.for_datasource(_datasource("sqlite", sqlite_path))
        second = factory.for_datasource(_datasource("sqlite", sqlite_path))
        assert isinstance(first, SQLExecutor)
        assert first._engine is second._engine
    finally:
        factory.dispose()


def test_factory_test_kind_and_overrides():
    factory = ExecutorFactory()
    assert isinstance(factory.for_datasource(_datasource("test")), EchoExecutor)
    assert factory.supports("postgres")
    assert not factory.supports("oracle")

    replacement = EchoExecutor()
    factory.register("oracle", replacement)
    assert factory.supports("oracle")
    assert factory.for_datasource(_datasource("oracle")) is replacement


def test_factory_rejects_unknown_kind():
    with pytest.raises(UnsupportedDatasourceError):
        ExecutorFactory().for_datasource(_datasource("oracle"))


# ── Connection URLs ──────────────────────────────────────────────────────────


def test_connection_url_rewrites_scheme():
    url, connect_args = connection_url("postgres", "postgres://user:pw@db.example.com:5432/app?sslmode=disable")
    assert url.drivername == "postgresql+psycopg2"
    assert (url.username, url.password, url.host, url.port, url.database) == (
        "user",
        "pw",
        "db.example.com",
        5432,
        "app",
    )
    assert url.query["sslmode"] == "disable"
    assert connect_args == {}


def test_connection_url_postgres_keyword_dsn():
    url, connect_args = connection_url("postgres", "host=localhost dbname=app sslmode=disable")
    assert url.drivername == "postgresql+psycopg2"
    assert url.host is None
    assert connect_args == {"dsn": "host=localhost dbname=app sslmode=disable"}


def test_connection_url_mysql_native_dsn():
    url, _ = connection_url("mysql", "root:s3cr@t@tcp(127.0.0.1:3306)/shop?parseTime=true")
    assert url.drivername == "mysql+mysqlconnector"
    assert (url.username, url.password, url.host, url.port, url.database) == (
        "root",
        "s3cr@t",
        "127.0.0.1",
        3306,
        "shop",
    )
    assert url.query["parseTime"] == "true"


def test_connection_url_snowflake_native_dsn():
    url, _ = connection_url("snowflake", "jane:pw@acme-eu/analytics/public?warehouse=wh")
    assert url.drivername == "snowflake"
    assert url.host == "acme-eu"
    assert url.database == "analytics/public"
    assert url.query["warehouse"] == "wh"


def test_connection_url_sqlite_path():
    url, _ = connection_url("sqlite", "/tmp/data.db")
    assert url.drivername == "sqlite"
    assert url.database == "/tmp/data.db"


def test_connection_url_invalid_mysql_dsn():
    with pytest.raises(ExecutionError):
        connection_url("mysql", "not a dsn")


@pytest.mark.parametrize(
    "kind, options",
    [
        ("mysql", "root:pw@tcp(db.internal:port)/shop"),
        ("postgres", "postgres://user:pw@db.example.com:notaport/app"),
        ("snowflake", "jane:pw@acme-eu:xyz/analytics"),
    ],
)
def test_connection_url_bad_port_is_execution_error(kind, options):
    with pytest.raises(ExecutionError):
        connection_url(kind, options)
