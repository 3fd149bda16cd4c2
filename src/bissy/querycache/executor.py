"""Query executors -- run a query against its datasource and render CSV.

Provides:
- Executor: protocol with a single async ``execute(query)``
- EchoExecutor: answers ``Got: <sql>`` without touching a database (``test`` kind)
- SQLExecutor: runs the SQL on a pooled SQLAlchemy engine in a worker thread
- ExecutorFactory: maps a datasource to an executor, one engine per (kind, options)
- render_csv() / format_value(): the stable CSV serialization of a result set
"""

from __future__ import annotations

import asyncio
import math
import re
import threading
from collections.abc import Iterable, Sequence
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Protocol

import structlog
from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import ArgumentError, DBAPIError, NoSuchModuleError, SQLAlchemyError

from src.bissy.core.errors import ExecutionError, UnsupportedDatasourceError
from src.bissy.querycache.schemas import Datasource, Query

logger = structlog.get_logger(__name__)


class Executor(Protocol):
    async def execute(self, query: Query) -> str: ...


# ── CSV Serialization ───────────────────────────────────────────────────────


def _format_float(value: float) -> str:
    """Shortest round-trip text, exponent form only for very large or small values."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"

    exact = Decimal(repr(value)).normalize()
    exponent = exact.adjusted()
    if -4 <= exponent < 21:
        return format(exact, "f")

    sign, digits, _ = exact.as_tuple()
    mantissa = str(digits[0])
    if len(digits) > 1:
        mantissa += "." + "".join(str(d) for d in digits[1:])
    return f"{'-' if sign else ''}{mantissa}e{'-' if exponent < 0 else '+'}{abs(exponent):02d}"


def _format_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.replace(microsecond=0).isoformat()
    if value.utcoffset() == timedelta(0):
        return text[:-6] + "Z"
    return text


def format_value(value: Any) -> str:
    """Textualize one column value.

    Byte strings are read as UTF-8, datetimes as RFC 3339 (second
    precision), NULL as the empty string, booleans as ``true``/``false``.
    Everything else uses its plain decimal or string form.
    """
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return _format_datetime(value)
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, float):
        return _format_float(value)
    return str(value)


def _needs_quotes(field: str) -> bool:
    if not field:
        return False
    if field == "\\." or any(c in field for c in ',"\r\n'):
        return True
    return field[0].isspace()


def _quote(field: str) -> str:
    if not _needs_quotes(field):
        return field
    return '"' + field.replace('"', '""') + '"'


def render_csv(columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    """Header record then one record per row, LF terminated, trailing LF included."""
    lines = [",".join(_quote(str(c)) for c in columns)]
    for row in rows:
        lines.append(",".join(_quote(format_value(v)) for v in row))
    return "\n".join(lines) + "\n"


# ── Executors ───────────────────────────────────────────────────────────────


class EchoExecutor:
    """Deterministic executor for the ``test`` datasource kind."""

    async def execute(self, query: Query) -> str:
        return f"Got: {query.sql}"


class _InFlight:
    """The DBAPI connection a worker thread is currently using."""

    def __init__(self) -> None:
        self.connection: Any = None

    def cancel(self) -> None:
        conn = self.connection
        if conn is None:
            return
        for name in ("cancel", "interrupt"):
            method = getattr(conn, name, None)
            if callable(method):
                try:
                    method()
                except Exception:
                    logger.warning("querycache.cancel_failed", exc_info=True)
                return


class SQLExecutor:
    """Runs the query text as-is on a shared engine.

    The blocking driver call happens in a worker thread. If the awaiting
    task is cancelled, the driver is asked to abort the running statement.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def _run(self, sql: str, in_flight: _InFlight) -> str:
        with self._engine.connect() as conn:
            in_flight.connection = conn.connection.dbapi_connection
            try:
                result = conn.exec_driver_sql(sql)
                if not result.returns_rows:
                    return render_csv([], [])
                return render_csv(list(result.keys()), result)
            finally:
                in_flight.connection = None

    async def execute(self, query: Query) -> str:
        in_flight = _InFlight()
        try:
            return await asyncio.to_thread(self._run, query.sql, in_flight)
        except asyncio.CancelledError:
            in_flight.cancel()
            raise
        except DBAPIError as exc:
            raise ExecutionError(exc.orig if exc.orig is not None else exc) from exc
        except SQLAlchemyError as exc:
            raise ExecutionError(exc) from exc


# ── Connection URLs ─────────────────────────────────────────────────────────

DRIVERS: dict[str, str] = {
    "postgres": "postgresql+psycopg2",
    "mysql": "mysql+mysqlconnector",
    "snowflake": "snowflake",
    "sqlite": "sqlite",
}

ECHO_KIND = "test"

SUPPORTED_KINDS: tuple[str, ...] = (*DRIVERS, ECHO_KIND)

# user[:password]@net(host:port)/dbname?params
_MYSQL_DSN = re.compile(
    r"^(?:(?P<user>[^:@/]*)(?::(?P<password>.*))?@)?"
    r"(?:(?P<net>[a-z]*)(?:\((?P<addr>[^)]*)\))?)?"
    r"/(?P<database>[^?]*)(?:\?(?P<params>.*))?$"
)


def _parse_params(params: str | None) -> dict[str, str]:
    if not params:
        return {}
    pairs = (p.split("=", 1) for p in params.split("&") if p)
    return {k: (v[0] if v else "") for k, *v in pairs}


def _mysql_url(options: str) -> URL:
    match = _MYSQL_DSN.match(options)
    if match is None:
        raise ExecutionError(ArgumentError(f"invalid mysql dsn: {options!r}"))
    host, port = None, None
    if match.group("addr"):
        host, _, port_text = match.group("addr").rpartition(":")
        if not host:
            host, port_text = port_text, ""
        try:
            port = int(port_text) if port_text else None
        except ValueError as exc:
            raise ExecutionError(exc) from exc
    return URL.create(
        DRIVERS["mysql"],
        username=match.group("user") or None,
        password=match.group("password"),
        host=host,
        port=port,
        database=match.group("database") or None,
        query=_parse_params(match.group("params")),
    )


def connection_url(kind: str, options: str) -> tuple[URL, dict[str, Any]]:
    """Translate datasource options into a SQLAlchemy URL and connect args.

    ``options`` may be a URL for any kind; otherwise the driver-native forms
    are accepted: libpq ``key=value`` strings for postgres,
    ``user:pass@tcp(host:port)/db`` for mysql,
    ``user:pass@account/db/schema?warehouse=...`` for snowflake and a file
    path for sqlite.
    """
    if kind not in DRIVERS:
        raise UnsupportedDatasourceError(kind)
    driver = DRIVERS[kind]
    options = options.strip()

    if "://" in options:
        try:
            return make_url(options).set(drivername=driver), {}
        except (ArgumentError, ValueError) as exc:
            raise ExecutionError(exc) from exc

    if kind == "postgres":
        return URL.create(driver), {"dsn": options}
    if kind == "mysql":
        return _mysql_url(options), {}
    if kind == "snowflake":
        try:
            return make_url(f"{driver}://{options}"), {}
        except (ArgumentError, ValueError) as exc:
            raise ExecutionError(exc) from exc
    return URL.create(driver, database=options or None), {}


# ── Factory ─────────────────────────────────────────────────────────────────


class ExecutorFactory:
    """Builds executors for datasources.

    Engines are memoised per (kind, options) so concurrent requests against
    the same backend share one connection pool. Kinds can be overridden
    with a ready executor (``register``), which tests use for doubles.
    """

    def __init__(self, pool_size: int = 5) -> None:
        self._pool_size = pool_size
        self._engines: dict[tuple[str, str], Engine] = {}
        self._lock = threading.Lock()
        self._overrides: dict[str, Executor] = {ECHO_KIND: EchoExecutor()}

    def register(self, kind: str, executor: Executor) -> None:
        self._overrides[kind] = executor

    def supports(self, kind: str) -> bool:
        return kind in self._overrides or kind in DRIVERS

    def _engine(self, kind: str, options: str) -> Engine:
        key = (kind, options)
        with self._lock:
            engine = self._engines.get(key)
            if engine is not None:
                return engine

            url, connect_args = connection_url(kind, options)
            kwargs: dict[str, Any] = {"connect_args": connect_args}
            if kind != "sqlite":
                kwargs["pool_size"] = self._pool_size
                kwargs["pool_pre_ping"] = True
            try:
                engine = create_engine(url, **kwargs)
            except (ImportError, NoSuchModuleError, ArgumentError) as exc:
                raise ExecutionError(exc) from exc

            self._engines[key] = engine
            logger.info("querycache.engine_created", kind=kind, dialect=url.get_backend_name())
            return engine

    def for_datasource(self, datasource: Datasource) -> Executor:
        override = self._overrides.get(datasource.kind)
        if override is not None:
            return override
        return SQLExecutor(self._engine(datasource.kind, datasource.options))

    def dispose(self) -> None:
        """Close every pooled connection."""
        with self._lock:
            engines = list(self._engines.values())
            self._engines.clear()
        for engine in engines:
            engine.dispose()
