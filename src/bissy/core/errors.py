"""Domain error taxonomy.

Stores, caches and executors raise these; the HTTP layer maps them to
status codes in ``register_exception_handlers``.
"""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.bissy.api.responses import UTF8JSONResponse


class QueryCacheError(Exception):
    """Base class for all domain errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class NotFoundError(QueryCacheError):
    """Entity absent, or owned by another principal."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} (id: {entity_id}) not found")
        self.entity = entity
        self.entity_id = entity_id


class InvalidPaginationError(QueryCacheError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, page: int, per: int) -> None:
        super().__init__(f"page and per must be greater than 0 (page {page}) (per {per})")
        self.page = page
        self.per = per


class InvalidDurationError(QueryCacheError, ValueError):
    """Malformed lifetime; a ValueError so pydantic validators report it as 422."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ConstraintViolationError(QueryCacheError):
    """A create or update referenced something the principal does not own."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class DatasourceMissingError(QueryCacheError):
    def __init__(self, query_id: str, datasource_id: str | None) -> None:
        super().__init__(
            f"datasource (id: {datasource_id}) for query (id: {query_id}) is missing"
        )
        self.query_id = query_id
        self.datasource_id = datasource_id


class UnsupportedDatasourceError(QueryCacheError):
    def __init__(self, kind: str) -> None:
        super().__init__(f"unsupported datasource type: {kind}")
        self.kind = kind


class ExecutionError(QueryCacheError):
    """The backend rejected or failed the query. The driver message is kept verbatim."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(str(cause))
        self.__cause__ = cause


async def _query_cache_error_handler(request: Request, exc: QueryCacheError) -> UTF8JSONResponse:
    return UTF8JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> UTF8JSONResponse:
    return UTF8JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def _without_input(error: dict) -> dict:
    # Echoed input may hold NaN or Infinity, which strict JSON cannot encode
    return {k: v for k, v in error.items() if k != "input"}


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> UTF8JSONResponse:
    return UTF8JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder([_without_input(e) for e in exc.errors()])},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map the domain taxonomy, HTTP errors and body validation failures onto
    UTF-8 JSON responses."""
    app.add_exception_handler(QueryCacheError, _query_cache_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
