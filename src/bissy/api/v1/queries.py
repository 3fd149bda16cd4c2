"""REST API endpoints for cached queries.

CRUD over the caller's queries plus ``GET /queries/{id}/result``, which
serves the CSV artifact through the cached executor.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query as QueryParam

from src.bissy.api.deps import get_principal, get_query_cache_service
from src.bissy.config import get_settings
from src.bissy.api.responses import CSVResponse
from src.bissy.core.principal import Principal
from src.bissy.querycache.schemas import Query, QueryCreate, QueryUpdate
from src.bissy.querycache.service import QueryCacheService

router = APIRouter(prefix="/queries", tags=["queries"])


@router.post("", response_model=Query)
async def create_query(
    body: QueryCreate,
    principal: Principal = Depends(get_principal),
    service: QueryCacheService = Depends(get_query_cache_service),
) -> Query:
    """Create a query. ``datasourceId`` must name one of the caller's datasources."""
    return await service.create_query(principal.user_id, body)


@router.get("", response_model=list[Query])
async def list_queries(
    page: int = QueryParam(default=1),
    per: int | None = QueryParam(default=None),
    principal: Principal = Depends(get_principal),
    service: QueryCacheService = Depends(get_query_cache_service),
) -> list[Query]:
    if per is None:
        per = get_settings().DEFAULT_PAGE_SIZE
    return await service.list_queries(principal.user_id, page, per)


@router.get("/{query_id}", response_model=Query)
async def get_query(
    query_id: str,
    principal: Principal = Depends(get_principal),
    service: QueryCacheService = Depends(get_query_cache_service),
) -> Query:
    return await service.get_query(principal.user_id, query_id)


@router.patch("/{query_id}", response_model=Query)
async def update_query(
    query_id: str,
    body: QueryUpdate,
    principal: Principal = Depends(get_principal),
    service: QueryCacheService = Depends(get_query_cache_service),
) -> Query:
    """Partially update a query.

    Send ``lastRefresh`` alongside a new ``query`` text to make the next
    result request execute instead of serving the old artifact.
    """
    return await service.update_query(principal.user_id, query_id, body)


@router.delete("/{query_id}", response_model=Query)
async def delete_query(
    query_id: str,
    principal: Principal = Depends(get_principal),
    service: QueryCacheService = Depends(get_query_cache_service),
) -> Query:
    return await service.delete_query(principal.user_id, query_id)


@router.get("/{query_id}/result", response_class=CSVResponse)
async def query_result(
    query_id: str,
    principal: Principal = Depends(get_principal),
    service: QueryCacheService = Depends(get_query_cache_service),
) -> CSVResponse:
    """The query's latest result as CSV, from cache while fresh."""
    result = await service.query_result(principal.user_id, query_id)
    return CSVResponse(content=result)
