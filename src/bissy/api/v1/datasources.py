"""REST API endpoints for datasources.

CRUD over the caller's datasources. Every endpoint requires a principal;
another user's datasource answers 404.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from src.bissy.api.deps import get_principal, get_query_cache_service
from src.bissy.config import get_settings
from src.bissy.core.principal import Principal
from src.bissy.querycache.schemas import Datasource, DatasourceCreate, DatasourceUpdate
from src.bissy.querycache.service import QueryCacheService

router = APIRouter(prefix="/datasources", tags=["datasources"])


@router.post("", response_model=Datasource)
async def create_datasource(
    body: DatasourceCreate,
    principal: Principal = Depends(get_principal),
    service: QueryCacheService = Depends(get_query_cache_service),
) -> Datasource:
    return await service.create_datasource(principal.user_id, body)


@router.get("", response_model=list[Datasource])
async def list_datasources(
    page: int = Query(default=1),
    per: int | None = Query(default=None),
    principal: Principal = Depends(get_principal),
    service: QueryCacheService = Depends(get_query_cache_service),
) -> list[Datasource]:
    """Page through datasources, oldest first. page/per below 1 answer 400."""
    if per is None:
        per = get_settings().DEFAULT_PAGE_SIZE
    return await service.list_datasources(principal.user_id, page, per)


@router.get("/{datasource_id}", response_model=Datasource)
async def get_datasource(
    datasource_id: str,
    principal: Principal = Depends(get_principal),
    service: QueryCacheService = Depends(get_query_cache_service),
) -> Datasource:
    return await service.get_datasource(principal.user_id, datasource_id)


@router.patch("/{datasource_id}", response_model=Datasource)
async def update_datasource(
    datasource_id: str,
    body: DatasourceUpdate,
    principal: Principal = Depends(get_principal),
    service: QueryCacheService = Depends(get_query_cache_service),
) -> Datasource:
    return await service.update_datasource(principal.user_id, datasource_id, body)


@router.delete("/{datasource_id}", response_model=Datasource)
async def delete_datasource(
    datasource_id: str,
    principal: Principal = Depends(get_principal),
    service: QueryCacheService = Depends(get_query_cache_service),
) -> Datasource:
    """Delete and return the datasource. Queries using it fail on their next read."""
    return await service.delete_datasource(principal.user_id, datasource_id)
