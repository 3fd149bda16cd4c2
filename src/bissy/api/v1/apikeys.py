"""REST API endpoints for API keys.

The plaintext key is only part of the create response.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from src.bissy.api.deps import get_api_key_store, get_principal
from src.bissy.apikeys.schemas import APIKey, APIKeyCreate, NewAPIKey
from src.bissy.apikeys.store import APIKeyStore
from src.bissy.core.principal import Principal

router = APIRouter(prefix="/apikeys", tags=["apikeys"])


@router.post("", response_model=NewAPIKey)
async def create_api_key(
    body: APIKeyCreate,
    principal: Principal = Depends(get_principal),
    store: APIKeyStore = Depends(get_api_key_store),
) -> NewAPIKey:
    return await store.create(principal.user_id, body)


@router.get("", response_model=list[APIKey])
async def list_api_keys(
    principal: Principal = Depends(get_principal),
    store: APIKeyStore = Depends(get_api_key_store),
) -> list[APIKey]:
    """The caller's keys ordered by name, metadata only."""
    return await store.list(principal.user_id)


@router.delete("/{key_id}", response_model=APIKey)
async def delete_api_key(
    key_id: str,
    principal: Principal = Depends(get_principal),
    store: APIKeyStore = Depends(get_api_key_store),
) -> APIKey:
    """Revoke a key. Requests presenting it are rejected from now on."""
    return await store.delete(principal.user_id, key_id)
