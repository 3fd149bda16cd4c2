"""FastAPI dependency injection for authentication and app-state components.

Components are built in the lifespan (or by tests) and stored on
``app.state``; the helpers below fetch them and answer 503 while they are
missing. ``get_principal`` authenticates the caller.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from src.bissy.apikeys.store import APIKeyStore
from src.bissy.core.errors import NotFoundError
from src.bissy.core.principal import Principal, set_principal
from src.bissy.core.security import API_KEY_HEADER, unauthorized, verify_token
from src.bissy.querycache.service import QueryCacheService


def _from_state(request: Request, name: str, label: str):
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return component


def get_query_cache_service(request: Request) -> QueryCacheService:
    """Retrieve QueryCacheService from app.state, 503 if not available."""
    return _from_state(request, "query_cache_service", "Query cache")


def get_api_key_store(request: Request) -> APIKeyStore:
    """Retrieve the API key store from app.state, 503 if not available."""
    return _from_state(request, "api_key_store", "API key store")


async def get_principal(request: Request) -> Principal:
    """Authenticate the request from a Bearer JWT or an API key.

    Checks the Authorization header for a Bearer JWT first, then the
    x-bissy-apikey header. The principal is attached to ``request.state``
    and to the principal context variable.

    Raises:
        HTTPException(401): If no valid credential is presented.
    """
    auth_header = request.headers.get("Authorization")
    api_key = request.headers.get(API_KEY_HEADER)

    if auth_header and auth_header.startswith("Bearer "):
        payload = verify_token(auth_header[7:])
        principal = Principal(user_id=payload["sub"], name=payload.get("name"))
    elif api_key:
        store = get_api_key_store(request)
        try:
            key = await store.get_by_key(api_key)
        except NotFoundError:
            raise unauthorized("Invalid API key")
        principal = Principal(user_id=key.user_id, name=key.name, auth_method="apikey")
    else:
        raise unauthorized("Not authenticated")

    request.state.principal = principal
    set_principal(principal)
    return principal
