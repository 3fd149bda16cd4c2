"""API key repository -- async SQL implementation of APIKeyStore."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.bissy.apikeys.models import APIKeyModel
from src.bissy.apikeys.schemas import APIKey, APIKeyCreate, NewAPIKey
from src.bissy.apikeys.store import KEY_BYTES
from src.bissy.core.clock import (
    Clock,
    IdGenerator,
    KeyGenerator,
    SecureKeyGenerator,
    SystemClock,
    UUIDGenerator,
)
from src.bissy.core.errors import NotFoundError
from src.bissy.core.security import api_key_matches, hash_api_key

logger = structlog.get_logger(__name__)


def _model_to_api_key(model: APIKeyModel) -> APIKey:
    return APIKey(
        id=model.id,
        user_id=model.user_id,
        name=model.name,
        last_used=model.last_used,
        created_at=model.created_at,
    )


class APIKeyRepository:
    """SQL-backed APIKeyStore.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
        clock: Source of created_at / last_used.
        ids: Source of key ids.
        keys: Source of the secret itself.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncGenerator[AsyncSession, None]],
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
        keys: KeyGenerator | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._ids = ids or UUIDGenerator()
        self._keys = keys or SecureKeyGenerator()

    async def create(self, user_id: str, data: APIKeyCreate) -> NewAPIKey:
        now = self._clock.now()
        key = self._keys.generate(KEY_BYTES)
        async for session in self._session_factory():
            model = APIKeyModel(
                id=self._ids.generate(),
                user_id=user_id,
                name=data.name,
                key_hash=hash_api_key(key),
                last_used=now,
                created_at=now,
            )
            session.add(model)
            await session.commit()
            logger.info("apikeys.created", user_id=user_id, key_id=model.id)
            return NewAPIKey(**_model_to_api_key(model).model_dump(), key=key)

    async def list(self, user_id: str) -> list[APIKey]:
        async for session in self._session_factory():
            stmt = (
                select(APIKeyModel)
                .where(APIKeyModel.user_id == user_id)
                .order_by(APIKeyModel.name, APIKeyModel.id)
            )
            result = await session.execute(stmt)
            return [_model_to_api_key(m) for m in result.scalars().all()]

    async def delete(self, user_id: str, key_id: str) -> APIKey:
        async for session in self._session_factory():
            stmt = select(APIKeyModel).where(
                APIKeyModel.user_id == user_id,
                APIKeyModel.id == key_id,
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                raise NotFoundError("api key", key_id)
            deleted = _model_to_api_key(model)
            await session.delete(model)
            await session.commit()
            logger.info("apikeys.deleted", user_id=user_id, key_id=key_id)
            return deleted

    async def get_by_key(self, key: str) -> APIKey:
        async for session in self._session_factory():
            stmt = select(APIKeyModel).where(APIKeyModel.key_hash == hash_api_key(key))
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None or not api_key_matches(key, model.key_hash):
                raise NotFoundError("api key", "<redacted>")
            model.last_used = self._clock.now()
            await session.commit()
            return _model_to_api_key(model)
