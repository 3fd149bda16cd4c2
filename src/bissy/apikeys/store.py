"""API key store -- interface and in-memory implementation.

Keys are 32 random bytes from the CSPRNG rendered URL-safe. The plaintext
leaves the store once, in the ``create`` result; afterwards only its digest
is kept, and ``get_by_key`` finds a key by hashing what was presented.
"""

from __future__ import annotations

from typing import Protocol

from src.bissy.apikeys.schemas import APIKey, APIKeyCreate, NewAPIKey
from src.bissy.core.clock import (
    Clock,
    IdGenerator,
    KeyGenerator,
    SecureKeyGenerator,
    SystemClock,
    UUIDGenerator,
)
from src.bissy.core.errors import NotFoundError
from src.bissy.core.locks import ReadWriteLock
from src.bissy.core.security import api_key_matches, hash_api_key

KEY_BYTES = 32


class APIKeyStore(Protocol):
    async def create(self, user_id: str, data: APIKeyCreate) -> NewAPIKey: ...

    async def list(self, user_id: str) -> list[APIKey]: ...

    async def delete(self, user_id: str, key_id: str) -> APIKey: ...

    async def get_by_key(self, key: str) -> APIKey:
        """Metadata of the key, with ``last_used`` refreshed. NotFoundError if unknown."""
        ...


class InMemoryAPIKeyStore:
    def __init__(
        self,
        clock: Clock | None = None,
        ids: IdGenerator | None = None,
        keys: KeyGenerator | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        self._ids = ids or UUIDGenerator()
        self._keys = keys or SecureKeyGenerator()
        self._rows: dict[str, APIKey] = {}
        self._hashes: dict[str, str] = {}
        self._by_hash: dict[str, str] = {}
        self._lock = ReadWriteLock()

    async def create(self, user_id: str, data: APIKeyCreate) -> NewAPIKey:
        now = self._clock.now()
        key = self._keys.generate(KEY_BYTES)
        row = APIKey(id=self._ids.generate(), user_id=user_id, name=data.name, last_used=now, created_at=now)
        with self._lock.write():
            self._rows[row.id] = row
            digest = hash_api_key(key)
            self._hashes[row.id] = digest
            self._by_hash[digest] = row.id
        return NewAPIKey(**row.model_dump(), key=key)

    async def list(self, user_id: str) -> list[APIKey]:
        with self._lock.read():
            owned = [r for r in self._rows.values() if r.user_id == user_id]
        return sorted(owned, key=lambda r: (r.name, r.id))

    async def delete(self, user_id: str, key_id: str) -> APIKey:
        with self._lock.write():
            row = self._rows.get(key_id)
            if row is None or row.user_id != user_id:
                raise NotFoundError("api key", key_id)
            del self._rows[key_id]
            del self._by_hash[self._hashes.pop(key_id)]
        return row

    async def get_by_key(self, key: str) -> APIKey:
        digest = hash_api_key(key)
        with self._lock.write():
            key_id = self._by_hash.get(digest)
            row = self._rows.get(key_id) if key_id else None
            if row is None or not api_key_matches(key, self._hashes[row.id]):
                raise NotFoundError("api key", "<redacted>")
            row = row.model_copy(update={"last_used": self._clock.now()})
            self._rows[row.id] = row
        return row
