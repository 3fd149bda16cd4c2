"""Tests for the API key stores (in-memory and SQL)."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from src.bissy.apikeys.models import APIKeyModel
from src.bissy.apikeys.repository import APIKeyRepository
from src.bissy.apikeys.schemas import APIKey, APIKeyCreate
from src.bissy.apikeys.store import InMemoryAPIKeyStore
from src.bissy.core.clock import SecureKeyGenerator
from src.bissy.core.errors import NotFoundError
from src.bissy.core.security import hash_api_key


@pytest.fixture(params=["memory", "sql"])
def store(request, clock, make_ids, fixed_keys, session_factory):
    if request.param == "memory":
        return InMemoryAPIKeyStore(clock=clock, ids=make_ids("key"), keys=fixed_keys)
    return APIKeyRepository(session_factory, clock=clock, ids=make_ids("key"), keys=fixed_keys)


async def test_create_returns_plaintext_once(store, clock):
    new_key = await store.create("alice", APIKeyCreate(name="ci"))

    assert new_key.key.startswith("secret-1")
    assert new_key.user_id == "alice"
    assert new_key.last_used == new_key.created_at == clock.now()

    listed = await store.list("alice")
    assert listed == [APIKey(**new_key.model_dump(exclude={"key"}))]
    assert "key" not in listed[0].model_dump()


async def test_get_by_key_authenticates_and_touches_last_used(store, clock):
    new_key = await store.create("alice", APIKeyCreate(name="ci"))
    clock.advance(timedelta(minutes=10))

    found = await store.get_by_key(new_key.key)

    assert found.id == new_key.id
    assert found.user_id == "alice"
    assert found.last_used == clock.now()
    assert (await store.list("alice"))[0].last_used == clock.now()


async def test_get_by_unknown_key(store):
    await store.create("alice", APIKeyCreate(name="ci"))
    with pytest.raises(NotFoundError):
        await store.get_by_key("not-a-key")


async def test_delete_revokes_key(store):
    new_key = await store.create("alice", APIKeyCreate(name="ci"))

    deleted = await store.delete("alice", new_key.id)

    assert deleted.id == new_key.id
    assert await store.list("alice") == []
    with pytest.raises(NotFoundError):
        await store.get_by_key(new_key.key)


async def test_delete_is_owner_scoped(store):
    new_key = await store.create("alice", APIKeyCreate(name="ci"))
    with pytest.raises(NotFoundError):
        await store.delete("bob", new_key.id)
    assert (await store.get_by_key(new_key.key)).user_id == "alice"


async def test_list_is_ordered_by_name_and_scoped(store):
    for name in ("zeta", "alpha", "mid"):
        await store.create("alice", APIKeyCreate(name=name))
    await store.create("bob", APIKeyCreate(name="bobs"))

    assert [k.name for k in await store.list("alice")] == ["alpha", "mid", "zeta"]
    assert [k.name for k in await store.list("bob")] == ["bobs"]


async def test_sql_store_keeps_only_the_digest(session_factory, clock, fixed_keys):
    store = APIKeyRepository(session_factory, clock=clock, keys=fixed_keys)
    new_key = await store.create("alice", APIKeyCreate(name="ci"))

    async for session in session_factory():
        model = (await session.execute(select(APIKeyModel))).scalar_one()
        assert model.key_hash == hash_api_key(new_key.key)
        assert new_key.key not in model.key_hash


def test_secure_keys_are_long_and_distinct():
    generator = SecureKeyGenerator()
    keys = {generator.generate(32) for _ in range(50)}
    assert len(keys) == 50
    assert all(len(k) >= 43 for k in keys)
