"""Tests for login sessions."""

import pytest
import time
from unittest.mock import AsyncMock, patch

from api.session import (
    SessionSigner,
    InMemorySessionStore,
    RedisSessionStore,
    create_session,
    delete_session,
    extract_session_id,
    get_session,
    update_session,
)


class TestSessionSigner:
    """Tests for signed session tokens."""

    def test_token_hides_raw_id(self):
        signer = SessionSigner(secret_key="test-secret")
        token = signer.sign("raw-id")
        assert token != "raw-id"
        assert signer.unsign(token, max_age=60) == "raw-id"

    def test_tampered_token_rejected(self):
        signer = SessionSigner(secret_key="test-secret")
        token = signer.sign("raw-id")
        assert signer.unsign(token[:-2] + "xx", max_age=60) is None

    def test_other_secret_rejected(self):
        token = SessionSigner(secret_key="one").sign("raw-id")
        assert SessionSigner(secret_key="two").unsign(token, max_age=60) is None

    def test_expired_token_rejected(self):
        signer = SessionSigner(secret_key="test-secret")
        token = signer.sign("raw-id")

        later = time.time() + 7200
        with patch("time.time", return_value=later):
            assert signer.unsign(token, max_age=3600) is None


class TestInMemorySessionStore:
    """Tests for the in-memory store."""

    @pytest.mark.asyncio
    async def test_set_get_delete(self):
        store = InMemorySessionStore()
        await store.set("sid", {"user": {"id": 1, "username": "ana"}})

        assert await store.get("sid") == {"user": {"id": 1, "username": "ana"}}
        assert await store.exists("sid")

        await store.delete("sid")
        assert await store.get("sid") is None
        assert not await store.exists("sid")

    @pytest.mark.asyncio
    async def test_expired_entry_dropped(self):
        store = InMemorySessionStore()
        await store.set("sid", {"x": 1}, ttl=-1)
        assert await store.get("sid") is None

    @pytest.mark.asyncio
    async def test_cleanup_expired(self):
        store = InMemorySessionStore()
        await store.set("old", {}, ttl=-1)
        await store.set("fresh", {}, ttl=60)
        assert await store.cleanup_expired() == 1
        assert await store.exists("fresh")

    def test_create_session_id_is_signed(self):
        store = InMemorySessionStore()
        token = store.create_session_id()
        assert extract_session_id(token) is not None


class TestRedisSessionStore:
    """Tests for the Redis store against a mocked client."""

    @pytest.mark.asyncio
    async def test_set_uses_ttl_and_json(self):
        client = AsyncMock()
        store = RedisSessionStore(client)

        await store.set("sid", {"user": {"id": 3}}, ttl=120)

        client.setex.assert_awaited_once_with("blackjack:session:sid", 120, '{"user": {"id": 3}}')

    @pytest.mark.asyncio
    async def test_get_decodes(self):
        client = AsyncMock()
        client.get.return_value = b'{"user": {"id": 3}}'
        store = RedisSessionStore(client)

        assert await store.get("sid") == {"user": {"id": 3}}
        client.get.assert_awaited_once_with("blackjack:session:sid")

    @pytest.mark.asyncio
    async def test_missing_key(self):
        client = AsyncMock()
        client.get.return_value = None
        assert await RedisSessionStore(client).get("sid") is None

    @pytest.mark.asyncio
    async def test_cleanup_left_to_key_ttl(self):
        client = AsyncMock()
        assert await RedisSessionStore(client).cleanup_expired() == 0
        client.delete.assert_not_awaited()


class TestSessionHelpers:
    """Tests for module-level session helpers."""

    @pytest.mark.asyncio
    async def test_session_lifecycle(self):
        token = await create_session({"user": {"id": 9, "username": "zoe"}})
        assert (await get_session(token))["user"]["id"] == 9

        await update_session(token, {"user": {"id": 9, "username": "zoe"}, "game": {}})
        assert "game" in await get_session(token)

        await delete_session(token)
        assert await get_session(token) is None

    @pytest.mark.asyncio
    async def test_create_session_sweeps_expired(self):
        store = InMemorySessionStore()
        await store.set("stale", {}, ttl=-1)
        with patch("api.session.get_session_store", AsyncMock(return_value=store)):
            token = await create_session()
        assert "stale" not in store._sessions
        assert token in store._sessions

    @pytest.mark.asyncio
    async def test_unsigned_token_never_reaches_store(self):
        assert await get_session("not-a-signed-token") is None
