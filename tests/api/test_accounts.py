"""Tests for accounts, password hashing and the leaderboard store."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from api.accounts import (
    Account,
    AccountNotFoundError,
    InMemoryAccountStore,
    InvalidCredentialsError,
    RedisAccountStore,
    UsernameTakenError,
    hash_password,
    verify_password,
)
from core.game import RoundOutcome


class TestPasswords:
    """Tests for bcrypt hashing."""

    def test_hash_verifies(self):
        stored = hash_password("hunter2", rounds=4)
        assert stored.startswith("$2b$04$")
        assert verify_password("hunter2", stored)
        assert not verify_password("hunter3", stored)

    def test_hash_is_salted(self):
        assert hash_password("same", rounds=4) != hash_password("same", rounds=4)

    @pytest.mark.parametrize("stored", ["", "plain", "pbkdf2_sha256$1000$salt$abc"])
    def test_malformed_hash_rejected(self, stored):
        assert not verify_password("anything", stored)


class TestAccount:
    """Tests for applying round results."""

    def test_win(self):
        account = Account(id=1, username="ana", password_hash="x")
        account.apply_result(RoundOutcome.WIN, 10)
        assert (account.points, account.wins, account.losses) == (10, 1, 0)

    def test_loss(self):
        account = Account(id=1, username="ana", password_hash="x", points=10)
        account.apply_result(RoundOutcome.LOSS, -5)
        assert (account.points, account.wins, account.losses) == (5, 0, 1)

    def test_draw_moves_points_only(self):
        account = Account(id=1, username="ana", password_hash="x")
        account.apply_result(RoundOutcome.DRAW, 3)
        assert (account.points, account.wins, account.losses) == (3, 0, 0)


class TestInMemoryAccountStore:
    """Tests for the in-memory store."""

    @pytest.mark.asyncio
    async def test_register_and_authenticate(self):
        store = InMemoryAccountStore()
        account = await store.register("ana", "pw")

        assert account.id == 1
        assert (account.points, account.wins, account.losses) == (0, 0, 0)
        assert (await store.authenticate("ana", "pw")).id == 1

    @pytest.mark.asyncio
    async def test_duplicate_username(self):
        store = InMemoryAccountStore()
        await store.register("ana", "pw")
        with pytest.raises(UsernameTakenError, match="user_exists"):
            await store.register("ana", "other")

    @pytest.mark.asyncio
    async def test_bad_credentials(self):
        store = InMemoryAccountStore()
        await store.register("ana", "pw")
        with pytest.raises(InvalidCredentialsError):
            await store.authenticate("ana", "wrong")
        with pytest.raises(InvalidCredentialsError):
            await store.authenticate("nobody", "pw")

    @pytest.mark.asyncio
    async def test_unknown_account(self):
        store = InMemoryAccountStore()
        with pytest.raises(AccountNotFoundError, match="user_not_found"):
            await store.record_result(99, RoundOutcome.WIN, 10)

    @pytest.mark.asyncio
    async def test_leaderboard_order_and_limit(self):
        store = InMemoryAccountStore()
        for name in ("ana", "ben", "cy"):
            await store.register(name, "pw")
        await store.record_result(2, RoundOutcome.WIN, 10)
        await store.record_result(3, RoundOutcome.WIN, 10)
        await store.record_result(1, RoundOutcome.LOSS, -5)

        board = await store.list_leaderboard()
        assert [a.username for a in board] == ["ben", "cy", "ana"]
        assert [a.username for a in await store.list_leaderboard(1)] == ["ben"]


class TestRedisAccountStore:
    """Tests for the Redis store against a mocked client."""

    @staticmethod
    def _stored(**overrides):
        fields = {
            b"id": b"1",
            b"username": b"ana",
            b"password_hash": hash_password("pw", rounds=4).encode(),
            b"points": b"0",
            b"wins": b"0",
            b"losses": b"0",
        }
        fields.update({k.encode(): v for k, v in overrides.items()})
        return fields

    @pytest.mark.asyncio
    async def test_register_claims_username(self):
        client = AsyncMock()
        client.incr.return_value = 1
        client.hsetnx.return_value = True
        store = RedisAccountStore(client)

        account = await store.register("ana", "pw")

        assert account.id == 1
        client.hsetnx.assert_awaited_once_with("blackjack:usernames", "ana", 1)
        client.zadd.assert_awaited_once_with("blackjack:leaderboard", {"1": 0})

    @pytest.mark.asyncio
    async def test_register_taken(self):
        client = AsyncMock()
        client.incr.return_value = 2
        client.hsetnx.return_value = False
        with pytest.raises(UsernameTakenError):
            await RedisAccountStore(client).register("ana", "pw")
        client.hset.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_authenticate_decodes_hash(self):
        client = AsyncMock()
        client.hget.return_value = b"1"
        client.hgetall.return_value = self._stored(points=b"25")
        account = await RedisAccountStore(client).authenticate("ana", "pw")
        assert account.points == 25

    @pytest.mark.asyncio
    async def test_get_missing_account(self):
        client = AsyncMock()
        client.hgetall.return_value = {}
        with pytest.raises(AccountNotFoundError):
            await RedisAccountStore(client).get_account(5)

    @pytest.mark.asyncio
    async def test_record_result_updates_hash_and_board(self):
        pipe = MagicMock()
        pipe.execute = AsyncMock()
        pipeline_cm = MagicMock()
        pipeline_cm.__aenter__ = AsyncMock(return_value=pipe)
        pipeline_cm.__aexit__ = AsyncMock(return_value=False)

        client = AsyncMock()
        client.exists.return_value = 1
        client.pipeline = MagicMock(return_value=pipeline_cm)
        client.hgetall.return_value = self._stored(points=b"10", wins=b"1")

        account = await RedisAccountStore(client).record_result(1, RoundOutcome.WIN, 10)

        pipe.hincrby.assert_any_call("blackjack:account:1", "points", 10)
        pipe.hincrby.assert_any_call("blackjack:account:1", "wins", 1)
        pipe.zincrby.assert_called_once_with("blackjack:leaderboard", 10, "1")
        pipe.execute.assert_awaited_once()
        assert (account.points, account.wins) == (10, 1)

    @pytest.mark.asyncio
    async def test_record_result_unknown_account(self):
        client = AsyncMock()
        client.exists.return_value = 0
        with pytest.raises(AccountNotFoundError):
            await RedisAccountStore(client).record_result(1, RoundOutcome.LOSS, -5)
