"""User accounts, point totals and the leaderboard."""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any

import bcrypt
import redis.asyncio as redis

from api.session import get_redis_client
from config import config
from core.game.state import RoundOutcome

logger = logging.getLogger(__name__)


class AccountError(Exception):
    """Base class for account store failures."""


class AccountNotFoundError(AccountError):
    """No account with the given id or username."""


class UsernameTakenError(AccountError):
    """Registration with a username that already exists."""


class InvalidCredentialsError(AccountError):
    """Unknown username or wrong password."""


class NotAuthenticatedError(AccountError):
    """The caller has no logged-in session."""


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hash a password with bcrypt."""
    salt = bcrypt.gensalt(rounds or config.security.bcrypt_rounds)
    return bcrypt.hashpw(password.encode(), salt).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


@dataclass
class Account:
    """A registered user and their running totals."""

    id: int
    username: str
    password_hash: str
    points: int = 0
    wins: int = 0
    losses: int = 0

    def apply_result(self, outcome: RoundOutcome, points_delta: int) -> None:
        """Count a win or loss and add the point delta; draws only move points."""
        self.points += points_delta
        if outcome == RoundOutcome.WIN:
            self.wins += 1
        elif outcome == RoundOutcome.LOSS:
            self.losses += 1


class AccountStore(ABC):
    """Abstract account store."""

    @abstractmethod
    async def register(self, username: str, password: str) -> Account:
        """
        Create an account.

        Raises:
            UsernameTakenError: If the username exists
        """
        ...

    @abstractmethod
    async def find_by_username(self, username: str) -> Account | None:
        """Look up an account by username."""
        ...

    @abstractmethod
    async def get_account(self, account_id: int) -> Account:
        """
        Get an account by id.

        Raises:
            AccountNotFoundError: If absent
        """
        ...

    @abstractmethod
    async def record_result(
        self,
        account_id: int,
        outcome: RoundOutcome,
        points_delta: int,
    ) -> Account:
        """
        Apply one round result to an account and return the updated totals.

        Raises:
            AccountNotFoundError: If absent
        """
        ...

    @abstractmethod
    async def list_leaderboard(self, limit: int | None = None) -> list[Account]:
        """Return the top accounts by points, highest first."""
        ...

    async def authenticate(self, username: str, password: str) -> Account:
        """
        Check credentials.

        Raises:
            InvalidCredentialsError: Unknown user or wrong password
        """
        account = await self.find_by_username(username)
        if account is None or not verify_password(password, account.password_hash):
            raise InvalidCredentialsError("invalid_credentials")
        return account


class InMemoryAccountStore(AccountStore):
    """In-memory account store for local development and tests."""

    def __init__(self) -> None:
        self._accounts: dict[int, Account] = {}
        self._next_id = 1

    async def register(self, username: str, password: str) -> Account:
        """Create an account."""
        if await self.find_by_username(username) is not None:
            raise UsernameTakenError("user_exists")

        account = Account(
            id=self._next_id,
            username=username,
            password_hash=hash_password(password),
        )
        self._accounts[account.id] = account
        self._next_id += 1
        logger.info("Registered account %s (%s)", account.id, username)
        return account

    async def find_by_username(self, username: str) -> Account | None:
        """Look up an account by username."""
        for account in self._accounts.values():
            if account.username == username:
                return account
        return None

    async def get_account(self, account_id: int) -> Account:
        """Get an account by id."""
        if account_id not in self._accounts:
            raise AccountNotFoundError("user_not_found")
        return self._accounts[account_id]

    async def record_result(
        self,
        account_id: int,
        outcome: RoundOutcome,
        points_delta: int,
    ) -> Account:
        """Apply one round result."""
        account = await self.get_account(account_id)
        account.apply_result(outcome, points_delta)
        return account

    async def list_leaderboard(self, limit: int | None = None) -> list[Account]:
        """Return the top accounts by points."""
        limit = limit or config.leaderboard.default_limit
        ranked = sorted(self._accounts.values(), key=lambda a: (-a.points, a.id))
        return ranked[:limit]


class RedisAccountStore(AccountStore):
    """Redis-backed account store: one hash per account plus a points sorted set."""

    def __init__(self, redis_client: redis.Redis) -> None:
        self._redis = redis_client
        self._prefix = "blackjack:account:"
        self._usernames = "blackjack:usernames"
        self._leaderboard = "blackjack:leaderboard"
        self._counter = "blackjack:account:next_id"

    def _key(self, account_id: int) -> str:
        """Get Redis key for an account."""
        return f"{self._prefix}{account_id}"

    @staticmethod
    def _decode(data: dict[Any, Any]) -> Account:
        fields = {
            (k.decode() if isinstance(k, bytes) else k): (v.decode() if isinstance(v, bytes) else v)
            for k, v in data.items()
        }
        return Account(
            id=int(fields["id"]),
            username=fields["username"],
            password_hash=fields["password_hash"],
            points=int(fields["points"]),
            wins=int(fields["wins"]),
            losses=int(fields["losses"]),
        )

    async def register(self, username: str, password: str) -> Account:
        """Create an account; the username index is claimed atomically."""
        account_id = await self._redis.incr(self._counter)
        claimed = await self._redis.hsetnx(self._usernames, username, account_id)
        if not claimed:
            raise UsernameTakenError("user_exists")

        account = Account(id=account_id, username=username, password_hash=hash_password(password))
        await self._redis.hset(self._key(account_id), mapping=asdict(account))
        await self._redis.zadd(self._leaderboard, {str(account_id): 0})
        logger.info("Registered account %s (%s)", account_id, username)
        return account

    async def find_by_username(self, username: str) -> Account | None:
        """Look up an account by username."""
        account_id = await self._redis.hget(self._usernames, username)
        if account_id is None:
            return None
        return await self.get_account(int(account_id))

    async def get_account(self, account_id: int) -> Account:
        """Get an account by id."""
        data = await self._redis.hgetall(self._key(account_id))
        if not data:
            raise AccountNotFoundError("user_not_found")
        return self._decode(data)

    async def record_result(
        self,
        account_id: int,
        outcome: RoundOutcome,
        points_delta: int,
    ) -> Account:
        """Apply one round result."""
        key = self._key(account_id)
        if not await self._redis.exists(key):
            raise AccountNotFoundError("user_not_found")

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hincrby(key, "points", points_delta)
            if outcome == RoundOutcome.WIN:
                pipe.hincrby(key, "wins", 1)
            elif outcome == RoundOutcome.LOSS:
                pipe.hincrby(key, "losses", 1)
            pipe.zincrby(self._leaderboard, points_delta, str(account_id))
            await pipe.execute()

        return await self.get_account(account_id)

    async def list_leaderboard(self, limit: int | None = None) -> list[Account]:
        """Return the top accounts by points."""
        limit = limit or config.leaderboard.default_limit
        ids = await self._redis.zrevrange(self._leaderboard, 0, limit - 1)
        return [await self.get_account(int(account_id)) for account_id in ids]


_account_store: AccountStore | None = None


async def get_account_store() -> AccountStore:
    """Get or create the account store."""
    global _account_store

    if _account_store is None:
        client = await get_redis_client()
        _account_store = RedisAccountStore(client) if client else InMemoryAccountStore()
    return _account_store
