"""Pytest fixtures for blackjack tests."""

import os

# Keep tests off any local Redis and out of the rate limiter.
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from random import Random

from core.cards import Card, Deck
from core.game import BlackjackTable, GamePhase, GameState, Player, PlayerStatus
from core.hand import Hand


def cards(*specs: str) -> list[Card]:
    """Build cards from short strings like 'AS', '10H', 'KD'."""
    return [Card.from_string(s) for s in specs]


def seat(
    player_id: int,
    *specs: str,
    status: PlayerStatus = PlayerStatus.PLAYING,
    total_points: int = 0,
    is_ai: bool = False,
    account_id: int | None = None,
) -> Player:
    """A seat holding the given cards."""
    return Player(
        id=player_id,
        name=f"Player {player_id}",
        hand=Hand(cards=cards(*specs)),
        status=status,
        total_points=total_points,
        is_ai=is_ai,
        account_id=account_id,
    )


def playing_state(players: list[Player], deck: list[Card] | None = None, **kwargs) -> GameState:
    """A mid-round state with the first seat (or current_player_index) active."""
    state = GameState(
        players=players,
        deck=Deck(cards=deck if deck is not None else cards("2C", "3C", "4C", "5C")),
        phase=GamePhase.PLAYING,
        **kwargs,
    )
    state.players[state.current_player_index].is_active = True
    return state


@pytest.fixture
def make_cards():
    """Factory for cards from short strings."""
    return cards


@pytest.fixture
def make_seat():
    """Factory for seats holding given cards."""
    return seat


@pytest.fixture
def make_state():
    """Factory for mid-round states."""
    return playing_state


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return Random(42)


@pytest.fixture
def deck(rng):
    """A shuffled deck."""
    d = Deck(rng=rng)
    d.shuffle()
    return d


@pytest.fixture
def two_players():
    """Two fresh human seats."""
    return [Player(id=1, name="Ana"), Player(id=2, name="Ben")]


@pytest.fixture
def table(rng):
    """A table in setup."""
    return BlackjackTable(rng=rng)


@pytest.fixture
def blackjack_hand():
    """A natural blackjack hand."""
    return Hand(cards=cards("AS", "KH"))


@pytest.fixture
def soft_17_hand():
    """A soft 17 hand (A-6)."""
    return Hand(cards=cards("AS", "6H"))


@pytest.fixture
def bust_hand():
    """A busted hand."""
    return Hand(cards=cards("10S", "6H", "KC"))
