"""Heuristic hit/stand policy for the AI seat."""

from enum import Enum, auto
from random import Random
from typing import Iterable

from core.game.state import Player, PlayerStatus

# Hands below this total can't bust on one more card.
ALWAYS_HIT_BELOW = 12
ALWAYS_STAND_AT = 17
CAUTIOUS_STAND_AT = 15

# Chance of standing anyway while trailing a finished opponent.
TRAILING_STAND_CHANCE = 0.3

# Only finished seats show a final score.
VISIBLE_STATUSES = (PlayerStatus.STANDING, PlayerStatus.BLACKJACK)


class Action(Enum):
    """Possible AI actions."""

    HIT = auto()
    STAND = auto()

    def __str__(self) -> str:
        return self.name.lower()


def highest_visible_score(other_players: Iterable[Player]) -> int:
    """Return the best final score among opponents that are done, or 0."""
    return max(
        (p.score for p in other_players if p.status in VISIBLE_STATUSES),
        default=0,
    )


def decide(
    player: Player,
    other_players: Iterable[Player],
    rng: Random | None = None,
) -> Action:
    """
    Choose hit or stand for an AI seat.

    Args:
        player: The seat to decide for
        other_players: Every other seat at the table
        rng: Random source for the trailing coin flip

    Returns:
        The chosen action
    """
    total = player.score

    if total < ALWAYS_HIT_BELOW:
        return Action.HIT
    if total >= ALWAYS_STAND_AT:
        return Action.STAND

    if total < highest_visible_score(other_players):
        rng = rng or Random()
        return Action.HIT if rng.random() > TRAILING_STAND_CHANCE else Action.STAND

    return Action.HIT if total < CAUTIOUS_STAND_AT else Action.STAND
