"""
Round transitions for multiplayer blackjack.

Every transition takes a GameState and returns a new one; the input is
never modified. An action that is not allowed in the current phase or for
the current seat returns the input state unchanged.
"""

import logging
import math
from random import Random
from typing import Iterable

from core.cards import create_deck
from core.hand import is_blackjack
from core.game.state import (
    GamePhase,
    GameState,
    Player,
    PlayerStatus,
    RoundOutcome,
    RoundResult,
)

logger = logging.getLogger(__name__)

WIN_REWARD = 10
LOSS_PENALTY = 5
DEFAULT_TARGET_POINTS = 10
CARDS_PER_SEAT = 2
DECK_SIZE = 52


def max_rounds(target_points: int) -> int:
    """Return the round cap for a point target (one round per 5 points)."""
    return max(1, math.ceil(target_points / LOSS_PENALTY))


def _deal(state: GameState) -> None:
    """Deal two cards to every seat in order and set the opening turn."""
    for player in state.players:
        player.hand.clear()
        for _ in range(CARDS_PER_SEAT):
            player.hand.add_card(state.deck.draw())
        player.status = (
            PlayerStatus.BLACKJACK if is_blackjack(player.hand.cards) else PlayerStatus.PLAYING
        )
        player.is_active = False

    state.current_player_index = -1
    state.phase = GamePhase.PLAYING
    _advance_turn(state)
    if state.current_player_index < 0:
        # every seat was dealt a blackjack
        state.current_player_index = 0


def _validate_players(players: list[Player], target_points: int) -> None:
    if not players:
        raise ValueError("A game needs at least one player")
    if len({p.id for p in players}) != len(players):
        raise ValueError("Player ids must be unique")
    if len(players) * CARDS_PER_SEAT > DECK_SIZE:
        raise ValueError(f"At most {DECK_SIZE // CARDS_PER_SEAT} players can be dealt in")
    if target_points < 1:
        raise ValueError("target_points must be positive")


def start_game(
    players: Iterable[Player],
    target_points: int = DEFAULT_TARGET_POINTS,
    rng: Random | None = None,
) -> GameState:
    """
    Deal the first round of a new game.

    Args:
        players: Seats in turn order
        target_points: Points needed to win the game
        rng: Random source for shuffling

    Returns:
        A state in the PLAYING phase (or already finished if every seat
        was dealt a blackjack)
    """
    seats = [p.copy() for p in players]
    _validate_players(seats, target_points)

    for player in seats:
        player.total_points = max(0, player.total_points)

    state = GameState(
        players=seats,
        deck=create_deck(rng),
        target_points=target_points,
        current_round=1,
        total_rounds=max_rounds(target_points),
    )
    logger.debug("Starting game: %d seats, target %d", len(seats), target_points)
    _deal(state)
    return state


def _can_act(state: GameState) -> bool:
    player = state.active_player
    return player is not None and player.status == PlayerStatus.PLAYING


def hit(state: GameState) -> GameState:
    """Draw a card for the active seat; busting passes the turn."""
    if not _can_act(state) or state.deck.is_empty:
        return state

    new_state = state.copy()
    player = new_state.players[new_state.current_player_index]
    player.hand.add_card(new_state.deck.draw())

    if player.score > 21:
        player.status = PlayerStatus.BUSTED
        logger.debug("Player %s busts with %d", player.id, player.score)
        _advance_turn(new_state)

    return new_state


def stand(state: GameState) -> GameState:
    """Keep the active seat's hand and pass the turn."""
    if not _can_act(state):
        return state

    new_state = state.copy()
    new_state.players[new_state.current_player_index].status = PlayerStatus.STANDING
    _advance_turn(new_state)
    return new_state


def _advance_turn(state: GameState) -> None:
    """Activate the next PLAYING seat after the current one, or end the round."""
    for player in state.players:
        player.is_active = False

    for index in range(state.current_player_index + 1, len(state.players)):
        if state.players[index].status == PlayerStatus.PLAYING:
            state.current_player_index = index
            state.players[index].is_active = True
            return

    _end_round(state)


def determine_winners(players: Iterable[Player]) -> list[Player]:
    """
    Pick the round winners.

    Busted seats are out. Any blackjack beats every plain total, including
    a plain 21. Otherwise all seats tied on the highest score win.
    """
    contenders = [p for p in players if p.status != PlayerStatus.BUSTED]
    if not contenders:
        return []

    naturals = [p for p in contenders if p.status == PlayerStatus.BLACKJACK]
    if naturals:
        return naturals

    best = max(p.score for p in contenders)
    return [p for p in contenders if p.score == best]


def settle_points(players: Iterable[Player], winner_ids: set[int]) -> list[RoundResult]:
    """
    Award winners and charge everyone else, never below zero.

    Returns:
        One result per seat, with the delta actually applied
    """
    results = []
    for player in players:
        before = player.total_points
        won = player.id in winner_ids
        if won:
            player.total_points += WIN_REWARD
        else:
            player.total_points = max(0, player.total_points - LOSS_PENALTY)
        results.append(
            RoundResult(
                player_id=player.id,
                outcome=RoundOutcome.WIN if won else RoundOutcome.LOSS,
                points_delta=player.total_points - before,
                total_points=player.total_points,
                account_id=player.account_id,
            )
        )
    return results


def _end_round(state: GameState) -> None:
    winners = determine_winners(state.players)
    winner_ids = {p.id for p in winners}
    state.results = settle_points(state.players, winner_ids)

    state.winners = [p.copy() for p in state.players if p.id in winner_ids]

    game_over = any(p.total_points >= state.target_points for p in state.players)
    if state.current_round >= max_rounds(state.target_points):
        game_over = True

    state.phase = GamePhase.GAME_FINISHED if game_over else GamePhase.ROUND_FINISHED

    logger.info(
        "Round %d finished: winners=%s phase=%s",
        state.current_round,
        sorted(winner_ids),
        state.phase.value,
    )


def next_round(state: GameState, rng: Random | None = None) -> GameState:
    """Clear hands, deal from a fresh deck and start the next round."""
    if state.phase != GamePhase.ROUND_FINISHED:
        return state

    new_state = state.copy()
    for player in new_state.players:
        player.hand.clear()
        player.status = PlayerStatus.PLAYING
        player.is_active = False

    new_state.deck = create_deck(rng)
    new_state.winners = []
    new_state.results = []
    new_state.current_round += 1
    _deal(new_state)
    return new_state


def reset_game(target_points: int = DEFAULT_TARGET_POINTS) -> GameState:
    """Discard the game and return to setup."""
    return GameState(
        target_points=target_points,
        total_rounds=max_rounds(target_points),
    )


def round_results(state: GameState) -> list[RoundResult]:
    """Return the settlement of the last finished round, one entry per seat."""
    if state.phase not in (GamePhase.ROUND_FINISHED, GamePhase.GAME_FINISHED):
        return []
    return list(state.results)
