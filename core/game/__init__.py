"""Game engine and state management."""

from core.game.events import GameEvent, EventType
from core.game.state import (
    GamePhase,
    GameState,
    Player,
    PlayerStatus,
    RoundOutcome,
    RoundResult,
)
from core.game.ai import Action, decide
from core.game.engine import BlackjackTable

__all__ = [
    "GameEvent",
    "EventType",
    "GamePhase",
    "GameState",
    "Player",
    "PlayerStatus",
    "RoundOutcome",
    "RoundResult",
    "Action",
    "decide",
    "BlackjackTable",
]
