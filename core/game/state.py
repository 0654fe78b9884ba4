"""Game state model for multiplayer rounds."""

from dataclasses import dataclass, field, replace
from enum import Enum

from core.cards import Deck
from core.hand import Hand


class GamePhase(Enum):
    """
    Game state machine phases.

    Flow: SETUP → PLAYING → ROUND_FINISHED → PLAYING → ... → GAME_FINISHED
    """

    # No game in progress
    SETUP = "setup"

    # Seats taking turns
    PLAYING = "playing"

    # Round settled, waiting for the next deal
    ROUND_FINISHED = "round_finished"

    # Point target or round cap reached
    GAME_FINISHED = "game_finished"

    def __str__(self) -> str:
        return self.name.replace("_", " ").title()


# Valid phase transitions
VALID_TRANSITIONS: dict[GamePhase, list[GamePhase]] = {
    GamePhase.SETUP: [GamePhase.PLAYING],
    GamePhase.PLAYING: [GamePhase.ROUND_FINISHED, GamePhase.GAME_FINISHED, GamePhase.SETUP],
    GamePhase.ROUND_FINISHED: [GamePhase.PLAYING, GamePhase.SETUP],
    GamePhase.GAME_FINISHED: [GamePhase.SETUP],
}


def is_valid_transition(from_phase: GamePhase, to_phase: GamePhase) -> bool:
    """
    Check if a phase transition is valid.

    Args:
        from_phase: Current phase
        to_phase: Desired phase

    Returns:
        True if the transition is allowed
    """
    return to_phase in VALID_TRANSITIONS.get(from_phase, [])


class PlayerStatus(Enum):
    """Seat status within a round. Only PLAYING can change before the next deal."""

    PLAYING = "playing"
    STANDING = "standing"
    BUSTED = "busted"
    BLACKJACK = "blackjack"


class RoundOutcome(Enum):
    """Per-seat result reported to the account store."""

    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"


@dataclass
class Player:
    """One seat at the table."""

    id: int
    name: str
    hand: Hand = field(default_factory=Hand)
    total_points: int = 0
    status: PlayerStatus = PlayerStatus.PLAYING
    is_active: bool = False
    is_ai: bool = False
    account_id: int | None = None

    @property
    def score(self) -> int:
        """Return the current hand value."""
        return self.hand.value

    def copy(self) -> "Player":
        """Return an independent copy (hand included)."""
        return replace(self, hand=self.hand.copy())


@dataclass(frozen=True)
class RoundResult:
    """Settlement of one seat at the end of a round."""

    player_id: int
    outcome: RoundOutcome
    points_delta: int
    total_points: int
    account_id: int | None = None


@dataclass
class GameState:
    """Authoritative state of a game. Turn order is the order of `players`."""

    players: list[Player] = field(default_factory=list)
    deck: Deck = field(default_factory=lambda: Deck(cards=[]))
    current_player_index: int = 0
    phase: GamePhase = GamePhase.SETUP
    winners: list[Player] = field(default_factory=list)
    current_round: int = 1
    total_rounds: int = 1
    target_points: int = 10
    results: list[RoundResult] = field(default_factory=list)

    @property
    def active_player(self) -> Player | None:
        """Get the seat whose turn it is."""
        if self.phase != GamePhase.PLAYING:
            return None
        if 0 <= self.current_player_index < len(self.players):
            return self.players[self.current_player_index]
        return None

    def copy(self) -> "GameState":
        """Return an independent copy so transitions never touch their input."""
        return replace(
            self,
            players=[p.copy() for p in self.players],
            deck=self.deck.copy(),
            winners=[w.copy() for w in self.winners],
            results=list(self.results),
        )
