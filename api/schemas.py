"""Pydantic schemas for API requests and responses."""

from pydantic import BaseModel, ConfigDict, Field
from typing import Literal


# Auth schemas
class CredentialsRequest(BaseModel):
    """Username and password for login or registration."""

    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1, max_length=256)


class AccountResponse(BaseModel):
    """Public account totals."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    points: int
    wins: int
    losses: int


class AuthResponse(BaseModel):
    """A logged-in session."""

    session_id: str
    id: int
    username: str


class ResultRequest(BaseModel):
    """A finished round reported for the logged-in account."""

    result: Literal["win", "loss", "draw"]
    points_delta: int = 0


class ResultResponse(BaseModel):
    """Account totals after a reported result."""

    points: int
    wins: int
    losses: int


# Game schemas
class NewGameRequest(BaseModel):
    """Seat players and deal the first round."""

    player_names: list[str] = Field(default_factory=lambda: ["Player 1", "Player 2"])
    target_points: int = Field(default=10, ge=1, le=1000)
    include_ai: bool = False
    link_account: bool = Field(
        default=True,
        description="Link the first human seat to the logged-in account",
    )


class ActionRequest(BaseModel):
    """Request for player action."""

    action: Literal["hit", "stand"]


class CardResponse(BaseModel):
    """Card representation."""

    model_config = ConfigDict(from_attributes=True)

    rank: str
    suit: str
    value: int


class PlayerResponse(BaseModel):
    """One seat at the table."""

    id: int
    name: str
    cards: list[CardResponse]
    score: int
    total_points: int
    status: Literal["playing", "standing", "busted", "blackjack"]
    is_active: bool
    is_ai: bool
    account_id: int | None = None


class RoundResultResponse(BaseModel):
    """Settlement of one seat."""

    player_id: int
    outcome: Literal["win", "loss", "draw"]
    points_delta: int
    total_points: int


class GameStateResponse(BaseModel):
    """Current game state."""

    phase: Literal["setup", "playing", "round_finished", "game_finished"]
    players: list[PlayerResponse]
    current_player_index: int
    winners: list[PlayerResponse]
    results: list[RoundResultResponse]
    champions: list[int]
    current_round: int
    total_rounds: int
    target_points: int
    cards_remaining: int
    can_hit: bool
    can_stand: bool
    ai_turn: bool
    ai_think_delay_ms: int


class AITurnResponse(BaseModel):
    """Result of letting the AI act."""

    actions: list[Literal["hit", "stand"]]
    state: GameStateResponse


class SetupOptionsResponse(BaseModel):
    """Defaults and limits for a new game."""

    target_points: int
    target_points_choices: list[int]
    min_players: int
    max_players: int
    ai_name: str
