"""Game API endpoints."""

import logging
import time
from typing import Annotated, Any

from fastapi import APIRouter, HTTPException, Header

from api.accounts import AccountNotFoundError, get_account_store
from api.schemas import (
    ActionRequest,
    AITurnResponse,
    CardResponse,
    GameStateResponse,
    NewGameRequest,
    PlayerResponse,
    RoundResultResponse,
    SetupOptionsResponse,
)
from api.session import (
    SESSION_KEY_CREATED_AT,
    SESSION_KEY_GAME,
    SESSION_KEY_LAST_ACTIVITY,
    SESSION_KEY_USER,
    create_session,
    get_session,
    update_session,
)
from config import config
from core.cards import Card, Deck, Rank, Suit
from core.game import (
    BlackjackTable,
    GamePhase,
    GameState,
    Player,
    PlayerStatus,
    RoundOutcome,
    RoundResult,
)
from core.game.rules import reset_game
from core.hand import Hand

logger = logging.getLogger(__name__)

router = APIRouter()

# In-memory table cache (for performance, backed by session store)
_tables: dict[str, BlackjackTable] = {}


def _serialize_card(card: Card) -> dict[str, str]:
    """Serialize a card to a dict."""
    return {"rank": card.rank.value, "suit": card.suit.value}


def _deserialize_card(data: dict[str, str]) -> Card:
    """Deserialize a card from a dict."""
    return Card(Rank(data["rank"]), Suit(data["suit"]))


def _serialize_player(player: Player) -> dict[str, Any]:
    """Serialize a seat to a dict."""
    return {
        "id": player.id,
        "name": player.name,
        "hand": [_serialize_card(c) for c in player.hand.cards],
        "total_points": player.total_points,
        "status": player.status.value,
        "is_active": player.is_active,
        "is_ai": player.is_ai,
        "account_id": player.account_id,
    }


def _deserialize_player(data: dict[str, Any]) -> Player:
    """Deserialize a seat from a dict."""
    return Player(
        id=data["id"],
        name=data["name"],
        hand=Hand(cards=[_deserialize_card(c) for c in data["hand"]]),
        total_points=data["total_points"],
        status=PlayerStatus(data["status"]),
        is_active=data["is_active"],
        is_ai=data["is_ai"],
        account_id=data.get("account_id"),
    )


def _serialize_result(result: RoundResult) -> dict[str, Any]:
    return {
        "player_id": result.player_id,
        "outcome": result.outcome.value,
        "points_delta": result.points_delta,
        "total_points": result.total_points,
        "account_id": result.account_id,
    }


def _deserialize_result(data: dict[str, Any]) -> RoundResult:
    return RoundResult(
        player_id=data["player_id"],
        outcome=RoundOutcome(data["outcome"]),
        points_delta=data["points_delta"],
        total_points=data["total_points"],
        account_id=data.get("account_id"),
    )


def _serialize_game(game: GameState) -> dict[str, Any]:
    """Serialize game state for session storage."""
    return {
        "phase": game.phase.value,
        "players": [_serialize_player(p) for p in game.players],
        "deck": [_serialize_card(c) for c in game.deck.cards],
        "current_player_index": game.current_player_index,
        "winners": [_serialize_player(w) for w in game.winners],
        "results": [_serialize_result(r) for r in game.results],
        "current_round": game.current_round,
        "total_rounds": game.total_rounds,
        "target_points": game.target_points,
    }


def _deserialize_game(data: dict[str, Any]) -> GameState:
    """Restore game state from session data."""
    return GameState(
        players=[_deserialize_player(p) for p in data["players"]],
        deck=Deck(cards=[_deserialize_card(c) for c in data["deck"]]),
        current_player_index=data["current_player_index"],
        phase=GamePhase(data["phase"]),
        winners=[_deserialize_player(w) for w in data["winners"]],
        results=[_deserialize_result(r) for r in data.get("results", [])],
        current_round=data["current_round"],
        total_rounds=data["total_rounds"],
        target_points=data["target_points"],
    )


async def _load_session(session_id: str) -> dict[str, Any]:
    session_data = await get_session(session_id)
    if session_data is None:
        raise HTTPException(status_code=401, detail="invalid_session")
    return session_data


async def _get_table(session_id: str) -> BlackjackTable:
    """Get the table for the session, restoring it from the store if needed."""
    try:
        session_data = await _load_session(session_id)
    except HTTPException:
        discard_table(session_id)
        raise
    if session_id in _tables:
        return _tables[session_id]

    if SESSION_KEY_GAME in session_data:
        game = _deserialize_game(session_data[SESSION_KEY_GAME])
    else:
        game = reset_game(config.game.target_points)

    table = BlackjackTable(game=game)
    _tables[session_id] = table
    return table


def discard_table(session_id: str) -> None:
    """Forget the cached table of an ended session."""
    _tables.pop(session_id, None)


async def _save_table(session_id: str, table: BlackjackTable) -> None:
    """Save game to session store."""
    session_data = await _load_session(session_id)
    session_data[SESSION_KEY_GAME] = _serialize_game(table.game)
    session_data[SESSION_KEY_LAST_ACTIVITY] = int(time.time())
    session_data.setdefault(SESSION_KEY_CREATED_AT, int(time.time()))
    await update_session(session_id, session_data)


async def _report_results(session_id: str, results: list[RoundResult]) -> None:
    """Record settled rounds for the seat linked to the logged-in account."""
    linked = [r for r in results if r.account_id is not None]
    if not linked:
        return

    session_data = await _load_session(session_id)
    user = session_data.get(SESSION_KEY_USER)
    if user is None:
        raise HTTPException(status_code=401, detail="not_authenticated")

    store = await get_account_store()
    for result in linked:
        if result.account_id != user["id"]:
            continue
        try:
            await store.record_result(result.account_id, result.outcome, result.points_delta)
        except AccountNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        logger.info(
            "Recorded %s (%+d) for account %s",
            result.outcome.value,
            result.points_delta,
            result.account_id,
        )


async def _run(session_id: str, table: BlackjackTable, action) -> Any:
    """
    Apply a table action, persist the state, then report any settled round.

    Reporting errors surface as HTTP errors after the state is saved.
    """
    settled: list[RoundResult] = []
    table.reporter = settled.extend
    try:
        outcome = action()
    finally:
        table.reporter = None

    await _save_table(session_id, table)
    await _report_results(session_id, settled)
    return outcome


def _player_response(player: Player) -> PlayerResponse:
    return PlayerResponse(
        id=player.id,
        name=player.name,
        cards=[
            CardResponse(rank=str(c.rank), suit=c.suit.value, value=c.value)
            for c in player.hand.cards
        ],
        score=player.score,
        total_points=player.total_points,
        status=player.status.value,
        is_active=player.is_active,
        is_ai=player.is_ai,
        account_id=player.account_id,
    )


def _game_state_response(table: BlackjackTable) -> GameStateResponse:
    """Convert game state to response."""
    game = table.game
    finished = table.phase == GamePhase.GAME_FINISHED
    return GameStateResponse(
        phase=table.phase.value,
        players=[_player_response(p) for p in game.players],
        current_player_index=game.current_player_index,
        winners=[_player_response(w) for w in game.winners],
        results=[
            RoundResultResponse(
                player_id=r.player_id,
                outcome=r.outcome.value,
                points_delta=r.points_delta,
                total_points=r.total_points,
            )
            for r in table.last_results
        ],
        champions=[p.id for p in table.champions] if finished else [],
        current_round=game.current_round,
        total_rounds=game.total_rounds,
        target_points=game.target_points,
        cards_remaining=game.deck.cards_remaining,
        can_hit=table.can_hit,
        can_stand=table.can_stand,
        ai_turn=table.is_ai_turn,
        ai_think_delay_ms=config.game.ai_think_delay_ms,
    )


def _build_players(request: NewGameRequest, account_id: int | None) -> list[Player]:
    names = list(request.player_names)
    if not config.game.min_players <= len(names) <= config.game.max_players:
        raise HTTPException(
            status_code=400,
            detail=f"Between {config.game.min_players} and {config.game.max_players} players",
        )

    players = []
    for i, name in enumerate(names):
        is_ai = request.include_ai and i == len(names) - 1
        players.append(
            Player(
                id=i + 1,
                name=config.game.ai_name if is_ai else (name.strip() or f"Player {i + 1}"),
                is_ai=is_ai,
            )
        )

    if account_id is not None:
        for player in players:
            if not player.is_ai:
                player.account_id = account_id
                break
    return players


@router.get("/options")
async def setup_options() -> SetupOptionsResponse:
    """Choices offered on the setup screen."""
    return SetupOptionsResponse(
        target_points=config.game.target_points,
        target_points_choices=list(config.game.target_points_choices),
        min_players=config.game.min_players,
        max_players=config.game.max_players,
        ai_name=config.game.ai_name,
    )


@router.post("/new")
async def new_game(
    request: NewGameRequest,
    session_id: Annotated[str | None, Header(alias="X-Session-ID")] = None,
) -> dict[str, Any]:
    """Seat players and deal the first round."""
    if session_id is None or await get_session(session_id) is None:
        session_id = await create_session()

    session_data = await _load_session(session_id)
    user = session_data.get(SESSION_KEY_USER)
    account_id = user["id"] if user and request.link_account else None

    table = BlackjackTable()
    _tables[session_id] = table
    try:
        await _run(
            session_id,
            table,
            lambda: table.start(_build_players(request, account_id), request.target_points),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return {"session_id": session_id, "state": _game_state_response(table)}


@router.get("/state")
async def get_state(
    session_id: Annotated[str, Header(alias="X-Session-ID")],
) -> GameStateResponse:
    """Get current game state."""
    table = await _get_table(session_id)
    return _game_state_response(table)


@router.post("/action")
async def player_action(
    request: ActionRequest,
    session_id: Annotated[str, Header(alias="X-Session-ID")],
) -> GameStateResponse:
    """Hit or stand for the active seat."""
    table = await _get_table(session_id)

    if table.is_ai_turn:
        raise HTTPException(status_code=400, detail="Waiting for the AI player")

    actions = {
        "hit": table.hit,
        "stand": table.stand,
    }
    if not await _run(session_id, table, actions[request.action]):
        raise HTTPException(status_code=400, detail=f"Cannot {request.action} now")

    return _game_state_response(table)


@router.post("/ai")
async def ai_turn(
    session_id: Annotated[str, Header(alias="X-Session-ID")],
) -> AITurnResponse:
    """Let the active AI seat play out its turn."""
    table = await _get_table(session_id)
    if not table.is_ai_turn:
        raise HTTPException(status_code=400, detail="Not the AI player's turn")

    def play() -> list[str]:
        actions = []
        while (action := table.play_ai_turn()) is not None:
            actions.append(str(action))
        return actions

    actions = await _run(session_id, table, play)
    return AITurnResponse(actions=actions, state=_game_state_response(table))


@router.post("/next-round")
async def next_round(
    session_id: Annotated[str, Header(alias="X-Session-ID")],
) -> GameStateResponse:
    """Deal the next round."""
    table = await _get_table(session_id)
    if not await _run(session_id, table, table.next_round):
        raise HTTPException(status_code=400, detail="Round is not finished")
    return _game_state_response(table)


@router.post("/reset")
async def reset(
    session_id: Annotated[str, Header(alias="X-Session-ID")],
) -> GameStateResponse:
    """Discard the game and return to setup."""
    table = await _get_table(session_id)
    table.reset(config.game.target_points)
    await _save_table(session_id, table)
    return _game_state_response(table)
