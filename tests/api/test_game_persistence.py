"""Tests for saving and restoring tables in the session store."""

import json
import pytest
from fastapi import HTTPException

from api.routes import game as game_routes
from api.routes.game import (
    _deserialize_card,
    _deserialize_game,
    _get_table,
    _save_table,
    _serialize_card,
    _serialize_game,
)
from api.session import SESSION_KEY_GAME, create_session, delete_session, get_session
from core.cards import Card, Rank, Suit
from core.game import BlackjackTable, GamePhase, PlayerStatus, RoundOutcome
from core.game import rules


class TestCardSerialization:
    """Tests for card serialization."""

    def test_card_structure(self):
        assert _serialize_card(Card(Rank.TEN, Suit.DIAMONDS)) == {"rank": "10", "suit": "diamonds"}

    def test_card_restored(self):
        card = Card(Rank.QUEEN, Suit.SPADES)
        assert _deserialize_card(_serialize_card(card)) == card


class TestGameSerialization:
    """Tests for full game state serialization."""

    def test_mid_round_state_survives_json(self, make_seat, make_state):
        state = make_state(
            [
                make_seat(1, "10S", "7H", status=PlayerStatus.STANDING, total_points=15, account_id=4),
                make_seat(2, "AS", "6H", is_ai=True),
            ],
            current_player_index=1,
            target_points=30,
            current_round=3,
            total_rounds=6,
        )

        restored = _deserialize_game(json.loads(json.dumps(_serialize_game(state))))

        assert restored.phase == GamePhase.PLAYING
        assert restored.current_player_index == 1
        assert restored.current_round == 3
        assert restored.total_rounds == 6
        assert restored.target_points == 30
        assert restored.deck.cards == state.deck.cards
        assert restored.players == state.players
        assert restored.active_player.is_ai

    def test_finished_round_keeps_results(self, make_seat, make_state):
        state = make_state(
            [make_seat(1, "10S", "9H", account_id=4), make_seat(2, "10C", "7H")],
            target_points=50,
        )
        state = rules.stand(rules.stand(state))

        restored = _deserialize_game(_serialize_game(state))

        assert restored.phase == GamePhase.ROUND_FINISHED
        assert [w.id for w in restored.winners] == [1]
        assert rules.round_results(restored) == rules.round_results(state)
        assert restored.results[0].outcome == RoundOutcome.WIN
        assert restored.results[0].account_id == 4

    def test_setup_state(self):
        restored = _deserialize_game(_serialize_game(rules.reset_game(20)))
        assert restored.phase == GamePhase.SETUP
        assert restored.players == []
        assert restored.deck.is_empty


class TestTableStorage:
    """Tests for the table cache backed by the session store."""

    @pytest.mark.asyncio
    async def test_table_restored_after_cache_loss(self, make_seat, make_state):
        session_id = await create_session()
        state = make_state([make_seat(1, "10S", "2H"), make_seat(2, "9S", "9H")], target_points=20)
        await _save_table(session_id, BlackjackTable(game=state))

        stored = await get_session(session_id)
        assert stored[SESSION_KEY_GAME]["phase"] == "playing"

        game_routes._tables.pop(session_id, None)
        table = await _get_table(session_id)

        assert table.phase == GamePhase.PLAYING
        assert table.game.players == state.players
        assert table.hit()

    @pytest.mark.asyncio
    async def test_fresh_session_gets_setup_table(self):
        session_id = await create_session()
        table = await _get_table(session_id)
        assert table.phase == GamePhase.SETUP

    @pytest.mark.asyncio
    async def test_unknown_session_rejected(self):
        with pytest.raises(HTTPException) as exc_info:
            await _get_table("bogus")
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_cached_table_dropped_with_its_session(self, make_seat, make_state):
        session_id = await create_session()
        state = make_state([make_seat(1, "10S", "2H"), make_seat(2, "9S", "9H")])
        game_routes._tables[session_id] = BlackjackTable(game=state)
        await delete_session(session_id)

        with pytest.raises(HTTPException) as exc_info:
            await _get_table(session_id)

        assert exc_info.value.status_code == 401
        assert session_id not in game_routes._tables
