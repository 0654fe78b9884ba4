"""Multiplayer blackjack table driven by a state machine."""

import logging
from random import Random
from typing import Callable, Iterable

from transitions import Machine

from core.game import rules
from core.game.events import EventEmitter, EventType, GameEvent
from core.game.state import (
    GamePhase,
    GameState,
    Player,
    PlayerStatus,
    RoundResult,
    is_valid_transition,
)
from core.game.ai import Action, decide

logger = logging.getLogger(__name__)

ResultReporter = Callable[[list[RoundResult]], None]
Policy = Callable[[Player, list[Player], Random], Action]


class BlackjackTable:
    """
    Stateful table over the pure round transitions.

    The table owns the authoritative GameState, keeps a state machine in
    step with its phase and reports each settled round exactly once.
    Communication happens through events and return values only.
    """

    # State machine states
    STATES = [phase.value for phase in GamePhase]

    # State machine transitions
    TRANSITIONS = [
        {"trigger": "begin_game", "source": "setup", "dest": "playing"},
        {"trigger": "round_over", "source": "playing", "dest": "round_finished"},
        {"trigger": "game_over", "source": "playing", "dest": "game_finished"},
        {"trigger": "begin_round", "source": "round_finished", "dest": "playing"},
        {"trigger": "clear_table", "source": "*", "dest": "setup"},
    ]

    _PHASE_TRIGGERS = {
        (GamePhase.SETUP, GamePhase.PLAYING): "begin_game",
        (GamePhase.PLAYING, GamePhase.ROUND_FINISHED): "round_over",
        (GamePhase.PLAYING, GamePhase.GAME_FINISHED): "game_over",
        (GamePhase.ROUND_FINISHED, GamePhase.PLAYING): "begin_round",
    }

    def __init__(
        self,
        rng: Random | None = None,
        reporter: ResultReporter | None = None,
        policy: Policy = decide,
        game: GameState | None = None,
    ) -> None:
        """
        Initialize a table.

        Args:
            rng: Random number generator for shuffles and AI coin flips
            reporter: Called with the seat results once per settled round
            policy: AI decision function
            game: Existing state to resume (defaults to an empty setup)
        """
        self.rng = rng or Random()
        self.reporter = reporter
        self.policy = policy
        self.game = game or rules.reset_game()
        self.events = EventEmitter()

        self.machine = Machine(
            model=self,
            states=self.STATES,
            transitions=self.TRANSITIONS,
            initial=self.game.phase.value,
            auto_transitions=False,
            model_attribute="_machine_state",
        )

    @property
    def phase(self) -> GamePhase:
        """Get current phase as enum."""
        return GamePhase(self._machine_state)  # type: ignore[attr-defined]

    def subscribe(
        self,
        handler: Callable[[GameEvent], None],
        event_type: EventType | None = None,
    ) -> None:
        """Subscribe to game events."""
        self.events.subscribe(handler, event_type)

    def start(
        self,
        players: Iterable[Player],
        target_points: int = rules.DEFAULT_TARGET_POINTS,
    ) -> bool:
        """
        Seat the players and deal the first round.

        Raises:
            ValueError: If the seats or target are invalid
        """
        if self.phase != GamePhase.SETUP:
            self._invalid("Game already started")
            return False

        new_game = rules.start_game(players, target_points, rng=self.rng)
        self.events.emit_new(
            EventType.GAME_STARTED,
            players=[p.name for p in new_game.players],
            target_points=target_points,
        )
        self._announce_deal(new_game)
        self._commit(new_game)
        return True

    def hit(self) -> bool:
        """Active seat takes another card."""
        if not self.can_hit:
            if self.phase == GamePhase.PLAYING and self.game.deck.is_empty:
                self.events.emit_new(EventType.DECK_EXHAUSTED)
            self._invalid("Cannot hit now")
            return False

        index = self.game.current_player_index
        new_game = rules.hit(self.game)
        player = new_game.players[index]

        self.events.emit_new(
            EventType.CARD_DEALT,
            card=str(player.hand.cards[-1]),
            player_id=player.id,
            hand_value=player.score,
        )
        self.events.emit_new(EventType.PLAYER_HIT, player_id=player.id, hand_value=player.score)
        if player.status == PlayerStatus.BUSTED:
            self.events.emit_new(EventType.PLAYER_BUSTS, player_id=player.id, hand_value=player.score)

        self._commit(new_game)
        return True

    def stand(self) -> bool:
        """Active seat keeps its hand."""
        if not self.can_stand:
            self._invalid("Cannot stand now")
            return False

        player = self.game.players[self.game.current_player_index]
        self.events.emit_new(EventType.PLAYER_STAND, player_id=player.id, hand_value=player.score)
        self._commit(rules.stand(self.game))
        return True

    def play_ai_turn(self) -> Action | None:
        """
        Let the active AI seat make one decision.

        Returns:
            The action taken, or None if the active seat is not an AI that
            can still act
        """
        player = self.active_player
        if player is None or not player.is_ai or player.status != PlayerStatus.PLAYING:
            return None

        others = [p for p in self.game.players if p.id != player.id]
        action = self.policy(player, others, self.rng)
        self.events.emit_new(
            EventType.AI_DECISION,
            player_id=player.id,
            hand_value=player.score,
            action=str(action),
        )

        if action == Action.HIT and not self.game.deck.is_empty:
            self.hit()
        else:
            self.stand()
        return action

    def run_ai_turns(self) -> int:
        """Play AI decisions until a human seat is up or the round ends."""
        steps = 0
        while self.play_ai_turn() is not None:
            steps += 1
        return steps

    def next_round(self) -> bool:
        """Deal the next round after a settled one."""
        if self.phase != GamePhase.ROUND_FINISHED:
            self._invalid("Round is not finished")
            return False

        new_game = rules.next_round(self.game, rng=self.rng)
        self._announce_deal(new_game)
        self._commit(new_game)
        return True

    def reset(self, target_points: int = rules.DEFAULT_TARGET_POINTS) -> None:
        """Discard the game and go back to setup."""
        self.game = rules.reset_game(target_points)
        self.clear_table()  # type: ignore[attr-defined]
        self.events.emit_new(EventType.GAME_RESET)

    def _announce_deal(self, game: GameState) -> None:
        for player in game.players:
            for card in player.hand.cards:
                self.events.emit_new(
                    EventType.CARD_DEALT,
                    card=str(card),
                    player_id=player.id,
                    hand_value=player.score,
                )
            if player.status == PlayerStatus.BLACKJACK:
                self.events.emit_new(EventType.PLAYER_BLACKJACK, player_id=player.id)
        self.events.emit_new(EventType.ROUND_STARTED, round=game.current_round)

    def _commit(self, new_game: GameState) -> None:
        """Adopt a new state, move the machine along and settle if the round ended."""
        previous = self.game.phase
        previous_index = self.game.current_player_index
        previous_round = self.game.current_round
        self.game = new_game

        # A fresh deal can settle at once and land back in the same phase
        if new_game.phase != previous or new_game.current_round != previous_round:
            self._follow_phase(previous, new_game.phase)
        elif new_game.current_player_index != previous_index:
            self._announce_turn()

    def _follow_phase(self, previous: GamePhase, current: GamePhase) -> None:
        steps = [(previous, current)]
        if not is_valid_transition(previous, current):
            # A deal that resolves on the spot passes through PLAYING
            steps = [(previous, GamePhase.PLAYING), (GamePhase.PLAYING, current)]

        for step in steps:
            getattr(self, self._PHASE_TRIGGERS[step])()

        if current == GamePhase.PLAYING:
            self._announce_turn()
        else:
            self._settle()

    def _announce_turn(self) -> None:
        player = self.active_player
        if player is not None:
            logger.debug("Turn passes to player %s (%s)", player.id, player.name)
            self.events.emit_new(EventType.TURN_CHANGED, player_id=player.id, is_ai=player.is_ai)

    def _settle(self) -> None:
        results = rules.round_results(self.game)
        self.events.emit_new(
            EventType.ROUND_ENDED,
            round=self.game.current_round,
            winners=[w.id for w in self.game.winners],
            results=results,
        )
        if self.phase == GamePhase.GAME_FINISHED:
            self.events.emit_new(
                EventType.GAME_ENDED,
                champions=[p.id for p in self.champions],
            )

        if self.reporter is not None:
            self.reporter(results)

    def _invalid(self, message: str) -> None:
        self.events.emit_new(
            EventType.INVALID_ACTION,
            message=message,
            phase=self.phase.value,
        )

    @property
    def active_player(self) -> Player | None:
        """Get the seat whose turn it is."""
        return self.game.active_player

    @property
    def last_results(self) -> list[RoundResult]:
        """Settlement of the most recent round, empty while a round is live."""
        return rules.round_results(self.game)

    @property
    def champions(self) -> list[Player]:
        """Seats tied on the highest point total."""
        if not self.game.players:
            return []
        best = max(p.total_points for p in self.game.players)
        return [p for p in self.game.players if p.total_points == best]

    @property
    def can_hit(self) -> bool:
        """Check if hitting is allowed."""
        player = self.active_player
        return (
            player is not None
            and player.status == PlayerStatus.PLAYING
            and not self.game.deck.is_empty
        )

    @property
    def can_stand(self) -> bool:
        """Check if standing is allowed."""
        player = self.active_player
        return player is not None and player.status == PlayerStatus.PLAYING

    @property
    def is_ai_turn(self) -> bool:
        """Check if the active seat is an AI waiting to act."""
        player = self.active_player
        return player is not None and player.is_ai and player.status == PlayerStatus.PLAYING
