"""Core blackjack engine - 100% UI-agnostic."""

from core.cards import Card, Deck, Rank, Suit, create_deck, shuffle_cards
from core.hand import Hand, is_blackjack, score

__all__ = [
    "Card",
    "Deck",
    "Rank",
    "Suit",
    "create_deck",
    "shuffle_cards",
    "Hand",
    "is_blackjack",
    "score",
]
