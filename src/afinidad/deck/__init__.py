"""
Swipe deck.

Pila de candidatos con commit optimista, undo y escritura durable en
segundo plano.
"""

from afinidad.deck.controller import DeckState, SwipeDeckController, UndoUnavailable
from afinidad.deck.writer import SwipeWriter

__all__ = [
    "DeckState",
    "SwipeDeckController",
    "SwipeWriter",
    "UndoUnavailable",
]
