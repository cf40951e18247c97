"""
Motor de matching.

Puntúa candidatos según las preferencias del usuario y los sirve
paginados para el swipe deck.
"""

from afinidad.matching.scorer import (
    CompatibilityScorer,
    OFFERER_WEIGHTS,
    SEEKER_WEIGHTS,
    policy_compatible,
)
from afinidad.matching.feed import CandidateFeed, FeedPage

__all__ = [
    "CompatibilityScorer",
    "OFFERER_WEIGHTS",
    "SEEKER_WEIGHTS",
    "policy_compatible",
    "CandidateFeed",
    "FeedPage",
]
