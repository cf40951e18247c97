"""
Scoring de compatibilidad.

Suma ponderada de factores independientes. Un factor sólo cuenta en el
máximo si ambos lados declaran el dato: la falta de información no
penaliza, simplemente se saltea el factor.
"""

from typing import Optional

import structlog

from afinidad.models import (
    Candidate,
    OffererPreferences,
    Preferences,
    ScoredCandidate,
    SeekerPreferences,
)
from afinidad.utils.values import to_bool, to_float, to_str_list

logger = structlog.get_logger()

# Dueño puntuando perfiles de inquilinos. El peso restante hasta 100 queda
# para extensiones propias de cada rol.
OFFERER_WEIGHTS = {
    "budget": 30.0,
    "lifestyle": 25.0,
    "pets": 15.0,
    "smoking": 15.0,
}

# Inquilino puntuando publicaciones
SEEKER_WEIGHTS = {
    "price": 30.0,
    "bedrooms": 20.0,
    "property_type": 15.0,
    "amenities": 20.0,
    "location": 15.0,
    "pets": 15.0,
}

NO_PREFERENCES_REASON = "No preferences set"


class _Tally:
    """Acumulador de score, máximo y razones."""

    def __init__(self):
        self.score = 0.0
        self.max_score = 0.0
        self.matched: list[str] = []
        self.incompatible: list[str] = []

    def add(
        self,
        weight: float,
        earned: float,
        reason: Optional[str] = None,
        incompatible: Optional[str] = None,
    ):
        self.max_score += weight
        self.score += earned
        if reason:
            self.matched.append(reason)
        if incompatible:
            self.incompatible.append(incompatible)

    def percentage(self, neutral: int) -> int:
        if self.max_score <= 0:
            return neutral
        # Redondeo half-up, no el bancario de round()
        value = int(self.score / self.max_score * 100 + 0.5)
        return max(0, min(100, value))


def policy_compatible(offerer_allows: bool, candidate_requires: bool) -> bool:
    """Un dueño restrictivo sólo choca con quien necesita lo prohibido."""
    return offerer_allows or not candidate_requires


def _in_range(value: float, low: Optional[float], high: Optional[float]) -> bool:
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


class CompatibilityScorer:
    """
    Calcula el porcentaje de compatibilidad entre preferencias y candidato.

    Nunca lanza excepciones: datos faltantes o malformados hacen que el
    factor se saltee.
    """

    def __init__(
        self,
        offerer_weights: Optional[dict[str, float]] = None,
        seeker_weights: Optional[dict[str, float]] = None,
        neutral_percentage: int = 50,
    ):
        self.offerer_weights = {**OFFERER_WEIGHTS, **(offerer_weights or {})}
        self.seeker_weights = {**SEEKER_WEIGHTS, **(seeker_weights or {})}
        self.neutral_percentage = neutral_percentage

    def score(
        self, preferences: Optional[Preferences], candidate: Candidate
    ) -> ScoredCandidate:
        """
        Puntúa un candidato.

        Args:
            preferences: Preferencias de quien mira el feed (None = sin configurar)
            candidate: Perfil o publicación a puntuar

        Returns:
            ScoredCandidate con porcentaje y razones
        """
        if preferences is None:
            return ScoredCandidate(
                candidate=candidate,
                percentage=self.neutral_percentage,
                matched_reasons=[NO_PREFERENCES_REASON],
            )

        tally = _Tally()
        try:
            if isinstance(preferences, OffererPreferences):
                self._score_profile(preferences, candidate, tally)
            elif isinstance(preferences, SeekerPreferences):
                self._score_listing(preferences, candidate, tally)
        except Exception as e:
            # Un candidato raro no puede tirar abajo el feed
            logger.warning(
                "Scoring degradado", candidate_id=candidate.id, error=str(e)
            )
            tally = _Tally()

        return ScoredCandidate(
            candidate=candidate,
            percentage=tally.percentage(self.neutral_percentage),
            matched_reasons=tally.matched,
            incompatible_reasons=tally.incompatible,
        )

    def _score_profile(
        self, prefs: OffererPreferences, candidate: Candidate, tally: _Tally
    ):
        weights = self.offerer_weights

        # Presupuesto
        budget = to_float(candidate.get("budget"))
        if budget is not None and (prefs.min_budget is not None or prefs.max_budget is not None):
            if _in_range(budget, prefs.min_budget, prefs.max_budget):
                tally.add(weights["budget"], weights["budget"], "Budget matches your requirements")
            else:
                tally.add(weights["budget"], 0, incompatible="Budget mismatch")
        else:
            logger.debug("Factor salteado", factor="budget", candidate_id=candidate.id)

        # Estilo de vida (proporcional). Una lista vacía cuenta como no declarada
        tags = to_str_list(candidate.get("lifestyle_tags"))
        if prefs.compatible_lifestyle_tags and tags:
            wanted = set(prefs.compatible_lifestyle_tags)
            overlap = len(wanted.intersection(tags))
            earned = overlap / len(wanted) * weights["lifestyle"]
            tally.add(
                weights["lifestyle"],
                earned,
                "Compatible lifestyle" if earned > weights["lifestyle"] / 2 else None,
                "Limited lifestyle compatibility" if overlap == 0 else None,
            )

        # Políticas
        self._policy(
            tally,
            weights["pets"],
            prefs.allows_pets,
            to_bool(candidate.get("has_pets")),
            "Pet policy",
        )
        self._policy(
            tally,
            weights["smoking"],
            prefs.allows_smoking,
            to_bool(candidate.get("smokes")),
            "Smoking policy",
        )

    def _score_listing(
        self, prefs: SeekerPreferences, candidate: Candidate, tally: _Tally
    ):
        weights = self.seeker_weights

        price = to_float(candidate.get("price"))
        if price is not None and (prefs.min_price is not None or prefs.max_price is not None):
            if _in_range(price, prefs.min_price, prefs.max_price):
                tally.add(weights["price"], weights["price"], "Price matches your budget")
            else:
                tally.add(weights["price"], 0, incompatible="Price outside your range")

        bedrooms = to_float(candidate.get("bedrooms"))
        if bedrooms is not None and prefs.min_bedrooms is not None:
            if bedrooms >= prefs.min_bedrooms:
                tally.add(weights["bedrooms"], weights["bedrooms"], "Has enough bedrooms")
            else:
                tally.add(weights["bedrooms"], 0, incompatible="Not enough bedrooms")

        property_type = candidate.get("property_type")
        if prefs.property_types and isinstance(property_type, str) and property_type:
            if property_type in prefs.property_types:
                tally.add(weights["property_type"], weights["property_type"], "Property type matches")
            else:
                tally.add(weights["property_type"], 0, incompatible="Property type not preferred")

        amenities = to_str_list(candidate.get("amenities"))
        if prefs.required_amenities and amenities:
            required = set(prefs.required_amenities)
            covered = len(required.intersection(amenities))
            earned = covered / len(required) * weights["amenities"]
            reason = None
            if earned > weights["amenities"] / 2:
                reason = f"Has {covered}/{len(required)} amenities"
            tally.add(weights["amenities"], earned, reason)

        city = candidate.get("city")
        if prefs.preferred_locations and isinstance(city, str) and city:
            if any(loc.lower() in city.lower() for loc in prefs.preferred_locations):
                tally.add(weights["location"], weights["location"], "In preferred location")
            else:
                tally.add(weights["location"], 0, incompatible="Outside preferred locations")

        self._policy(
            tally,
            weights["pets"],
            to_bool(candidate.get("pet_friendly")),
            prefs.pet_friendly_required,
            "Pet policy",
        )

    @staticmethod
    def _policy(
        tally: _Tally,
        weight: float,
        offerer_allows: Optional[bool],
        candidate_requires: Optional[bool],
        label: str,
    ):
        if offerer_allows is None or candidate_requires is None:
            return
        if policy_compatible(offerer_allows, candidate_requires):
            tally.add(weight, weight, f"{label} compatible")
        else:
            tally.add(weight, 0, incompatible=f"{label} incompatible")
