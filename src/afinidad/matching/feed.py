"""
Feed paginado de candidatos.

Trae páginas crudas del store, las puntúa con CompatibilityScorer,
descarta las de bajo puntaje y las ordena.
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from afinidad.config import Settings, get_settings
from afinidad.database import BaseStore, CandidateRepository, PreferencesRepository
from afinidad.errors import FeedFetchError, StoreError
from afinidad.matching.scorer import CompatibilityScorer
from afinidad.models import (
    Candidate,
    Identity,
    Preferences,
    Role,
    ScoredCandidate,
    TargetType,
)

logger = structlog.get_logger()

_UNSET = object()


@dataclass
class FeedPage:
    """Página de candidatos puntuados."""

    candidates: list[ScoredCandidate] = field(default_factory=list)
    next_cursor: Optional[int] = None
    raw_count: int = 0


class CandidateFeed:
    """
    Feed de candidatos para una sesión de navegación.

    Flujo por página:
    1. Leer `page_size` filas con offset = cursor * page_size
    2. Puntuar cada fila con las preferencias de la sesión
    3. Filtrar por porcentaje mínimo
    4. Ordenar por porcentaje (desempate: perfil más reciente)
    """

    def __init__(
        self,
        identity: Identity,
        store: BaseStore,
        scorer: Optional[CompatibilityScorer] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.identity = identity
        self.candidate_repo = CandidateRepository(store)
        self.preferences_repo = PreferencesRepository(store)
        self.scorer = scorer or CompatibilityScorer(
            neutral_percentage=self.settings.neutral_percentage
        )
        self.page_size = self.settings.feed_page_size
        self.min_percentage = self.settings.feed_min_percentage
        self._preferences = _UNSET

    @property
    def target_type(self) -> TargetType:
        if self.identity.role is Role.OFFERER:
            return TargetType.PROFILE
        return TargetType.LISTING

    def reset(self):
        """Olvida las preferencias cacheadas; la próxima página las relee."""
        self._preferences = _UNSET

    async def _get_preferences(self, cursor: int) -> Optional[Preferences]:
        if self._preferences is _UNSET:
            try:
                self._preferences = await self.preferences_repo.get_for(self.identity)
            except StoreError as e:
                raise FeedFetchError(cursor, str(e)) from e
            if self._preferences is None:
                logger.info("Usuario sin preferencias", user_id=self.identity.id)
        return self._preferences

    async def next_page(self, cursor: int) -> FeedPage:
        """
        Obtiene la página `cursor` del feed.

        Args:
            cursor: Número de página (0 = primera)

        Returns:
            FeedPage con candidatos y el cursor siguiente (None = agotado)

        Raises:
            FeedFetchError: Si el store no responde
        """
        preferences = await self._get_preferences(cursor)

        try:
            rows = await self.candidate_repo.fetch_page(
                self.identity,
                offset=cursor * self.page_size,
                limit=self.page_size,
            )
        except StoreError as e:
            logger.error(
                "Error trayendo candidatos",
                user_id=self.identity.id,
                cursor=cursor,
                error=str(e),
            )
            raise FeedFetchError(cursor, str(e)) from e

        scored = []
        for row in rows:
            if row.get("id") is None:
                continue
            candidate = Candidate.from_row(row, self.target_type)
            scored.append(self.scorer.score(preferences, candidate))

        filtered = [s for s in scored if s.percentage >= self.min_percentage]
        filtered.sort(key=ScoredCandidate.sort_key)

        next_cursor = cursor + 1 if len(rows) >= self.page_size else None

        logger.info(
            "Página de candidatos",
            user_id=self.identity.id,
            cursor=cursor,
            total=len(rows),
            above_threshold=len(filtered),
            exhausted=next_cursor is None,
        )

        return FeedPage(candidates=filtered, next_cursor=next_cursor, raw_count=len(rows))
