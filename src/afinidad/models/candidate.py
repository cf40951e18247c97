"""
Candidatos del feed.

Un candidato es un perfil (para dueños) o una publicación (para
inquilinos). El motor no lo modifica: conserva la fila cruda y sólo
agrega el resultado del scoring.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from afinidad.utils.values import parse_timestamp


class TargetType(str, Enum):
    PROFILE = "profile"
    LISTING = "listing"


class Candidate(BaseModel):
    """Perfil o publicación tal como viene del store."""

    model_config = ConfigDict(frozen=True)

    id: str
    target_type: TargetType
    data: dict = Field(default_factory=dict, description="Fila cruda del store")
    updated_at: Optional[datetime] = Field(
        None, description="Última actualización del perfil, para desempates"
    )

    @classmethod
    def from_row(cls, row: dict, target_type: TargetType) -> "Candidate":
        return cls(
            id=str(row["id"]),
            target_type=target_type,
            data=dict(row),
            updated_at=parse_timestamp(row.get("updated_at") or row.get("created_at")),
        )

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    @property
    def owner_id(self) -> str:
        """Identidad que recibe el like: el dueño de la publicación o el propio perfil."""
        if self.target_type is TargetType.LISTING:
            return str(self.data.get("owner_id") or self.id)
        return self.id


class ScoredCandidate(BaseModel):
    """Candidato con su porcentaje de compatibilidad."""

    candidate: Candidate
    percentage: int = Field(..., ge=0, le=100)
    matched_reasons: list[str] = Field(default_factory=list)
    incompatible_reasons: list[str] = Field(default_factory=list)

    @property
    def id(self) -> str:
        return self.candidate.id

    def sort_key(self) -> tuple:
        """Porcentaje descendente; a igual porcentaje, el más reciente primero."""
        updated = self.candidate.updated_at
        recency = updated.timestamp() if updated else float("-inf")
        return (-self.percentage, -recency)
