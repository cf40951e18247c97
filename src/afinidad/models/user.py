"""
Modelo de Identidad y Preferencias

Define quién está usando el motor y qué busca. Cada rol tiene su propio
esquema de preferencias: el dueño (offerer) puntúa perfiles de inquilinos,
el inquilino (seeker) puntúa publicaciones.
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from afinidad.utils.values import to_bool, to_float, to_str_list


class Role(str, Enum):
    """Rol de la identidad en el marketplace."""

    SEEKER = "seeker"
    OFFERER = "offerer"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Role"]:
        """Acepta también los nombres usados en la tabla user_roles."""
        aliases = {
            "seeker": cls.SEEKER,
            "client": cls.SEEKER,
            "offerer": cls.OFFERER,
            "owner": cls.OFFERER,
        }
        return aliases.get((value or "").strip().lower())


class Identity(BaseModel):
    """Usuario autenticado. Inmutable durante la sesión."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="UUID del usuario en Supabase")
    role: Role = Field(..., description="seeker u offerer")


class OffererPreferences(BaseModel):
    """
    Preferencias del dueño sobre los inquilinos que acepta.

    Todos los campos son opcionales: un campo ausente o malformado
    significa "sin preferencia" y el factor correspondiente se saltea.
    """

    model_config = ConfigDict(extra="ignore")

    min_budget: Optional[float] = Field(None, description="Presupuesto mínimo del inquilino")
    max_budget: Optional[float] = Field(None, description="Presupuesto máximo del inquilino")
    compatible_lifestyle_tags: list[str] = Field(
        default_factory=list, description="Estilos de vida aceptados"
    )
    allows_pets: Optional[bool] = Field(None, description="Acepta mascotas")
    allows_smoking: Optional[bool] = Field(None, description="Acepta fumadores")

    @field_validator("min_budget", "max_budget", mode="before")
    @classmethod
    def _lenient_amount(cls, value):
        return to_float(value)

    @field_validator("allows_pets", "allows_smoking", mode="before")
    @classmethod
    def _lenient_flag(cls, value):
        return to_bool(value)

    @field_validator("compatible_lifestyle_tags", mode="before")
    @classmethod
    def _lenient_tags(cls, value):
        return to_str_list(value) or []


class SeekerPreferences(BaseModel):
    """Filtros del inquilino sobre las publicaciones que ve."""

    model_config = ConfigDict(extra="ignore")

    min_price: Optional[float] = Field(None, description="Precio mínimo")
    max_price: Optional[float] = Field(None, description="Precio máximo")
    min_bedrooms: Optional[float] = Field(None, description="Dormitorios mínimos")
    property_types: list[str] = Field(default_factory=list)
    required_amenities: list[str] = Field(default_factory=list)
    preferred_locations: list[str] = Field(default_factory=list)
    pet_friendly_required: Optional[bool] = Field(None, description="Tiene mascotas")

    @field_validator("min_price", "max_price", "min_bedrooms", mode="before")
    @classmethod
    def _lenient_number(cls, value):
        return to_float(value)

    @field_validator("pet_friendly_required", mode="before")
    @classmethod
    def _lenient_flag(cls, value):
        return to_bool(value)

    @field_validator(
        "property_types", "required_amenities", "preferred_locations", mode="before"
    )
    @classmethod
    def _lenient_list(cls, value):
        return to_str_list(value) or []


Preferences = Union[OffererPreferences, SeekerPreferences]


def preferences_for(role: Role, row: Optional[dict]) -> Optional[Preferences]:
    """Construye las preferencias del rol a partir de la fila del store."""
    if not row:
        return None
    if role is Role.OFFERER:
        return OffererPreferences(**row)
    return SeekerPreferences(**row)
