"""
Proveedores de identidad.

Resuelven quién es el usuario de la sesión y con qué rol navega.
"""

from abc import ABC, abstractmethod
from typing import Optional

import structlog
from supabase import AsyncClient, AuthError

from afinidad.database import BaseStore, ProfileRepository, SupabaseStore
from afinidad.errors import StoreError
from afinidad.models import Identity

logger = structlog.get_logger()


class BaseIdentityProvider(ABC):
    """Clase base para proveedores de identidad."""

    @abstractmethod
    async def get_current_identity(self) -> Optional[Identity]:
        """
        Identidad del usuario logueado.

        Returns:
            Identity, o None si no hay sesión o no tiene rol asignado
        """
        pass


class SupabaseIdentityProvider(BaseIdentityProvider):
    """Identidad desde Supabase Auth y el rol desde la tabla user_roles."""

    def __init__(self, client: AsyncClient, store: Optional[BaseStore] = None):
        self.client = client
        self.profile_repo = ProfileRepository(store or SupabaseStore(client))

    async def get_current_identity(self) -> Optional[Identity]:
        try:
            response = await self.client.auth.get_user()
        except AuthError as e:
            logger.warning("No se pudo obtener el usuario", error=str(e))
            return None

        user = response.user if response else None
        if user is None:
            return None

        try:
            role = await self.profile_repo.get_role(user.id)
        except StoreError as e:
            logger.error("Error obteniendo rol", user_id=user.id, error=str(e))
            raise
        if role is None:
            logger.warning("Usuario sin rol asignado", user_id=user.id)
            return None

        return Identity(id=user.id, role=role)
