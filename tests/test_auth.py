from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from afinidad.auth import SupabaseIdentityProvider
from afinidad.config import USER_ROLES_TABLE
from afinidad.models import Identity, Role


def _client(user):
    client = MagicMock()
    client.auth.get_user = AsyncMock(return_value=SimpleNamespace(user=user) if user else None)
    return client


@pytest.mark.asyncio
async def test_identity_uses_role_from_user_roles(store):
    store.seed(USER_ROLES_TABLE, {"user_id": "u1", "role": "owner"})
    provider = SupabaseIdentityProvider(_client(SimpleNamespace(id="u1")), store=store)

    assert await provider.get_current_identity() == Identity(id="u1", role=Role.OFFERER)


@pytest.mark.asyncio
async def test_no_signed_in_user(store):
    provider = SupabaseIdentityProvider(_client(None), store=store)

    assert await provider.get_current_identity() is None


@pytest.mark.asyncio
async def test_user_without_role_has_no_identity(store):
    provider = SupabaseIdentityProvider(_client(SimpleNamespace(id="u2")), store=store)

    assert await provider.get_current_identity() is None
