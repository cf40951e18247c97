import pytest

from afinidad.auth import BaseIdentityProvider
from afinidad.config import LIKES_TABLE, LISTINGS_TABLE, PROFILES_TABLE
from afinidad.errors import StoreError
from afinidad.models import SwipeDirection
from afinidad.session import EngagementSession


class StaticIdentityProvider(BaseIdentityProvider):
    def __init__(self, identity):
        self.identity = identity

    async def get_current_identity(self):
        return self.identity


@pytest.mark.asyncio
async def test_login_without_identity_returns_none(store, settings):
    session = await EngagementSession.login(StaticIdentityProvider(None), store, settings=settings)

    assert session is None
    assert store.subscriptions == []


@pytest.mark.asyncio
async def test_incoming_like_notifies_and_refreshes_counters(store, offerer, push_sink, settings):
    store.seed(PROFILES_TABLE, {"id": "seeker-1", "full_name": "Ana"})
    session = await EngagementSession.login(
        StaticIdentityProvider(offerer), store, push_sink=push_sink, settings=settings
    )
    assert session.live
    assert session.unread.get_counts().likes == 0

    [row] = store.seed(LIKES_TABLE, {"user_id": "seeker-1", "target_id": offerer.id, "direction": "right"})
    store.emit(LIKES_TABLE, "INSERT", row)
    await session.router.drain()
    await session.unread.flush()

    assert session.unread.get_counts().likes == 1
    assert [n.title for n in session.ring.items()] == ["Ana"]
    assert len(push_sink.presented) == 1

    await session.close()


@pytest.mark.asyncio
async def test_close_tears_down_decks_and_subscriptions(store, seeker, settings):
    session = EngagementSession(seeker, store, settings=settings)
    await session.start()
    store.seed(LISTINGS_TABLE, {"id": "l1", "owner_id": "owner-1", "status": "active"})

    deck = session.open_deck()
    await deck.start()
    deck.swipe(SwipeDirection.RIGHT)

    await session.close()

    assert store.subscriptions == []
    assert session.decks == []
    assert not session.live
    assert len(store.rows(LIKES_TABLE)) == 1
    assert store.rows(LIKES_TABLE)[0]["target_id"] == "owner-1"


@pytest.mark.asyncio
async def test_each_deck_gets_its_own_session_id(store, seeker, settings):
    session = EngagementSession(seeker, store, settings=settings)
    await session.start()

    first = session.open_deck()
    second = session.open_deck()

    assert first.session_id != second.session_id
    assert first.feed is not second.feed

    await session.close()


@pytest.mark.asyncio
async def test_start_can_be_retried_after_subscribe_failure(store, offerer, settings):
    store.subscribe_failures = 1
    session = EngagementSession(offerer, store, settings=settings)

    with pytest.raises(StoreError):
        await session.start()
    assert not session.live

    await session.start()
    assert session.live
    assert len(store.subscriptions) == 4

    await session.close()
