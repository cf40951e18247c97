import pytest

from afinidad.config import LISTINGS_TABLE, OWNER_PREFERENCES_TABLE, PROFILES_TABLE
from afinidad.errors import FeedFetchError
from afinidad.matching import CandidateFeed
from afinidad.models import TargetType


def _seed_profiles(store, count, budget=1500, **extra):
    return store.seed(
        PROFILES_TABLE,
        *(
            {"id": f"c{i:02d}", "role": "seeker", "budget": budget, **extra}
            for i in range(count)
        ),
    )


def _seed_prefs(store, offerer, **prefs):
    store.seed(OWNER_PREFERENCES_TABLE, {"user_id": offerer.id, **prefs})


@pytest.mark.asyncio
async def test_page_drops_candidates_below_threshold_and_sorts(store, offerer, settings):
    _seed_prefs(store, offerer, min_budget=1000, max_budget=2000, compatible_lifestyle_tags=["quiet", "clean"])
    store.seed(
        PROFILES_TABLE,
        *({"id": f"low{i}", "role": "seeker", "budget": 5000} for i in range(3)),
        *({"id": f"mid{i}", "role": "seeker", "budget": 1500, "lifestyle_tags": ["quiet"]} for i in range(3)),
        *({"id": f"top{i}", "role": "seeker", "budget": 1500, "lifestyle_tags": ["quiet", "clean"]} for i in range(4)),
    )

    feed = CandidateFeed(offerer, store, settings=settings)
    page = await feed.next_page(0)

    assert page.raw_count == 10
    assert len(page.candidates) == 7
    percentages = [c.percentage for c in page.candidates]
    assert percentages == sorted(percentages, reverse=True)
    assert percentages == [100, 100, 100, 100, 77, 77, 77]
    assert all(c.candidate.target_type is TargetType.PROFILE for c in page.candidates)


@pytest.mark.asyncio
async def test_cursor_advances_until_short_page(store, offerer, settings):
    _seed_profiles(store, 13)
    feed = CandidateFeed(offerer, store, settings=settings)

    first = await feed.next_page(0)
    second = await feed.next_page(first.next_cursor)

    assert first.next_cursor == 1
    assert len(first.candidates) == 10
    assert second.next_cursor is None
    assert len(second.candidates) == 3
    assert not {c.id for c in first.candidates} & {c.id for c in second.candidates}


@pytest.mark.asyncio
async def test_own_profile_and_other_roles_are_excluded(store, offerer, settings):
    store.seed(
        PROFILES_TABLE,
        {"id": offerer.id, "role": "seeker"},
        {"id": "other-owner", "role": "offerer"},
        {"id": "c1", "role": "seeker"},
    )
    page = await CandidateFeed(offerer, store, settings=settings).next_page(0)

    assert [c.id for c in page.candidates] == ["c1"]


@pytest.mark.asyncio
async def test_without_preferences_everyone_scores_neutral(store, offerer, settings):
    _seed_profiles(store, 4)
    page = await CandidateFeed(offerer, store, settings=settings).next_page(0)

    assert [c.percentage for c in page.candidates] == [50] * 4
    assert page.candidates[0].matched_reasons == ["No preferences set"]


@pytest.mark.asyncio
async def test_preferences_are_read_once_per_session(store, offerer, settings):
    _seed_prefs(store, offerer, min_budget=1000)
    _seed_profiles(store, 25)
    feed = CandidateFeed(offerer, store, settings=settings)

    await feed.next_page(0)
    await feed.next_page(1)
    assert store.count_calls("select", OWNER_PREFERENCES_TABLE) == 1

    feed.reset()
    await feed.next_page(0)
    assert store.count_calls("select", OWNER_PREFERENCES_TABLE) == 2


@pytest.mark.asyncio
async def test_store_failure_raises_feed_fetch_error(store, offerer, settings):
    _seed_profiles(store, 3)
    store.fail("select", PROFILES_TABLE, times=1)
    feed = CandidateFeed(offerer, store, settings=settings)

    with pytest.raises(FeedFetchError) as exc:
        await feed.next_page(0)
    assert exc.value.cursor == 0

    # Sin reintento automático: el caller decide reintentar
    page = await feed.next_page(0)
    assert len(page.candidates) == 3


@pytest.mark.asyncio
async def test_seekers_browse_active_listings_of_others(store, seeker, settings):
    store.seed(
        LISTINGS_TABLE,
        {"id": "l1", "owner_id": "owner-1", "status": "active", "price": 900},
        {"id": "l2", "owner_id": "owner-2", "status": "rented", "price": 900},
        {"id": "l3", "owner_id": seeker.id, "status": "active", "price": 900},
    )
    page = await CandidateFeed(seeker, store, settings=settings).next_page(0)

    assert [c.id for c in page.candidates] == ["l1"]
    assert page.candidates[0].candidate.owner_id == "owner-1"
    assert page.candidates[0].candidate.target_type is TargetType.LISTING
