"""
Unit tests for weekly achievement selection (gradequest/gamification/weekly_selector.py)

Covers the per-tier no-repeat rule, pool reset, idempotency within a week,
forced refresh, degraded tiers and concurrent first draws.
"""
import asyncio
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

from gradequest.cache.selection_cache import SelectionCache, selection_cache_key
from gradequest.db.memory_gateway import InMemoryGateway
from gradequest.gamification.catalog import WEEKLY_ACHIEVEMENTS, AchievementCatalog
from gradequest.gamification.weekly_selector import (
    WeeklySelector,
    random_chooser,
    seeded_chooser,
)
from gradequest.models.achievement import Difficulty, UsageHistory


MONDAY = datetime(2024, 1, 15, 9, 0)


def week(n: int) -> datetime:
    """A Wednesday n weeks after the reference week"""
    return MONDAY + timedelta(weeks=n, days=2)


class SlowReadGateway(InMemoryGateway):
    """Yields after reading a selection so concurrent callers both see a miss"""

    async def read_selection(self, user_id, week_start):
        result = await super().read_selection(user_id, week_start)
        await asyncio.sleep(0)
        return result


# ============================================================================
# First draw
# ============================================================================

@pytest.mark.asyncio
async def test_first_draw_picks_one_per_tier(selector, gateway, test_user_id):
    selection = await selector.get_or_create_selection(test_user_id, week(0))

    assert selection.achievement_ids() == {
        Difficulty.EASY: "easy-1",
        Difficulty.MEDIUM: "medium-1",
        Difficulty.HARD: "hard-1",
    }
    assert selection.week_start == datetime(2024, 1, 15)
    assert selection.week_end == datetime(2024, 1, 21, 23, 59, 59, 999000)
    assert selection.selected_at == week(0)

    history = await gateway.read_usage_history(test_user_id)
    assert history == UsageHistory(easy=["easy-1"], medium=["medium-1"], hard=["hard-1"])


@pytest.mark.asyncio
async def test_repeat_calls_within_week_are_identical(selector, gateway, test_user_id):
    first = await selector.get_or_create_selection(test_user_id, week(0))
    history_after_first = await gateway.read_usage_history(test_user_id)

    # Same week, different day
    second = await selector.get_or_create_selection(test_user_id, week(0) + timedelta(days=3))

    assert second == first
    assert await gateway.read_usage_history(test_user_id) == history_after_first


@pytest.mark.asyncio
async def test_users_have_independent_histories(selector, gateway):
    await selector.get_or_create_selection("alice", week(0))
    await selector.get_or_create_selection("alice", week(1))

    bob = await selector.get_or_create_selection("bob", week(1))

    assert bob.easy.id == "easy-1"


# ============================================================================
# No-repeat and reset
# ============================================================================

@pytest.mark.asyncio
async def test_no_repeat_until_tier_exhausted(selector, test_user_id):
    easy_ids = []
    for n in range(3):
        selection = await selector.get_or_create_selection(test_user_id, week(n))
        easy_ids.append(selection.easy.id)

    assert easy_ids == ["easy-1", "easy-2", "easy-3"]


@pytest.mark.asyncio
async def test_exhausted_tier_resets_then_draws_from_full_pool(selector, gateway, test_user_id):
    for n in range(3):
        await selector.get_or_create_selection(test_user_id, week(n))

    fourth = await selector.get_or_create_selection(test_user_id, week(3))

    # Reset clears history, then the full pool (including the last pick) is eligible
    assert fourth.easy.id == "easy-1"
    history = await gateway.read_usage_history(test_user_id)
    assert history.easy == ["easy-1"]


@pytest.mark.asyncio
async def test_single_item_tier_resets_every_week(selector, gateway, test_user_id):
    await selector.get_or_create_selection(test_user_id, week(0))
    second = await selector.get_or_create_selection(test_user_id, week(1))

    assert second.hard.id == "hard-1"
    assert (await gateway.read_usage_history(test_user_id)).hard == ["hard-1"]


@pytest.mark.asyncio
async def test_reset_pool_may_repeat_last_pick(gateway, small_catalog, chooser_last, test_user_id):
    """No cooldown for the id drawn right before the reset"""
    selector = WeeklySelector(gateway, catalog=small_catalog, chooser=chooser_last)
    await gateway.write_usage_history(
        test_user_id,
        UsageHistory(easy=["easy-1", "easy-2", "easy-3"]),
    )

    selection = await selector.get_or_create_selection(test_user_id, week(0))

    assert selection.easy.id == "easy-3"


@pytest.mark.asyncio
async def test_history_ids_missing_from_catalog_are_ignored(selector, gateway, test_user_id):
    await gateway.write_usage_history(test_user_id, UsageHistory(easy=["retired", "easy-1"]))

    selection = await selector.get_or_create_selection(test_user_id, week(0))

    assert selection.easy.id == "easy-2"


# ============================================================================
# Force refresh
# ============================================================================

@pytest.mark.asyncio
async def test_force_refresh_excludes_previous_pick(selector, gateway, test_user_id):
    original = await selector.get_or_create_selection(test_user_id, week(0))

    refreshed = await selector.force_refresh_selection(test_user_id, week(0))

    assert refreshed.easy.id == "easy-2"
    assert refreshed.medium.id == "medium-2"
    assert refreshed.draw_id != original.draw_id
    assert await gateway.read_selection(test_user_id, refreshed.week_start) == refreshed

    history = await gateway.read_usage_history(test_user_id)
    assert history.easy == ["easy-1", "easy-2"]
    assert history.medium == ["medium-1", "medium-2"]
    assert history.hard == ["hard-1"]


@pytest.mark.asyncio
async def test_get_after_force_refresh_returns_refreshed(selector, test_user_id):
    await selector.get_or_create_selection(test_user_id, week(0))
    refreshed = await selector.force_refresh_selection(test_user_id, week(0))

    assert await selector.get_or_create_selection(test_user_id, week(0)) == refreshed


# ============================================================================
# Degraded tiers
# ============================================================================

@pytest.mark.asyncio
async def test_empty_tier_is_degraded(gateway, achievement_factory, chooser_first, test_user_id):
    catalog = AchievementCatalog([
        achievement_factory("easy-1"),
        achievement_factory("medium-1", Difficulty.MEDIUM, 50),
    ])
    selector = WeeklySelector(gateway, catalog=catalog, chooser=chooser_first)

    selection = await selector.get_or_create_selection(test_user_id, week(0))

    assert selection.easy.id == "easy-1"
    assert selection.medium.id == "medium-1"
    assert selection.hard is None
    assert selection.missing_tiers == [Difficulty.HARD]
    assert (await gateway.read_usage_history(test_user_id)).hard == []


# ============================================================================
# Concurrency
# ============================================================================

@pytest.mark.asyncio
async def test_concurrent_first_draws_agree(small_catalog, chooser_first, test_user_id):
    gateway = SlowReadGateway()
    selector = WeeklySelector(gateway, catalog=small_catalog, chooser=chooser_first)

    first, second = await asyncio.gather(
        selector.get_or_create_selection(test_user_id, week(0)),
        selector.get_or_create_selection(test_user_id, week(0)),
    )

    assert first == second
    # Only the winning draw is recorded
    history = await gateway.read_usage_history(test_user_id)
    assert history == UsageHistory(easy=["easy-1"], medium=["medium-1"], hard=["hard-1"])


@pytest.mark.asyncio
async def test_concurrent_draws_with_real_pool(test_user_id):
    gateway = SlowReadGateway()
    selector = WeeklySelector(gateway, catalog=WEEKLY_ACHIEVEMENTS, chooser=random_chooser)

    results = await asyncio.gather(*[
        selector.get_or_create_selection(test_user_id, week(0)) for _ in range(5)
    ])

    assert all(result == results[0] for result in results)
    history = await gateway.read_usage_history(test_user_id)
    assert history.easy == [results[0].easy.id]


# ============================================================================
# Counts & stats
# ============================================================================

@pytest.mark.asyncio
async def test_available_counts_fresh_user(selector, test_user_id):
    counts = await selector.get_available_achievements_count(test_user_id)

    assert (counts.easy, counts.medium, counts.hard, counts.total) == (3, 2, 1, 6)


@pytest.mark.asyncio
async def test_available_counts_after_draw(selector, test_user_id):
    await selector.get_or_create_selection(test_user_id, week(0))

    counts = await selector.get_available_achievements_count(test_user_id)

    # Exhausted hard tier reports its full pool size
    assert (counts.easy, counts.medium, counts.hard, counts.total) == (2, 1, 1, 4)


@pytest.mark.asyncio
async def test_usage_stats(selector, test_user_id):
    await selector.get_or_create_selection(test_user_id, week(0))

    stats = await selector.get_achievement_usage_stats(test_user_id)

    assert stats.total_used == 3
    assert stats.total_available == 6
    assert stats.usage_percentage == 50.0
    assert stats.needs_reset is True


@pytest.mark.asyncio
async def test_can_create_next_week_selection(gateway, test_user_id):
    selector = WeeklySelector(gateway)
    assert await selector.can_create_next_week_selection(test_user_id) is True

    await gateway.write_usage_history(
        test_user_id,
        UsageHistory(hard=[a.id for a in WEEKLY_ACHIEVEMENTS.by_difficulty(Difficulty.HARD)]),
    )
    assert await selector.can_create_next_week_selection(test_user_id) is False


# ============================================================================
# Choosers
# ============================================================================

def test_seeded_chooser_is_reproducible():
    pool = WEEKLY_ACHIEVEMENTS.by_difficulty(Difficulty.EASY)

    picks = {seeded_chooser(pool, "user-123", week(0), Difficulty.EASY).id for _ in range(5)}

    assert len(picks) == 1
    assert picks.pop() in {a.id for a in pool}


def test_seeded_chooser_same_week_any_day():
    pool = WEEKLY_ACHIEVEMENTS.by_difficulty(Difficulty.EASY)

    monday = seeded_chooser(pool, "user-123", MONDAY, Difficulty.EASY)
    sunday = seeded_chooser(pool, "user-123", MONDAY + timedelta(days=6), Difficulty.EASY)

    assert monday == sunday


def test_random_chooser_picks_from_candidates():
    pool = WEEKLY_ACHIEVEMENTS.by_difficulty(Difficulty.MEDIUM)
    assert random_chooser(pool, "user-123", week(0), Difficulty.MEDIUM) in pool


@pytest.mark.asyncio
async def test_selection_always_from_correct_tiers(gateway, test_user_id):
    selector = WeeklySelector(gateway, chooser=random_chooser)

    for n in range(8):
        selection = await selector.get_or_create_selection(test_user_id, week(n))
        for tier in Difficulty:
            assert selection.for_tier(tier).difficulty == tier


# ============================================================================
# Cache
# ============================================================================

def _mock_redis():
    cache = MagicMock()
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock(return_value=True)
    cache.delete = AsyncMock(return_value=True)
    return cache


@pytest.mark.asyncio
async def test_draw_invalidates_cached_selection(gateway, small_catalog, chooser_first, test_user_id):
    redis_cache = _mock_redis()
    selector = WeeklySelector(
        gateway, catalog=small_catalog, chooser=chooser_first, cache=SelectionCache(redis_cache, ttl=60)
    )

    selection = await selector.get_or_create_selection(test_user_id, week(0))

    redis_cache.delete.assert_awaited_once_with(selection_cache_key(test_user_id, selection.week_start))


@pytest.mark.asyncio
async def test_gateway_hit_is_written_to_cache(gateway, small_catalog, chooser_first, test_user_id):
    redis_cache = _mock_redis()
    selector = WeeklySelector(
        gateway, catalog=small_catalog, chooser=chooser_first, cache=SelectionCache(redis_cache, ttl=60)
    )
    selection = await selector.get_or_create_selection(test_user_id, week(0))

    await selector.get_or_create_selection(test_user_id, week(0))

    redis_cache.set.assert_awaited_once_with(
        selection_cache_key(test_user_id, selection.week_start),
        selection.model_dump(mode="json"),
        ttl=60,
    )


@pytest.mark.asyncio
async def test_cached_selection_skips_gateway(small_catalog, chooser_first, test_user_id):
    warm_gateway = InMemoryGateway()
    warm = WeeklySelector(warm_gateway, catalog=small_catalog, chooser=chooser_first)
    selection = await warm.get_or_create_selection(test_user_id, week(0))

    redis_cache = _mock_redis()
    redis_cache.get.return_value = selection.model_dump(mode="json")
    gateway = MagicMock()
    gateway.read_selection = AsyncMock()
    selector = WeeklySelector(gateway, catalog=small_catalog, cache=SelectionCache(redis_cache))

    result = await selector.get_or_create_selection(test_user_id, week(0))

    assert result == selection
    gateway.read_selection.assert_not_called()
