"""
Weekly Achievement Selection

Draws one achievement per difficulty tier per calendar week.

No-repeat rule (per tier):
- Ids in the user's usage history are not drawn while unused ids remain
- Once every id in the tier has been used, the tier's history is cleared and
  the draw uses the full pool again (no cooldown for the just-reset ids)

Concurrency:
- The draw is persisted with a conditional insert (first writer wins)
- Usage history is only written by the caller whose draw won
"""

import hashlib
import logging
import random
from datetime import datetime
from typing import Callable, Optional, Sequence

from gradequest.cache.selection_cache import SelectionCache
from gradequest.db.gateway import PersistenceGateway
from gradequest.exceptions import CatalogEmptyError, ConcurrentDrawConflict
from gradequest.gamification.catalog import WEEKLY_ACHIEVEMENTS, AchievementCatalog
from gradequest.gamification.week_clock import current_week_start, week_end, week_key
from gradequest.models.achievement import (
    TIERS,
    AchievementDefinition,
    AvailableCounts,
    Difficulty,
    UsageHistory,
    UsageStats,
    WeeklySelection,
)
from gradequest.monitoring.prometheus_metrics import (
    track_draw_conflict,
    track_pool_reset,
    track_selection,
    track_selection_draw,
)

logger = logging.getLogger(__name__)

# chooser(candidates, user_id, week_start, tier) -> one of candidates
Chooser = Callable[[Sequence[AchievementDefinition], str, datetime, Difficulty], AchievementDefinition]

_system_random = random.SystemRandom()


def random_chooser(
    candidates: Sequence[AchievementDefinition],
    user_id: str,
    week_start: datetime,
    tier: Difficulty,
) -> AchievementDefinition:
    """Uniform pick from system randomness (production default)"""
    return _system_random.choice(list(candidates))


def seeded_chooser(
    candidates: Sequence[AchievementDefinition],
    user_id: str,
    week_start: datetime,
    tier: Difficulty,
) -> AchievementDefinition:
    """
    Uniform pick seeded by SHA-256 of (user, week, tier)

    Retries of the same logical draw over the same candidates pick the same achievement.
    """
    seed_material = f"{user_id}:{week_key(week_start)}:{Difficulty(tier).value}".encode("utf-8")
    seed = int.from_bytes(hashlib.sha256(seed_material).digest()[:8], "big")
    return random.Random(seed).choice(list(candidates))


class WeeklySelector:
    """Owns weekly draws and the per-user usage history"""

    def __init__(
        self,
        gateway: PersistenceGateway,
        catalog: AchievementCatalog = WEEKLY_ACHIEVEMENTS,
        chooser: Chooser = random_chooser,
        cache: Optional[SelectionCache] = None,
    ):
        self.gateway = gateway
        self.catalog = catalog
        self.chooser = chooser
        self.cache = cache or SelectionCache(None)

    async def get_or_create_selection(self, user_id: str, now: datetime) -> WeeklySelection:
        """
        Return the user's selection for the week containing `now`, drawing it on first request

        Repeated calls within one week return the identical selection and leave
        usage history untouched.
        """
        week_start = current_week_start(now)

        with track_selection("get_or_create"):
            existing = await self.read_selection(user_id, week_start)
            if existing is not None:
                return existing

            history = await self.gateway.read_usage_history(user_id)
            selection = self._draw(user_id, week_start, now, history, trigger="weekly")

            stored = await self.gateway.write_selection_if_absent(selection)
            if stored.draw_id == selection.draw_id:
                await self.gateway.write_usage_history(user_id, history)
                logger.info(
                    f"Drew weekly achievements for user {user_id}, week {week_key(week_start)}: "
                    f"{selection.achievement_ids()}"
                )
            else:
                # Logged on creation; the earlier writer's row stands
                ConcurrentDrawConflict(
                    week_start=week_key(week_start),
                    user_id=user_id,
                    operation="get_or_create_selection",
                )
                track_draw_conflict()

            await self.cache.invalidate(user_id, week_start)
            return stored

    async def force_refresh_selection(self, user_id: str, now: datetime) -> WeeklySelection:
        """Draw again for this week and overwrite the stored selection"""
        week_start = current_week_start(now)

        with track_selection("force_refresh"):
            history = await self.gateway.read_usage_history(user_id)
            selection = self._draw(user_id, week_start, now, history, trigger="force_refresh")

            stored = await self.gateway.replace_selection(selection)
            await self.gateway.write_usage_history(user_id, history)
            await self.cache.invalidate(user_id, week_start)

            logger.info(
                f"Force-refreshed weekly achievements for user {user_id}, week {week_key(week_start)}: "
                f"{stored.achievement_ids()}"
            )
            return stored

    async def read_selection(self, user_id: str, week_start: datetime) -> Optional[WeeklySelection]:
        """Cache first, then the gateway; gateway hits are written back to the cache"""
        cached = await self.cache.try_cache(user_id, week_start)
        if cached is not None:
            return cached

        stored = await self.gateway.read_selection(user_id, week_start)
        if stored is not None:
            await self.cache.store(stored)
        return stored

    async def get_available_achievements_count(self, user_id: str) -> AvailableCounts:
        """Achievements left per tier before a reset (full pool size when a reset is due)"""
        history = await self.gateway.read_usage_history(user_id)

        counts = {}
        for tier in TIERS:
            pool = self.catalog.by_difficulty(tier)
            remaining = len(self._unused(pool, history.used(tier)))
            counts[tier.value] = remaining if remaining > 0 else len(pool)

        return AvailableCounts(**counts, total=sum(counts.values()))

    async def get_achievement_usage_stats(self, user_id: str) -> UsageStats:
        history = await self.gateway.read_usage_history(user_id)

        total_used = 0
        needs_reset = False
        for tier in TIERS:
            pool = self.catalog.by_difficulty(tier)
            used_in_pool = {d.id for d in pool} & set(history.used(tier))
            total_used += len(used_in_pool)
            if pool and len(used_in_pool) == len(pool):
                needs_reset = True

        total_available = len(self.catalog)
        usage_percentage = round(total_used / total_available * 100, 2) if total_available else 0.0

        return UsageStats(
            total_used=total_used,
            total_available=total_available,
            usage_percentage=usage_percentage,
            needs_reset=needs_reset,
        )

    async def can_create_next_week_selection(self, user_id: str) -> bool:
        """True when every tier still has unused achievements (no reset needed)"""
        history = await self.gateway.read_usage_history(user_id)
        return all(
            self._unused(self.catalog.by_difficulty(tier), history.used(tier))
            for tier in TIERS
        )

    def _draw(
        self,
        user_id: str,
        week_start: datetime,
        now: datetime,
        history: UsageHistory,
        trigger: str,
    ) -> WeeklySelection:
        """Pick one achievement per tier, recording picks (and resets) in `history`"""
        picks: dict[str, Optional[AchievementDefinition]] = {}

        for tier in TIERS:
            try:
                picks[tier.value] = self._draw_tier(user_id, week_start, tier, history)
            except CatalogEmptyError:
                picks[tier.value] = None
                continue
            track_selection_draw(tier.value, trigger)

        return WeeklySelection(
            user_id=user_id,
            week_start=week_start,
            week_end=week_end(week_start),
            selected_at=now,
            **picks,
        )

    def _draw_tier(
        self,
        user_id: str,
        week_start: datetime,
        tier: Difficulty,
        history: UsageHistory,
    ) -> AchievementDefinition:
        pool = self.catalog.by_difficulty(tier)
        if not pool:
            raise CatalogEmptyError(tier=tier.value, user_id=user_id, operation="draw")

        available = self._unused(pool, history.used(tier))
        if not available:
            logger.info(f"All {tier.value} achievements used by user {user_id}; resetting pool")
            history.reset(tier)
            track_pool_reset(tier.value)
            available = list(pool)

        pick = self.chooser(available, user_id, week_start, tier)
        history.record(tier, pick.id)
        return pick

    @staticmethod
    def _unused(pool: Sequence[AchievementDefinition], used: Sequence[str]) -> list[AchievementDefinition]:
        used_ids = set(used)
        return [d for d in pool if d.id not in used_ids]
