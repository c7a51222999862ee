"""
WeeklyAchievementService - Weekly Achievement Business Logic

Caller-facing facade over the selector, progress evaluator, XP aggregator and
streak tracker. Every operation is keyed by user id; the current time comes
from the injected clock.
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Callable, Optional

from gradequest.config import METRICS_FETCH_TIMEOUT
from gradequest.db.gateway import PersistenceGateway
from gradequest.exceptions import MetricsUnavailableError
from gradequest.gamification.catalog import STANDING_ACHIEVEMENTS, AchievementCatalog
from gradequest.gamification.progress_evaluator import ProgressEvaluator
from gradequest.gamification.streak_system import StreakTracker
from gradequest.gamification.week_clock import current_week_start, is_new_week, local_now, week_key
from gradequest.gamification.weekly_selector import WeeklySelector
from gradequest.gamification.xp_system import XpAggregator
from gradequest.models.achievement import (
    TIERS,
    AchievementDefinition,
    AchievementProgress,
    AvailableCounts,
    ProgressRecord,
    UsageStats,
    WeeklyProgress,
    WeeklySelection,
)
from gradequest.models.metrics import MetricsBundle
from gradequest.models.xp import StreakReward, StreakStats, StreakType, WagerResult, WeeklyGradesXpSummary

logger = logging.getLogger(__name__)


class WeeklyAchievementService:
    """
    Service for weekly achievements and spendable points.

    Responsibilities:
    - Weekly selection (get-or-create, force refresh, usage stats)
    - Live progress for the current week's achievements
    - Standing achievement progress sync
    - Spendable points and wager ledger
    - Login and weekly-completion streaks
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        selector: WeeklySelector,
        evaluator: Optional[ProgressEvaluator] = None,
        aggregator: Optional[XpAggregator] = None,
        standing_catalog: AchievementCatalog = STANDING_ACHIEVEMENTS,
        clock: Callable[[], datetime] = local_now,
        metrics_timeout: float = METRICS_FETCH_TIMEOUT,
    ):
        """
        Initialize WeeklyAchievementService.

        Args:
            gateway: Persistence gateway
            selector: Weekly selector (owns the draw and usage history)
            evaluator: Progress evaluator
            aggregator: XP aggregator (owns the points ledger)
            standing_catalog: Permanent achievements synced into progress rows
            clock: Source of the current local time
            metrics_timeout: Seconds before a metrics fetch is abandoned
        """
        self.gateway = gateway
        self.selector = selector
        self.evaluator = evaluator or ProgressEvaluator()
        self.aggregator = aggregator or XpAggregator(gateway)
        self.streaks = StreakTracker(gateway, self.aggregator)
        self.standing_catalog = standing_catalog
        self.clock = clock
        self.metrics_timeout = metrics_timeout
        logger.debug("WeeklyAchievementService initialized")

    # ==========================================
    # Selection
    # ==========================================

    async def get_or_create_selection(self, user_id: str) -> WeeklySelection:
        return await self.selector.get_or_create_selection(user_id, self.clock())

    async def force_refresh_selection(self, user_id: str) -> WeeklySelection:
        return await self.selector.force_refresh_selection(user_id, self.clock())

    async def get_available_achievements_count(self, user_id: str) -> AvailableCounts:
        return await self.selector.get_available_achievements_count(user_id)

    async def get_achievement_usage_stats(self, user_id: str) -> UsageStats:
        return await self.selector.get_achievement_usage_stats(user_id)

    async def check_new_week(self, user_id: str) -> bool:
        """
        Detect a week transition for the user and persist the new week marker

        Returns:
            True on the first call of a new week (or when no marker is stored yet)
        """
        now = self.clock()
        marker = await self.gateway.read_week_marker(user_id)

        if not is_new_week(marker, now):
            return False

        await self.gateway.write_week_marker(user_id, week_key(now))
        logger.info(f"New week {week_key(now)} for user {user_id} (previous marker: {marker})")
        return True

    # ==========================================
    # Progress
    # ==========================================

    async def get_current_week_progress(self, user_id: str) -> WeeklyProgress:
        """
        Live progress for this week's three achievements

        Unavailable metrics degrade the affected records to 0 instead of failing.
        """
        now = self.clock()
        selection = await self.selector.get_or_create_selection(user_id, now)
        metrics = await self._fetch_metrics(user_id, now)

        achievements = [a for a in (selection.for_tier(tier) for tier in TIERS) if a is not None]
        records = {r.achievement_id: r for r in self.evaluator.evaluate_many(achievements, metrics)}

        await self._store_unlocked_weekly(user_id, achievements, records)

        progress = {
            tier.value: records.get(achievement.id) if achievement else None
            for tier, achievement in ((t, selection.for_tier(t)) for t in TIERS)
        }
        return WeeklyProgress(selection=selection, **progress)

    async def _store_unlocked_weekly(
        self,
        user_id: str,
        achievements: list[AchievementDefinition],
        records: dict[str, ProgressRecord],
    ) -> None:
        """
        Persist newly unlocked weekly achievements as progress rows

        A row is written once per achievement id; rows that already exist
        (including from an earlier week's draw of the same achievement) are kept.
        """
        rows = [
            AchievementProgress(
                achievement_id=achievement.id,
                title=achievement.title,
                points=achievement.points,
                progress=100,
                unlocked=True,
            )
            for achievement in achievements
            if records[achievement.id].unlocked and not records[achievement.id].degraded
        ]
        if not rows:
            return

        stored = await self.gateway.add_achievement_progress_if_absent(user_id, rows)
        for row in stored:
            logger.info(f"User {user_id} unlocked weekly achievement '{row.title}' (+{row.points})")

    async def refresh_standing_achievements(self, user_id: str) -> list[AchievementProgress]:
        """
        Evaluate standing achievements and persist their progress rows

        Degraded records are not written so a metrics outage never erases
        previously stored progress.
        """
        metrics = await self._fetch_metrics(user_id, self.clock())
        records = self.evaluator.evaluate_many(self.standing_catalog.all(), metrics)

        rows = []
        for record in records:
            if record.degraded:
                continue
            achievement = self.standing_catalog.get(record.achievement_id)
            rows.append(AchievementProgress(
                achievement_id=achievement.id,
                title=achievement.title,
                points=achievement.points,
                progress=record.progress,
                unlocked=record.unlocked,
            ))

        await self.gateway.write_achievement_progress(user_id, rows)
        logger.info(
            f"Refreshed {len(rows)} standing achievements for user {user_id} "
            f"({sum(1 for r in rows if r.unlocked)} unlocked)"
        )
        return rows

    async def _fetch_metrics(self, user_id: str, now: datetime) -> MetricsBundle:
        try:
            return await asyncio.wait_for(
                self.gateway.read_metrics_snapshot(user_id, current_week_start(now)),
                timeout=self.metrics_timeout,
            )
        except asyncio.TimeoutError as e:
            # Logged on creation
            MetricsUnavailableError(
                message=f"Metrics fetch timed out after {self.metrics_timeout}s",
                user_id=user_id,
                operation="read_metrics_snapshot",
                cause=e,
            )
            return MetricsBundle.unavailable()

    # ==========================================
    # Points
    # ==========================================

    async def get_available_points(self, user_id: str) -> int:
        return await self.aggregator.available_points(user_id, self.clock())

    async def get_weekly_grades_xp(self, user_id: str) -> WeeklyGradesXpSummary:
        return await self.aggregator.weekly_grades_xp(user_id, self.clock())

    async def deduct_for_wager(self, user_id: str, amount: int) -> WagerResult:
        return await self.aggregator.deduct_for_wager(user_id, amount, self.clock())

    async def award_winnings(self, user_id: str, amount: int) -> int:
        return await self.aggregator.award_winnings(user_id, amount)

    # ==========================================
    # Streaks
    # ==========================================

    async def record_daily_login(self, user_id: str, today: Optional[date] = None) -> Optional[StreakReward]:
        return await self.streaks.record_daily_login(user_id, today or self.clock().date())

    async def record_weekly_completion(self, user_id: str, today: Optional[date] = None) -> Optional[StreakReward]:
        return await self.streaks.record_weekly_completion(user_id, today or self.clock().date())

    async def get_streak_stats(self, user_id: str) -> dict[StreakType, StreakStats]:
        return await self.streaks.get_streak_stats(user_id)
