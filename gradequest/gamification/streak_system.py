"""
Login and Weekly-Completion Streaks

Daily streak (consecutive login days):
- Multiplier: 1 + floor(streak / 7) * 0.2, capped at 4.0
- Points: min(floor(5 * multiplier), 50) + milestone bonus
- Milestones: 1: 5, 3: 10, 7: 20, 14: 35, 30: 75, 60: 150, 100: 300

Weekly streak (consecutive weeks with a completion):
- Multiplier: 1 + floor(streak / 4) * 0.3, capped at 3.0
- Points: min(floor(100 * multiplier), 500) + milestone bonus
- Milestones: 1: 25, 2: 50, 4: 100, 8: 200, 12: 400, 26: 800, 52: 1500

The milestone bonus is the reward of the highest milestone reached, so it
keeps paying out after the milestone day. A first activity or a broken streak
restarts at 1 and earns only milestone_bonus(1).

Separately, each streak milestone in STREAK_ACHIEVEMENTS unlocks a one-off
achievement row the first time the streak reaches it. A broken streak never
revokes those rows.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from gradequest.db.gateway import PersistenceGateway
from gradequest.gamification.week_clock import weeks_between
from gradequest.gamification.xp_system import XpAggregator
from gradequest.models.achievement import AchievementProgress
from gradequest.models.xp import StreakReward, StreakState, StreakStats, StreakType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakCurve:
    base_points: int
    max_points: int
    multiplier_interval: int
    multiplier_step: float
    max_multiplier: float
    milestones: dict[int, int]


DAILY_CURVE = StreakCurve(
    base_points=5,
    max_points=50,
    multiplier_interval=7,
    multiplier_step=0.2,
    max_multiplier=4.0,
    milestones={1: 5, 3: 10, 7: 20, 14: 35, 30: 75, 60: 150, 100: 300},
)

WEEKLY_CURVE = StreakCurve(
    base_points=100,
    max_points=500,
    multiplier_interval=4,
    multiplier_step=0.3,
    max_multiplier=3.0,
    milestones={1: 25, 2: 50, 4: 100, 8: 200, 12: 400, 26: 800, 52: 1500},
)

CURVES = {StreakType.DAILY: DAILY_CURVE, StreakType.WEEKLY: WEEKLY_CURVE}


@dataclass(frozen=True)
class StreakAchievement:
    """One-off achievement unlocked when a streak first reaches `milestone`"""
    title: str
    streak_type: StreakType
    milestone: int
    points: int

    @property
    def id(self) -> str:
        return f"streak-{self.streak_type.value}-{self.milestone}"

    def to_progress(self) -> AchievementProgress:
        return AchievementProgress(
            achievement_id=self.id,
            title=self.title,
            points=self.points,
            progress=100,
            unlocked=True,
        )


STREAK_ACHIEVEMENTS: tuple[StreakAchievement, ...] = (
    StreakAchievement("First Steps", StreakType.DAILY, 1, 10),
    StreakAchievement("Three Day Warrior", StreakType.DAILY, 3, 15),
    StreakAchievement("Week Warrior", StreakType.DAILY, 7, 25),
    StreakAchievement("Fortnight Fighter", StreakType.DAILY, 14, 50),
    StreakAchievement("Monthly Master", StreakType.DAILY, 30, 100),
    StreakAchievement("Two Month Titan", StreakType.DAILY, 60, 200),
    StreakAchievement("Century Club", StreakType.DAILY, 100, 500),
    StreakAchievement("Weekly Wonder", StreakType.WEEKLY, 1, 50),
    StreakAchievement("Two Week Titan", StreakType.WEEKLY, 2, 75),
    StreakAchievement("Monthly Marvel", StreakType.WEEKLY, 4, 150),
    StreakAchievement("Two Month Master", StreakType.WEEKLY, 8, 300),
    StreakAchievement("Quarterly Queen", StreakType.WEEKLY, 12, 500),
    StreakAchievement("Half Year Hero", StreakType.WEEKLY, 26, 1000),
    StreakAchievement("Yearly Legend", StreakType.WEEKLY, 52, 2000),
)


def streak_achievements_reached(streak_type: StreakType, streak: int) -> list[StreakAchievement]:
    return [a for a in STREAK_ACHIEVEMENTS if a.streak_type == streak_type and a.milestone <= streak]


def multiplier(streak: int, curve: StreakCurve) -> float:
    steps = max(streak, 0) // curve.multiplier_interval
    return min(1 + steps * curve.multiplier_step, curve.max_multiplier)


def milestone_reached(streak: int, curve: StreakCurve) -> Optional[int]:
    """Highest milestone at or below `streak`"""
    reached = [m for m in curve.milestones if m <= streak]
    return max(reached) if reached else None


def milestone_bonus(streak: int, curve: StreakCurve) -> int:
    milestone = milestone_reached(streak, curve)
    return curve.milestones[milestone] if milestone is not None else 0


def next_milestone(streak: int, curve: StreakCurve) -> Optional[int]:
    upcoming = [m for m in curve.milestones if m > streak]
    return min(upcoming) if upcoming else None


def streak_points(streak: int, curve: StreakCurve) -> int:
    # round() absorbs float error such as 5 * 1.6000000000000001
    base = min(math.floor(round(curve.base_points * multiplier(streak, curve), 6)), curve.max_points)
    return base + milestone_bonus(streak, curve)


def daily_multiplier(streak: int) -> float:
    return multiplier(streak, DAILY_CURVE)


def weekly_multiplier(streak: int) -> float:
    return multiplier(streak, WEEKLY_CURVE)


def daily_points(streak: int) -> int:
    return streak_points(streak, DAILY_CURVE)


def weekly_points(streak: int) -> int:
    return streak_points(streak, WEEKLY_CURVE)


def current_week_start_date(day: date) -> date:
    return day - timedelta(days=day.weekday())


def _periods_elapsed(streak_type: StreakType, last: date, today: date) -> int:
    if streak_type == StreakType.DAILY:
        return (today - last).days
    return weeks_between(last, today)


class StreakTracker:
    """Advances persisted streaks and credits rewards to the points ledger"""

    def __init__(self, gateway: PersistenceGateway, aggregator: XpAggregator):
        self.gateway = gateway
        self.aggregator = aggregator

    async def record_daily_login(self, user_id: str, today: date) -> Optional[StreakReward]:
        return await self._record(user_id, StreakType.DAILY, today)

    async def record_weekly_completion(self, user_id: str, today: date) -> Optional[StreakReward]:
        return await self._record(user_id, StreakType.WEEKLY, today)

    async def _record(self, user_id: str, streak_type: StreakType, today: date) -> Optional[StreakReward]:
        """
        Advance one streak

        Returns:
            The reward credited, or None when the period was already counted
        """
        curve = CURVES[streak_type]
        state = await self.gateway.read_streak_state(user_id, streak_type)
        last = state.last_activity_date

        elapsed = None if last is None else _periods_elapsed(streak_type, last, today)

        if elapsed is not None and elapsed <= 0:
            # Already counted this period (or the clock went backwards)
            return None

        if elapsed == 1:
            streak = state.current_streak + 1
            points = streak_points(streak, curve)
        else:
            if last is not None:
                logger.info(
                    f"User {user_id} {streak_type.value} streak broken. "
                    f"Was {state.current_streak}, gap was {elapsed} period(s)"
                )
            streak = 1
            points = milestone_bonus(1, curve)

        if streak_type == StreakType.WEEKLY:
            today = current_week_start_date(today)

        updated = StreakState(
            streak_type=streak_type,
            current_streak=streak,
            best_streak=max(state.best_streak, streak),
            last_activity_date=today,
        )
        await self.gateway.write_streak_state(user_id, updated)

        if points > 0:
            await self.aggregator.credit_points(user_id, points, f"{streak_type.value} streak day {streak}")

        unlocked = await self._unlock_achievements(user_id, streak_type, streak)

        milestone = streak if streak in curve.milestones else None
        logger.info(f"Updated {streak_type.value} streak for user {user_id}: {streak} (+{points})")

        return StreakReward(
            streak_type=streak_type,
            current_streak=streak,
            points=points,
            milestone_reached=milestone,
            achievements_unlocked=[row.achievement_id for row in unlocked],
        )

    async def _unlock_achievements(
        self, user_id: str, streak_type: StreakType, streak: int
    ) -> list[AchievementProgress]:
        """Store every reached streak achievement the user does not have yet"""
        reached = [a.to_progress() for a in streak_achievements_reached(streak_type, streak)]
        if not reached:
            return []

        unlocked = await self.gateway.add_achievement_progress_if_absent(user_id, reached)
        for row in unlocked:
            logger.info(f"User {user_id} unlocked streak achievement '{row.title}' (+{row.points})")
        return unlocked

    async def get_streak_stats(self, user_id: str) -> dict[StreakType, StreakStats]:
        stats = {}
        for streak_type, curve in CURVES.items():
            state = await self.gateway.read_streak_state(user_id, streak_type)
            upcoming = next_milestone(state.current_streak, curve)
            stats[streak_type] = StreakStats(
                streak_type=streak_type,
                current_streak=state.current_streak,
                best_streak=state.best_streak,
                multiplier=multiplier(state.current_streak, curve),
                next_milestone=upcoming,
                next_milestone_reward=curve.milestones[upcoming] if upcoming is not None else None,
            )
        return stats
