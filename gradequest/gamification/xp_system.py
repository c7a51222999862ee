"""
XP and Spendable Points

Spendable points = progress-weighted achievement points
                 + weekly grades XP (all tracked weeks)
                 + profile ledger points (signed: wagers, winnings, streak rewards)

clamped to >= 0 on output.

Weekly grades XP curve (average grade -> XP, max 300 per week):
    100 -> 300, 95 -> 285, 90 -> 270, 85 -> 253, 80 -> 235, 75 -> 216,
    70 -> 196, 65 -> 175, 60 -> 153, 50 -> 125, 40 -> 95, 30 -> 67,
    20 -> 42, 10 -> 19, 0 -> 0
Grades between reference points are interpolated linearly.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional

from gradequest.config import WEEKLY_GRADES_WEEKS_BACK
from gradequest.db.gateway import PersistenceGateway
from gradequest.exceptions import ValidationError
from gradequest.gamification.week_clock import (
    local_now,
    parse_week_key,
    week_end,
    week_key,
    weeks_between,
)
from gradequest.models.achievement import AchievementProgress
from gradequest.models.metrics import GradeSnapshot
from gradequest.models.xp import WagerFailure, WagerResult, WeeklyGradesXp, WeeklyGradesXpSummary
from gradequest.monitoring.prometheus_metrics import track_wager
from gradequest.utils.locks import KeyedLocks
from gradequest.utils.rounding import round_half_up

logger = logging.getLogger(__name__)

MAX_WEEKLY_GRADE_XP = 300

GRADE_XP_CURVE: tuple[tuple[int, int], ...] = (
    (0, 0),
    (10, 19),
    (20, 42),
    (30, 67),
    (40, 95),
    (50, 125),
    (60, 153),
    (65, 175),
    (70, 196),
    (75, 216),
    (80, 235),
    (85, 253),
    (90, 270),
    (95, 285),
    (100, 300),
)


def weekly_grade_xp(average_grade: float) -> int:
    """
    XP for one week's average grade

    Returns:
        0 for grades <= 0, 300 for grades >= 100, the interpolated curve otherwise
    """
    if average_grade <= 0:
        return 0
    if average_grade >= 100:
        return MAX_WEEKLY_GRADE_XP

    for (low_grade, low_xp), (high_grade, high_xp) in zip(GRADE_XP_CURVE, GRADE_XP_CURVE[1:]):
        if low_grade <= average_grade <= high_grade:
            fraction = (average_grade - low_grade) / (high_grade - low_grade)
            return round_half_up(low_xp + fraction * (high_xp - low_xp))

    return 0


def achievement_points(progress: int, points: int) -> int:
    """Points earned at a progress percentage (50 points at 40% -> 20)"""
    return round_half_up(progress * points / 100)


def total_achievement_points(achievements: Iterable[AchievementProgress]) -> int:
    """Sum of progress-weighted points, rounded per achievement"""
    return sum(achievement_points(a.progress, a.points) for a in achievements)


def weekly_grades_from_snapshots(
    snapshots: Iterable[GradeSnapshot],
    now: datetime,
    weeks_back: int = WEEKLY_GRADES_WEEKS_BACK,
) -> list[WeeklyGradesXp]:
    """
    Group grade snapshots by calendar week and score each week

    Only the `weeks_back` most recent weeks (current week included) count.
    Newest week first.
    """
    grades_by_week: dict[str, list[float]] = defaultdict(list)
    for snapshot in snapshots:
        age = weeks_between(snapshot.recorded_at, now)
        if 0 <= age < weeks_back:
            grades_by_week[week_key(snapshot.recorded_at)].append(snapshot.grade)

    weeks = []
    for key in sorted(grades_by_week, reverse=True):
        grades = grades_by_week[key]
        average = sum(grades) / len(grades)
        start = parse_week_key(key)
        weeks.append(WeeklyGradesXp(
            week_start=start,
            week_end=week_end(start),
            average_grade=round(average, 2),
            xp_earned=weekly_grade_xp(average),
            courses_count=len(grades),
        ))
    return weeks


class XpAggregator:
    """
    Merges XP sources into spendable points and guards the wager ledger

    Check-and-deduct runs under a per-user lock so concurrent wagers cannot
    both pass the balance check.
    """

    def __init__(self, gateway: PersistenceGateway, weeks_back: int = WEEKLY_GRADES_WEEKS_BACK):
        self.gateway = gateway
        self.weeks_back = weeks_back
        self._locks = KeyedLocks()

    async def weekly_grades_xp(self, user_id: str, now: Optional[datetime] = None) -> WeeklyGradesXpSummary:
        now = now or local_now()
        snapshots = await self.gateway.read_grade_snapshots(user_id)
        return WeeklyGradesXpSummary(weeks=weekly_grades_from_snapshots(snapshots, now, self.weeks_back))

    async def available_points(self, user_id: str, now: Optional[datetime] = None) -> int:
        progress = await self.gateway.read_achievement_progress(user_id)
        grades = await self.weekly_grades_xp(user_id, now)
        ledger = await self.gateway.read_profile_ledger_points(user_id)

        achievement_total = total_achievement_points(progress)
        total = achievement_total + grades.total_xp + ledger

        logger.debug(
            f"Points for user {user_id}: achievements={achievement_total}, "
            f"grades_xp={grades.total_xp}, ledger={ledger}"
        )
        return max(0, total)

    async def deduct_for_wager(self, user_id: str, amount: int, now: Optional[datetime] = None) -> WagerResult:
        """
        Deduct a wager from the ledger if the user can afford it

        Failed wagers leave the ledger untouched.
        """
        if amount <= 0:
            logger.warning(f"Rejected wager of {amount} for user {user_id}: invalid amount")
            track_wager(WagerFailure.INVALID_AMOUNT.value)
            return WagerResult(ok=False, reason=WagerFailure.INVALID_AMOUNT)

        async with self._locks(user_id):
            available = await self.available_points(user_id, now)
            if amount > available:
                logger.info(f"Rejected wager of {amount} for user {user_id}: only {available} available")
                track_wager(WagerFailure.INSUFFICIENT_POINTS.value)
                return WagerResult(
                    ok=False,
                    reason=WagerFailure.INSUFFICIENT_POINTS,
                    remaining_points=available,
                )

            await self.gateway.adjust_profile_ledger_points(user_id, -amount)

        logger.info(f"Deducted wager of {amount} for user {user_id}")
        track_wager("ok")
        return WagerResult(ok=True, remaining_points=available - amount)

    async def award_winnings(self, user_id: str, amount: int) -> int:
        """Credit winnings to the ledger; returns the new ledger balance"""
        if amount < 0:
            raise ValidationError(
                message="Winnings must not be negative",
                field="amount",
                value=amount,
                user_id=user_id,
                operation="award_winnings",
            )

        async with self._locks(user_id):
            balance = await self.gateway.adjust_profile_ledger_points(user_id, amount)

        logger.info(f"Awarded {amount} points to user {user_id}")
        return balance

    async def credit_points(self, user_id: str, amount: int, reason: str) -> int:
        """Credit non-wager rewards (streak bonuses) to the ledger"""
        async with self._locks(user_id):
            balance = await self.gateway.adjust_profile_ledger_points(user_id, amount)

        logger.info(f"Credited {amount} points to user {user_id}: {reason}")
        return balance
