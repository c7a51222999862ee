"""XP, wager and streak models"""
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class WeeklyGradesXp(BaseModel):
    """XP derived from one week's average course grade"""
    week_start: datetime
    week_end: datetime
    average_grade: float
    xp_earned: int = Field(ge=0, le=300)
    courses_count: int


class WeeklyGradesXpSummary(BaseModel):
    weeks: list[WeeklyGradesXp] = Field(default_factory=list)

    @property
    def total_xp(self) -> int:
        return sum(week.xp_earned for week in self.weeks)


class WagerFailure(str, Enum):
    INVALID_AMOUNT = "invalid_amount"
    INSUFFICIENT_POINTS = "insufficient_points"


class WagerResult(BaseModel):
    ok: bool
    reason: Optional[WagerFailure] = None
    remaining_points: int = 0


class StreakType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


class StreakState(BaseModel):
    """Persisted streak counters for one user and streak type"""
    streak_type: StreakType
    current_streak: int = 0
    best_streak: int = 0
    last_activity_date: Optional[date] = None


class StreakReward(BaseModel):
    streak_type: StreakType
    current_streak: int
    points: int
    milestone_reached: Optional[int] = None
    achievements_unlocked: list[str] = Field(default_factory=list)


class StreakStats(BaseModel):
    streak_type: StreakType
    current_streak: int
    best_streak: int
    multiplier: float
    next_milestone: Optional[int] = None
    next_milestone_reward: Optional[int] = None
