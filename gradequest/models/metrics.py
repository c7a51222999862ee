"""Per-user metrics consumed by the progress evaluator"""
from datetime import date, datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field


class MetricsSource(str, Enum):
    """Where a metric comes from; each can fail independently"""
    CANVAS = "canvas"
    ENGAGEMENT = "engagement"
    PLATFORM = "platform"


class AssignmentRecord(BaseModel):
    """An assignment due in the current week"""
    id: str
    name: str = ""
    course_id: Optional[str] = None
    assignment_type: str = "assignment"
    completed: bool = False
    score: Optional[float] = None
    points_possible: Optional[float] = None
    due_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None

    @property
    def percentage(self) -> Optional[float]:
        """Score as a 0-100 percentage, or None when ungraded"""
        if self.score is None or not self.points_possible:
            return None
        return self.score / self.points_possible * 100


class WagerRecord(BaseModel):
    assignment_id: str
    amount: int
    placed_at: datetime


class RankEntry(BaseModel):
    """Leaderboard rank snapshot; lower position is better"""
    position: int
    recorded_at: datetime


class QuizResult(BaseModel):
    quiz_id: str
    quiz_type: Literal["ai", "regular"] = "regular"
    score: float
    max_score: float
    taken_at: datetime


class LeaderboardPosition(BaseModel):
    week_start: date
    position: int
    total_participants: int = 0


class GradeSnapshot(BaseModel):
    """Course grade observed at a point in time"""
    course_id: str
    grade: float
    recorded_at: datetime


class MetricsBundle(BaseModel):
    """
    Everything the evaluator may read for one user and week.

    Sources listed in `unavailable_sources` failed or timed out; achievements
    depending on them are degraded instead of being evaluated against defaults.
    """
    # engagement
    login_count: int = 0
    page_views: dict[str, int] = Field(default_factory=dict)
    active_days: list[date] = Field(default_factory=list)
    canvas_sync_count: int = 0
    has_profile_picture: bool = False
    prefers_dark_mode: bool = False

    # canvas
    assignment_complete_count: int = 0
    perfect_grade_count: int = 0
    course_grades: dict[str, float] = Field(default_factory=dict)
    weekly_assignments: list[AssignmentRecord] = Field(default_factory=list)

    # platform
    wagers: list[WagerRecord] = Field(default_factory=list)
    rank_history: list[RankEntry] = Field(default_factory=list)
    quiz_results: list[QuizResult] = Field(default_factory=list)
    leaderboard_positions: list[LeaderboardPosition] = Field(default_factory=list)

    unavailable_sources: set[MetricsSource] = Field(default_factory=set)

    @classmethod
    def unavailable(cls, *sources: MetricsSource) -> "MetricsBundle":
        """Empty bundle with the given sources (all when none given) marked unavailable"""
        return cls(unavailable_sources=set(sources or MetricsSource))

    def is_available(self, source: MetricsSource) -> bool:
        return source not in self.unavailable_sources
