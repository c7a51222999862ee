"""Achievement models for gamification"""
import logging
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from gradequest.models.metrics import MetricsSource

logger = logging.getLogger(__name__)


class AchievementCategory(str, Enum):
    """Achievement categories"""
    PERFORMANCE = "performance"
    TIMING = "timing"
    ENGAGEMENT = "engagement"
    VARIETY = "variety"
    IMPROVEMENT = "improvement"
    STREAK = "streak"
    THRESHOLD = "threshold"


class Difficulty(str, Enum):
    """Difficulty tiers, one weekly pick per tier"""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


TIERS: tuple[Difficulty, ...] = (Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD)


# ==========================================
# Requirement descriptors
# ==========================================

class _Requirement(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: ClassVar[MetricsSource] = MetricsSource.ENGAGEMENT


class LoginCountRequirement(_Requirement):
    type: Literal["login_count"] = "login_count"
    count: int


class PageViewRequirement(_Requirement):
    type: Literal["page_view"] = "page_view"
    page: str


class UniquePageViewsRequirement(_Requirement):
    type: Literal["unique_page_views"] = "unique_page_views"
    count: int


class AppUsageRequirement(_Requirement):
    """Distinct days the app was used"""
    type: Literal["app_usage"] = "app_usage"
    count: int


class CanvasSyncRequirement(_Requirement):
    type: Literal["canvas_sync"] = "canvas_sync"
    count: int = 1


class ProfilePictureRequirement(_Requirement):
    type: Literal["profile_picture"] = "profile_picture"


class DarkModeRequirement(_Requirement):
    type: Literal["dark_mode"] = "dark_mode"


class AssignmentCompleteRequirement(_Requirement):
    source: ClassVar[MetricsSource] = MetricsSource.CANVAS
    type: Literal["assignment_complete"] = "assignment_complete"
    count: int


class PerfectGradeRequirement(_Requirement):
    source: ClassVar[MetricsSource] = MetricsSource.CANVAS
    type: Literal["perfect_grade"] = "perfect_grade"
    count: int


class CourseGradeAboveRequirement(_Requirement):
    source: ClassVar[MetricsSource] = MetricsSource.CANVAS
    type: Literal["course_grade_above"] = "course_grade_above"
    threshold: float
    count: int = 1


class GamblingOccurredRequirement(_Requirement):
    source: ClassVar[MetricsSource] = MetricsSource.PLATFORM
    type: Literal["gambling_occurred"] = "gambling_occurred"


class RankImprovedRequirement(_Requirement):
    source: ClassVar[MetricsSource] = MetricsSource.PLATFORM
    type: Literal["rank_improved"] = "rank_improved"


class AiQuizPerfectRequirement(_Requirement):
    source: ClassVar[MetricsSource] = MetricsSource.PLATFORM
    type: Literal["ai_quiz_perfect"] = "ai_quiz_perfect"


class LeaderboardFirstRequirement(_Requirement):
    source: ClassVar[MetricsSource] = MetricsSource.PLATFORM
    type: Literal["leaderboard_first"] = "leaderboard_first"


class AssignmentsCompletedCountRequirement(_Requirement):
    """Assignments completed within the current week"""
    source: ClassVar[MetricsSource] = MetricsSource.CANVAS
    type: Literal["assignments_completed_count"] = "assignments_completed_count"
    count: int


class OnTimeRateRequirement(_Requirement):
    """Share of submissions at least `hours_early` before the due date"""
    source: ClassVar[MetricsSource] = MetricsSource.CANVAS
    type: Literal["on_time_rate"] = "on_time_rate"
    percentage: float = 100.0
    hours_early: float = 0.0


class GradeAverageThresholdRequirement(_Requirement):
    """
    Weekly grade threshold.

    scope="average" compares the average over graded assignments,
    scope="any" compares the best single graded assignment.
    `assignment_types` restricts the assignments considered (empty = all).
    """
    source: ClassVar[MetricsSource] = MetricsSource.CANVAS
    type: Literal["grade_average_threshold"] = "grade_average_threshold"
    threshold: float
    scope: Literal["average", "any"] = "average"
    assignment_types: tuple[str, ...] = ()


class UnsupportedRequirement(_Requirement):
    """Descriptor this build does not know how to evaluate (newer catalog data)"""
    type: Literal["unsupported"] = "unsupported"
    raw_type: str = ""
    raw: dict[str, Any] = Field(default_factory=dict)


Requirement = Annotated[
    Union[
        LoginCountRequirement,
        PageViewRequirement,
        UniquePageViewsRequirement,
        AppUsageRequirement,
        CanvasSyncRequirement,
        ProfilePictureRequirement,
        DarkModeRequirement,
        AssignmentCompleteRequirement,
        PerfectGradeRequirement,
        CourseGradeAboveRequirement,
        GamblingOccurredRequirement,
        RankImprovedRequirement,
        AiQuizPerfectRequirement,
        LeaderboardFirstRequirement,
        AssignmentsCompletedCountRequirement,
        OnTimeRateRequirement,
        GradeAverageThresholdRequirement,
        UnsupportedRequirement,
    ],
    Field(discriminator="type"),
]

_requirement_adapter: TypeAdapter = TypeAdapter(Requirement)


def parse_requirement(data: Any) -> Requirement:
    """
    Parse a stored requirement descriptor.

    Unknown or malformed descriptors become UnsupportedRequirement instead of raising,
    since stored catalog rows may be newer than this build.
    """
    if isinstance(data, _Requirement):
        return data

    try:
        return _requirement_adapter.validate_python(data)
    except PydanticValidationError as e:
        raw = dict(data) if isinstance(data, dict) else {"value": data}
        raw_type = str(raw.get("type", ""))
        logger.warning(f"Unsupported achievement requirement '{raw_type}': {e.error_count()} validation error(s)")
        return UnsupportedRequirement(raw_type=raw_type, raw=raw)


# ==========================================
# Catalog entries and per-user records
# ==========================================

class AchievementDefinition(BaseModel):
    """Immutable catalog entry"""
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    category: AchievementCategory
    difficulty: Difficulty
    points: int = Field(gt=0)
    icon: str
    requirements: Requirement

    @field_validator("requirements", mode="before")
    @classmethod
    def _parse_requirements(cls, value: Any) -> Any:
        return parse_requirement(value)


class WeeklySelection(BaseModel):
    """
    One achievement per tier for a user's calendar week

    `draw_id` identifies the draw that produced the row, so a writer can tell
    whether its own draw won a conditional insert.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    week_start: datetime
    week_end: datetime
    easy: Optional[AchievementDefinition] = None
    medium: Optional[AchievementDefinition] = None
    hard: Optional[AchievementDefinition] = None
    selected_at: datetime
    draw_id: str = Field(default_factory=lambda: uuid4().hex)

    def for_tier(self, tier: Difficulty) -> Optional[AchievementDefinition]:
        return getattr(self, Difficulty(tier).value)

    def achievement_ids(self) -> dict[Difficulty, Optional[str]]:
        return {
            tier: (achievement.id if achievement else None)
            for tier, achievement in ((t, self.for_tier(t)) for t in TIERS)
        }

    @property
    def missing_tiers(self) -> list[Difficulty]:
        """Tiers left empty because their catalog had no definitions"""
        return [tier for tier in TIERS if self.for_tier(tier) is None]

    @property
    def is_degraded(self) -> bool:
        return bool(self.missing_tiers)


class UsageHistory(BaseModel):
    """Per-tier ids drawn since the tier's last pool reset, in selection order"""
    easy: list[str] = Field(default_factory=list)
    medium: list[str] = Field(default_factory=list)
    hard: list[str] = Field(default_factory=list)

    def used(self, tier: Difficulty) -> list[str]:
        return getattr(self, Difficulty(tier).value)

    def record(self, tier: Difficulty, achievement_id: str) -> None:
        self.used(tier).append(achievement_id)

    def reset(self, tier: Difficulty) -> None:
        setattr(self, Difficulty(tier).value, [])


class ProgressRecord(BaseModel):
    """Live progress of one achievement for one user"""
    achievement_id: str
    progress: int = Field(ge=0, le=100)
    unlocked: bool
    degraded: bool = False

    @classmethod
    def from_progress(cls, achievement_id: str, progress: int, degraded: bool = False) -> "ProgressRecord":
        return cls(
            achievement_id=achievement_id,
            progress=progress,
            unlocked=progress >= 100,
            degraded=degraded,
        )


class AchievementProgress(BaseModel):
    """Persisted progress row (standing, weekly or streak achievement); counts toward spendable points"""
    achievement_id: str
    title: str = ""
    points: int = Field(ge=0)
    progress: int = Field(ge=0, le=100)
    unlocked: bool = False
    updated_at: Optional[datetime] = None


class WeeklyProgress(BaseModel):
    """Current week's selection with live progress per tier"""
    selection: WeeklySelection
    easy: Optional[ProgressRecord] = None
    medium: Optional[ProgressRecord] = None
    hard: Optional[ProgressRecord] = None

    def for_tier(self, tier: Difficulty) -> Optional[ProgressRecord]:
        return getattr(self, Difficulty(tier).value)

    @property
    def unlocked_count(self) -> int:
        return sum(1 for tier in TIERS if (record := self.for_tier(tier)) and record.unlocked)


class AvailableCounts(BaseModel):
    easy: int
    medium: int
    hard: int
    total: int


class UsageStats(BaseModel):
    total_used: int
    total_available: int
    usage_percentage: float
    needs_reset: bool
