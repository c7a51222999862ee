"""
Achievement Catalog

Two immutable catalogs ship with the engine:
- WEEKLY_ACHIEVEMENTS: the weekly rotation pool (one pick per tier per week)
- STANDING_ACHIEVEMENTS: permanent platform achievements

Catalogs are append-only: definitions are never edited or removed once
shipped, since usage history and stored selections reference their ids.
"""

from types import MappingProxyType
from typing import Iterable, Optional
import logging

from gradequest.exceptions import ConfigurationError
from gradequest.models.achievement import (
    AchievementCategory,
    AchievementDefinition,
    AiQuizPerfectRequirement,
    AppUsageRequirement,
    AssignmentCompleteRequirement,
    AssignmentsCompletedCountRequirement,
    CanvasSyncRequirement,
    CourseGradeAboveRequirement,
    DarkModeRequirement,
    Difficulty,
    GamblingOccurredRequirement,
    GradeAverageThresholdRequirement,
    LeaderboardFirstRequirement,
    LoginCountRequirement,
    OnTimeRateRequirement,
    PageViewRequirement,
    PerfectGradeRequirement,
    ProfilePictureRequirement,
    RankImprovedRequirement,
    UniquePageViewsRequirement,
)

logger = logging.getLogger(__name__)

TEST_ASSIGNMENT_TYPES = ("test", "quiz")


class AchievementCatalog:
    """
    Read-only collection of achievement definitions

    Safe to share between requests; lookups never mutate.
    """

    def __init__(self, definitions: Iterable[AchievementDefinition], name: str = "catalog"):
        definitions = tuple(definitions)
        if not definitions:
            raise ConfigurationError(f"Achievement catalog '{name}' is empty", config_key=name)

        by_id = {}
        for definition in definitions:
            if definition.id in by_id:
                raise ConfigurationError(
                    f"Duplicate achievement id '{definition.id}' in catalog '{name}'",
                    config_key=name,
                )
            by_id[definition.id] = definition

        self.name = name
        self._definitions = definitions
        self._by_id = MappingProxyType(by_id)

    def all(self) -> tuple[AchievementDefinition, ...]:
        return self._definitions

    def get(self, achievement_id: str) -> Optional[AchievementDefinition]:
        return self._by_id.get(achievement_id)

    def by_difficulty(self, tier: Difficulty) -> tuple[AchievementDefinition, ...]:
        """Definitions of one tier, in catalog order"""
        tier = Difficulty(tier)
        return tuple(d for d in self._definitions if d.difficulty == tier)

    def by_category(self, category: AchievementCategory) -> tuple[AchievementDefinition, ...]:
        category = AchievementCategory(category)
        return tuple(d for d in self._definitions if d.category == category)

    def ids(self) -> frozenset[str]:
        return frozenset(self._by_id)

    def __contains__(self, achievement_id: object) -> bool:
        return achievement_id in self._by_id

    def __len__(self) -> int:
        return len(self._definitions)

    def __iter__(self):
        return iter(self._definitions)


# ==========================================
# Weekly rotation pool
# ==========================================

WEEKLY_ACHIEVEMENTS = AchievementCatalog(
    [
        # Easy (30 points)
        AchievementDefinition(
            id="weekly-assignment-starter",
            title="Assignment Starter",
            description="Complete 10 assignments from your classes",
            category=AchievementCategory.PERFORMANCE,
            difficulty=Difficulty.EASY,
            points=30,
            icon="📚",
            requirements=AssignmentsCompletedCountRequirement(count=10),
        ),
        AchievementDefinition(
            id="weekly-perfect-timing",
            title="Perfect Timing",
            description="Complete 100% of your assignments on time",
            category=AchievementCategory.TIMING,
            difficulty=Difficulty.EASY,
            points=30,
            icon="⏰",
            requirements=OnTimeRateRequirement(percentage=100),
        ),
        AchievementDefinition(
            id="weekly-risk-taker",
            title="Risk Taker",
            description="Gamble on a test score",
            category=AchievementCategory.ENGAGEMENT,
            difficulty=Difficulty.EASY,
            points=30,
            icon="🎲",
            requirements=GamblingOccurredRequirement(),
        ),
        AchievementDefinition(
            id="weekly-test-ace",
            title="Test Ace",
            description="Earn 90% or more on at least one test/quiz",
            category=AchievementCategory.PERFORMANCE,
            difficulty=Difficulty.EASY,
            points=30,
            icon="📊",
            requirements=GradeAverageThresholdRequirement(
                threshold=90, scope="any", assignment_types=TEST_ASSIGNMENT_TYPES
            ),
        ),
        AchievementDefinition(
            id="weekly-rank-climber",
            title="Rank Climber",
            description="Advance at least 1 place in your ranking",
            category=AchievementCategory.ENGAGEMENT,
            difficulty=Difficulty.EASY,
            points=30,
            icon="📈",
            requirements=RankImprovedRequirement(),
        ),

        # Medium (50 points)
        AchievementDefinition(
            id="weekly-assignment-master",
            title="Assignment Master",
            description="Complete 15 assignments from your classes",
            category=AchievementCategory.PERFORMANCE,
            difficulty=Difficulty.MEDIUM,
            points=50,
            icon="📝",
            requirements=AssignmentsCompletedCountRequirement(count=15),
        ),
        AchievementDefinition(
            id="weekly-early-bird",
            title="Early Bird",
            description="Finish all your homework a day early",
            category=AchievementCategory.TIMING,
            difficulty=Difficulty.MEDIUM,
            points=50,
            icon="🚀",
            requirements=OnTimeRateRequirement(percentage=100, hours_early=24),
        ),
        AchievementDefinition(
            id="weekly-excellence-week",
            title="Excellence Week",
            description="Earn 90+% on all graded assignments this week",
            category=AchievementCategory.PERFORMANCE,
            difficulty=Difficulty.MEDIUM,
            points=50,
            icon="⭐",
            requirements=GradeAverageThresholdRequirement(threshold=90),
        ),
        AchievementDefinition(
            id="weekly-ai-quiz-champion",
            title="AI Quiz Champion",
            description="Get 100% on an AI quiz",
            category=AchievementCategory.PERFORMANCE,
            difficulty=Difficulty.MEDIUM,
            points=50,
            icon="🤖",
            requirements=AiQuizPerfectRequirement(),
        ),

        # Hard (100 points)
        AchievementDefinition(
            id="weekly-perfect-week",
            title="Perfect Week",
            description="Earn 100% on all graded assignments",
            category=AchievementCategory.PERFORMANCE,
            difficulty=Difficulty.HARD,
            points=100,
            icon="💯",
            requirements=GradeAverageThresholdRequirement(threshold=100),
        ),
        AchievementDefinition(
            id="weekly-leaderboard-champion",
            title="Leaderboard Champion",
            description="Get 1st place in your leaderboard",
            category=AchievementCategory.ENGAGEMENT,
            difficulty=Difficulty.HARD,
            points=100,
            icon="🏆",
            requirements=LeaderboardFirstRequirement(),
        ),
        AchievementDefinition(
            id="weekly-perfect-test",
            title="Perfect Test",
            description="Earn 100% on one test/quiz",
            category=AchievementCategory.PERFORMANCE,
            difficulty=Difficulty.HARD,
            points=100,
            icon="📊",
            requirements=GradeAverageThresholdRequirement(
                threshold=100, scope="any", assignment_types=TEST_ASSIGNMENT_TYPES
            ),
        ),
    ],
    name="weekly",
)


# ==========================================
# Standing achievements
# ==========================================

STANDING_ACHIEVEMENTS = AchievementCatalog(
    [
        AchievementDefinition(
            id="first-steps",
            title="First Steps",
            description="Connect your Canvas account to the application",
            category=AchievementCategory.ENGAGEMENT,
            difficulty=Difficulty.EASY,
            points=10,
            icon="graduation-cap",
            requirements=CanvasSyncRequirement(count=1),
        ),
        AchievementDefinition(
            id="five-guys",
            title="5 Guys",
            description="Mark 5 assignments as complete",
            category=AchievementCategory.PERFORMANCE,
            difficulty=Difficulty.EASY,
            points=10,
            icon="check-square",
            requirements=AssignmentCompleteRequirement(count=5),
        ),
        AchievementDefinition(
            id="thirty-five-guys",
            title="35 Guys",
            description="Mark 35 assignments as complete",
            category=AchievementCategory.PERFORMANCE,
            difficulty=Difficulty.MEDIUM,
            points=30,
            icon="check-square",
            requirements=AssignmentCompleteRequirement(count=35),
        ),
        AchievementDefinition(
            id="sixty-five-guys",
            title="65 Guys",
            description="Mark 65 assignments as complete",
            category=AchievementCategory.PERFORMANCE,
            difficulty=Difficulty.HARD,
            points=50,
            icon="check-square",
            requirements=AssignmentCompleteRequirement(count=65),
        ),
        AchievementDefinition(
            id="good-looks",
            title="Good Looks",
            description="Upload a profile picture",
            category=AchievementCategory.ENGAGEMENT,
            difficulty=Difficulty.EASY,
            points=10,
            icon="image",
            requirements=ProfilePictureRequirement(),
        ),
        AchievementDefinition(
            id="ace",
            title="Ace",
            description="Get 15 assignments graded 100%",
            category=AchievementCategory.PERFORMANCE,
            difficulty=Difficulty.MEDIUM,
            points=30,
            icon="award",
            requirements=PerfectGradeRequirement(count=15),
        ),
        AchievementDefinition(
            id="getting-there",
            title="Getting There",
            description="Have at least 1 course with a grade above 90%",
            category=AchievementCategory.THRESHOLD,
            difficulty=Difficulty.EASY,
            points=10,
            icon="trending-up",
            requirements=CourseGradeAboveRequirement(threshold=90, count=1),
        ),
        AchievementDefinition(
            id="getting-closer",
            title="Getting Closer",
            description="Have at least 3 courses with grades above 90%",
            category=AchievementCategory.THRESHOLD,
            difficulty=Difficulty.MEDIUM,
            points=30,
            icon="trending-up",
            requirements=CourseGradeAboveRequirement(threshold=90, count=3),
        ),
        AchievementDefinition(
            id="got-there",
            title="Got There",
            description="Have at least 5 courses with grades above 90%",
            category=AchievementCategory.THRESHOLD,
            difficulty=Difficulty.HARD,
            points=50,
            icon="trophy",
            requirements=CourseGradeAboveRequirement(threshold=90, count=5),
        ),
        AchievementDefinition(
            id="day-n-nite",
            title="Day N Nite",
            description="Enable dark mode in the application",
            category=AchievementCategory.ENGAGEMENT,
            difficulty=Difficulty.EASY,
            points=10,
            icon="moon",
            requirements=DarkModeRequirement(),
        ),
        AchievementDefinition(
            id="regular",
            title="Regular",
            description="Log in 10 times",
            category=AchievementCategory.STREAK,
            difficulty=Difficulty.EASY,
            points=10,
            icon="log-in",
            requirements=LoginCountRequirement(count=10),
        ),
        AchievementDefinition(
            id="mapmaker",
            title="Mapmaker",
            description="Open your journey map",
            category=AchievementCategory.VARIETY,
            difficulty=Difficulty.EASY,
            points=10,
            icon="map",
            requirements=PageViewRequirement(page="journey"),
        ),
        AchievementDefinition(
            id="explorer",
            title="Explorer",
            description="Visit 5 different pages",
            category=AchievementCategory.VARIETY,
            difficulty=Difficulty.EASY,
            points=10,
            icon="compass",
            requirements=UniquePageViewsRequirement(count=5),
        ),
        AchievementDefinition(
            id="dedicated",
            title="Dedicated",
            description="Use the app on 7 different days",
            category=AchievementCategory.STREAK,
            difficulty=Difficulty.MEDIUM,
            points=30,
            icon="calendar",
            requirements=AppUsageRequirement(count=7),
        ),
    ],
    name="standing",
)
