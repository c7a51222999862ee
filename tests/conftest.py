"""Global test fixtures and utilities for gradequest tests"""
import pytest
from datetime import datetime, timezone

from gradequest.db.memory_gateway import InMemoryGateway
from gradequest.gamification.catalog import AchievementCatalog
from gradequest.gamification.weekly_selector import WeeklySelector
from gradequest.models.achievement import (
    AchievementCategory,
    AchievementDefinition,
    Difficulty,
    LoginCountRequirement,
)
from gradequest.services.weekly_achievement_service import WeeklyAchievementService


# ============================================================================
# Time Fixtures
# ============================================================================

# Wednesday of the week starting Monday 2024-01-15
WEDNESDAY = datetime(2024, 1, 17, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def wednesday():
    """Mid-week reference time"""
    return WEDNESDAY


class FixedClock:
    """Settable clock for services under test"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FixedClock(WEDNESDAY)


# ============================================================================
# Catalog & Chooser Fixtures
# ============================================================================

def make_achievement(
    achievement_id: str,
    difficulty: Difficulty = Difficulty.EASY,
    points: int = 30,
    count: int = 1,
) -> AchievementDefinition:
    """Achievement with a simple login_count requirement"""
    return AchievementDefinition(
        id=achievement_id,
        title=achievement_id.replace("-", " ").title(),
        description=f"Test achievement {achievement_id}",
        category=AchievementCategory.ENGAGEMENT,
        difficulty=difficulty,
        points=points,
        icon="star",
        requirements=LoginCountRequirement(count=count),
    )


@pytest.fixture
def small_catalog():
    """3 easy, 2 medium, 1 hard"""
    return AchievementCatalog(
        [
            make_achievement("easy-1"),
            make_achievement("easy-2"),
            make_achievement("easy-3"),
            make_achievement("medium-1", Difficulty.MEDIUM, 50),
            make_achievement("medium-2", Difficulty.MEDIUM, 50),
            make_achievement("hard-1", Difficulty.HARD, 100),
        ],
        name="test",
    )


def first_chooser(candidates, user_id, week_start, tier):
    """Deterministic chooser: first candidate in catalog order"""
    return candidates[0]


def last_chooser(candidates, user_id, week_start, tier):
    """Deterministic chooser: last candidate in catalog order"""
    return candidates[-1]


# ============================================================================
# Gateway & Service Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-123"


@pytest.fixture
def gateway():
    """Fresh in-memory gateway"""
    return InMemoryGateway()


@pytest.fixture
def selector(gateway, small_catalog):
    return WeeklySelector(gateway, catalog=small_catalog, chooser=first_chooser)


@pytest.fixture
def service(gateway, selector, clock):
    return WeeklyAchievementService(gateway, selector, clock=clock)


@pytest.fixture
def achievement_factory():
    return make_achievement


@pytest.fixture
def chooser_first():
    return first_chooser


@pytest.fixture
def chooser_last():
    return last_chooser
