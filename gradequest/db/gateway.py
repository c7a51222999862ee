"""
Persistence gateway

Every piece of per-user state (selections, usage history, ledger points,
streaks, week markers) lives behind this interface. Implementations raise
PersistenceUnavailableError when storage cannot be reached; they never
return fabricated data in its place.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from gradequest.models.achievement import AchievementProgress, UsageHistory, WeeklySelection
from gradequest.models.metrics import GradeSnapshot, MetricsBundle
from gradequest.models.xp import StreakState, StreakType


class PersistenceGateway(ABC):
    """Async storage interface used by the selector, aggregator and service"""

    # ==========================================
    # Weekly selections
    # ==========================================

    @abstractmethod
    async def read_selection(self, user_id: str, week_start: datetime) -> Optional[WeeklySelection]:
        """Stored selection for the user's week, or None"""

    @abstractmethod
    async def write_selection_if_absent(self, selection: WeeklySelection) -> WeeklySelection:
        """
        Conditional insert keyed on (user_id, week_start)

        Returns the row that ended up stored: `selection` when this call won,
        otherwise the selection written by the earlier caller.
        """

    @abstractmethod
    async def replace_selection(self, selection: WeeklySelection) -> WeeklySelection:
        """Overwrite the week's selection (force refresh)"""

    # ==========================================
    # Usage history
    # ==========================================

    @abstractmethod
    async def read_usage_history(self, user_id: str) -> UsageHistory:
        """Per-tier used ids; empty history for unknown users"""

    @abstractmethod
    async def write_usage_history(self, user_id: str, history: UsageHistory) -> None:
        ...

    # ==========================================
    # Points ledger
    # ==========================================

    @abstractmethod
    async def read_profile_ledger_points(self, user_id: str) -> int:
        """Signed ledger balance (wagers, winnings, streak rewards)"""

    @abstractmethod
    async def adjust_profile_ledger_points(self, user_id: str, delta: int) -> int:
        """Atomically add `delta` to the ledger and return the new balance"""

    # ==========================================
    # Metrics & progress
    # ==========================================

    @abstractmethod
    async def read_metrics_snapshot(self, user_id: str, week_start: datetime) -> MetricsBundle:
        """
        Metrics for the user and week

        Sources that fail are listed in `unavailable_sources` rather than raised.
        """

    @abstractmethod
    async def read_achievement_progress(self, user_id: str) -> list[AchievementProgress]:
        ...

    @abstractmethod
    async def write_achievement_progress(self, user_id: str, records: Iterable[AchievementProgress]) -> None:
        """Upsert progress rows keyed by achievement id"""

    @abstractmethod
    async def add_achievement_progress_if_absent(
        self, user_id: str, records: Iterable[AchievementProgress]
    ) -> list[AchievementProgress]:
        """
        Insert rows whose achievement id the user does not have yet

        Existing rows are left untouched. Returns only the rows inserted.
        """

    @abstractmethod
    async def read_grade_snapshots(self, user_id: str) -> list[GradeSnapshot]:
        ...

    # ==========================================
    # Week marker & streaks
    # ==========================================

    @abstractmethod
    async def read_week_marker(self, user_id: str) -> Optional[str]:
        """ISO date of the last week start seen for the user"""

    @abstractmethod
    async def write_week_marker(self, user_id: str, week_key: str) -> None:
        ...

    @abstractmethod
    async def read_streak_state(self, user_id: str, streak_type: StreakType) -> StreakState:
        ...

    @abstractmethod
    async def write_streak_state(self, user_id: str, state: StreakState) -> None:
        ...
