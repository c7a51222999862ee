"""
In-memory persistence gateway

Used by tests and local runs without PostgreSQL. State lives for the lifetime
of the instance only.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional

from gradequest.db.gateway import PersistenceGateway
from gradequest.gamification.week_clock import week_key, week_marker_key
from gradequest.models.achievement import AchievementProgress, UsageHistory, WeeklySelection
from gradequest.models.metrics import GradeSnapshot, MetricsBundle
from gradequest.models.xp import StreakState, StreakType
from gradequest.utils.locks import KeyedLocks

logger = logging.getLogger(__name__)


class InMemoryGateway(PersistenceGateway):
    """Dict-backed gateway; conditional writes are serialized per user"""

    def __init__(self):
        self._selections: dict[tuple[str, str], WeeklySelection] = {}
        self._usage: dict[str, UsageHistory] = {}
        self._ledger: dict[str, int] = defaultdict(int)
        self._metrics: dict[str, MetricsBundle] = {}
        self._progress: dict[str, dict[str, AchievementProgress]] = defaultdict(dict)
        self._grades: dict[str, list[GradeSnapshot]] = defaultdict(list)
        self._week_markers: dict[str, str] = {}
        self._streaks: dict[tuple[str, StreakType], StreakState] = {}
        self._locks = KeyedLocks()
        logger.debug("InMemoryGateway initialized (state is NOT persisted)")

    # Seeding helpers for tests and local runs

    def set_metrics(self, user_id: str, metrics: MetricsBundle) -> None:
        self._metrics[user_id] = metrics

    def add_grade_snapshots(self, user_id: str, snapshots: Iterable[GradeSnapshot]) -> None:
        self._grades[user_id].extend(snapshots)

    # Weekly selections

    async def read_selection(self, user_id: str, week_start: datetime) -> Optional[WeeklySelection]:
        return self._selections.get((user_id, week_key(week_start)))

    async def write_selection_if_absent(self, selection: WeeklySelection) -> WeeklySelection:
        key = (selection.user_id, week_key(selection.week_start))
        async with self._locks(selection.user_id):
            existing = self._selections.get(key)
            if existing is not None:
                return existing
            self._selections[key] = selection
            return selection

    async def replace_selection(self, selection: WeeklySelection) -> WeeklySelection:
        key = (selection.user_id, week_key(selection.week_start))
        async with self._locks(selection.user_id):
            self._selections[key] = selection
            return selection

    # Usage history

    async def read_usage_history(self, user_id: str) -> UsageHistory:
        history = self._usage.get(user_id)
        return history.model_copy(deep=True) if history else UsageHistory()

    async def write_usage_history(self, user_id: str, history: UsageHistory) -> None:
        self._usage[user_id] = history.model_copy(deep=True)

    # Points ledger

    async def read_profile_ledger_points(self, user_id: str) -> int:
        return self._ledger[user_id]

    async def adjust_profile_ledger_points(self, user_id: str, delta: int) -> int:
        async with self._locks(user_id):
            self._ledger[user_id] += delta
            return self._ledger[user_id]

    # Metrics & progress

    async def read_metrics_snapshot(self, user_id: str, week_start: datetime) -> MetricsBundle:
        return self._metrics.get(user_id, MetricsBundle())

    async def read_achievement_progress(self, user_id: str) -> list[AchievementProgress]:
        return list(self._progress[user_id].values())

    async def write_achievement_progress(self, user_id: str, records: Iterable[AchievementProgress]) -> None:
        for record in records:
            self._progress[user_id][record.achievement_id] = record

    async def add_achievement_progress_if_absent(
        self, user_id: str, records: Iterable[AchievementProgress]
    ) -> list[AchievementProgress]:
        inserted = []
        async with self._locks(user_id):
            stored = self._progress[user_id]
            for record in records:
                if record.achievement_id not in stored:
                    stored[record.achievement_id] = record
                    inserted.append(record)
        return inserted

    async def read_grade_snapshots(self, user_id: str) -> list[GradeSnapshot]:
        return list(self._grades[user_id])

    # Week marker & streaks

    async def read_week_marker(self, user_id: str) -> Optional[str]:
        return self._week_markers.get(week_marker_key(user_id))

    async def write_week_marker(self, user_id: str, week_key: str) -> None:
        self._week_markers[week_marker_key(user_id)] = week_key

    async def read_streak_state(self, user_id: str, streak_type: StreakType) -> StreakState:
        state = self._streaks.get((user_id, streak_type))
        return state.model_copy() if state else StreakState(streak_type=streak_type)

    async def write_streak_state(self, user_id: str, state: StreakState) -> None:
        self._streaks[(user_id, state.streak_type)] = state.model_copy()
