"""Gamification database queries (PostgreSQL persistence gateway)"""
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Iterable, Optional

import psycopg

from gradequest.db.connection import db
from gradequest.db.gateway import PersistenceGateway
from gradequest.exceptions import wrap_external_exception
from gradequest.gamification.catalog import WEEKLY_ACHIEVEMENTS, AchievementCatalog
from gradequest.gamification.week_clock import week_marker_key
from gradequest.models.achievement import (
    TIERS,
    AchievementProgress,
    UsageHistory,
    WeeklySelection,
)
from gradequest.models.metrics import (
    AssignmentRecord,
    GradeSnapshot,
    LeaderboardPosition,
    MetricsBundle,
    MetricsSource,
    QuizResult,
    RankEntry,
    WagerRecord,
)
from gradequest.models.xp import StreakState, StreakType

logger = logging.getLogger(__name__)


SELECTION_COLUMNS = """
    user_id, week_start_at, week_end_at,
    easy_achievement_id, medium_achievement_id, hard_achievement_id,
    draw_id, selected_at
"""


@asynccontextmanager
async def _cursor(operation: str, user_id: Optional[str] = None):
    """Connection + cursor with psycopg errors mapped into the exception hierarchy"""
    try:
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                yield conn, cur
    except psycopg.Error as e:
        raise wrap_external_exception(e, operation=operation, user_id=user_id)


class PostgresGateway(PersistenceGateway):
    """
    PostgreSQL-backed gateway

    Selections store achievement ids only and are rehydrated from the catalog.
    """

    def __init__(self, catalog: AchievementCatalog = WEEKLY_ACHIEVEMENTS):
        self.catalog = catalog

    # ==========================================
    # Weekly selections
    # ==========================================

    def _selection_from_row(self, row: dict) -> WeeklySelection:
        picks = {}
        for tier in TIERS:
            achievement_id = row.get(f"{tier.value}_achievement_id")
            achievement = self.catalog.get(achievement_id) if achievement_id else None
            if achievement_id and achievement is None:
                logger.warning(
                    f"Stored selection for user {row['user_id']} references unknown achievement {achievement_id}"
                )
            picks[tier.value] = achievement

        return WeeklySelection(
            user_id=row["user_id"],
            week_start=row["week_start_at"],
            week_end=row["week_end_at"],
            selected_at=row["selected_at"],
            draw_id=row["draw_id"],
            **picks,
        )

    @staticmethod
    def _selection_params(selection: WeeklySelection) -> tuple:
        ids = selection.achievement_ids()
        return (
            selection.user_id,
            selection.week_start.date(),
            selection.week_start,
            selection.week_end,
            *(ids[tier] for tier in TIERS),
            selection.draw_id,
            selection.selected_at,
        )

    async def read_selection(self, user_id: str, week_start: datetime) -> Optional[WeeklySelection]:
        async with _cursor("read_selection", user_id) as (conn, cur):
            await cur.execute(
                f"""
                SELECT {SELECTION_COLUMNS}
                FROM weekly_achievement_selections
                WHERE user_id = %s AND week_start = %s
                """,
                (user_id, week_start.date())
            )
            row = await cur.fetchone()

        return self._selection_from_row(row) if row else None

    async def write_selection_if_absent(self, selection: WeeklySelection) -> WeeklySelection:
        """First writer wins: ON CONFLICT DO NOTHING, then read back whichever row is stored"""
        async with _cursor("write_selection_if_absent", selection.user_id) as (conn, cur):
            await cur.execute(
                """
                INSERT INTO weekly_achievement_selections
                    (user_id, week_start, week_start_at, week_end_at,
                     easy_achievement_id, medium_achievement_id, hard_achievement_id,
                     draw_id, selected_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (user_id, week_start) DO NOTHING
                """,
                self._selection_params(selection)
            )
            await cur.execute(
                f"""
                SELECT {SELECTION_COLUMNS}
                FROM weekly_achievement_selections
                WHERE user_id = %s AND week_start = %s
                """,
                (selection.user_id, selection.week_start.date())
            )
            row = await cur.fetchone()
            await conn.commit()

        return self._selection_from_row(row) if row else selection

    async def replace_selection(self, selection: WeeklySelection) -> WeeklySelection:
        async with _cursor("replace_selection", selection.user_id) as (conn, cur):
            await cur.execute(
                """
                INSERT INTO weekly_achievement_selections
                    (user_id, week_start, week_start_at, week_end_at,
                     easy_achievement_id, medium_achievement_id, hard_achievement_id,
                     draw_id, selected_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (user_id, week_start) DO UPDATE
                SET week_start_at = EXCLUDED.week_start_at,
                    week_end_at = EXCLUDED.week_end_at,
                    easy_achievement_id = EXCLUDED.easy_achievement_id,
                    medium_achievement_id = EXCLUDED.medium_achievement_id,
                    hard_achievement_id = EXCLUDED.hard_achievement_id,
                    draw_id = EXCLUDED.draw_id,
                    selected_at = EXCLUDED.selected_at
                """,
                self._selection_params(selection)
            )
            await conn.commit()

        logger.info(f"Replaced weekly selection for user {selection.user_id}")
        return selection

    # ==========================================
    # Usage history
    # ==========================================

    async def read_usage_history(self, user_id: str) -> UsageHistory:
        async with _cursor("read_usage_history", user_id) as (conn, cur):
            await cur.execute(
                """
                SELECT easy_used, medium_used, hard_used
                FROM weekly_achievement_usage
                WHERE user_id = %s
                """,
                (user_id,)
            )
            row = await cur.fetchone()

        if not row:
            return UsageHistory()

        return UsageHistory(
            easy=row["easy_used"] or [],
            medium=row["medium_used"] or [],
            hard=row["hard_used"] or [],
        )

    async def write_usage_history(self, user_id: str, history: UsageHistory) -> None:
        async with _cursor("write_usage_history", user_id) as (conn, cur):
            await cur.execute(
                """
                INSERT INTO weekly_achievement_usage (user_id, easy_used, medium_used, hard_used)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (user_id) DO UPDATE
                SET easy_used = EXCLUDED.easy_used,
                    medium_used = EXCLUDED.medium_used,
                    hard_used = EXCLUDED.hard_used,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    user_id,
                    json.dumps(history.easy),
                    json.dumps(history.medium),
                    json.dumps(history.hard),
                )
            )
            await conn.commit()

    # ==========================================
    # Points ledger
    # ==========================================

    async def read_profile_ledger_points(self, user_id: str) -> int:
        async with _cursor("read_profile_ledger_points", user_id) as (conn, cur):
            await cur.execute(
                "SELECT points FROM profiles WHERE id = %s",
                (user_id,)
            )
            row = await cur.fetchone()

        return int(row["points"] or 0) if row else 0

    async def adjust_profile_ledger_points(self, user_id: str, delta: int) -> int:
        """Single-statement increment so concurrent adjustments never lose updates"""
        async with _cursor("adjust_profile_ledger_points", user_id) as (conn, cur):
            await cur.execute(
                """
                INSERT INTO profiles (id, points)
                VALUES (%s, %s)
                ON CONFLICT (id) DO UPDATE
                SET points = profiles.points + EXCLUDED.points
                RETURNING points
                """,
                (user_id, delta)
            )
            row = await cur.fetchone()
            await conn.commit()

        return int(row["points"])

    # ==========================================
    # Metrics & progress
    # ==========================================

    async def read_metrics_snapshot(self, user_id: str, week_start: datetime) -> MetricsBundle:
        """
        Gather metrics from every source

        A failing source is logged and listed in `unavailable_sources`; the
        others are still returned.
        """
        bundle = MetricsBundle()
        week_end = week_start + timedelta(days=7)

        readers = (
            (MetricsSource.ENGAGEMENT, self._read_engagement_metrics),
            (MetricsSource.CANVAS, self._read_canvas_metrics),
            (MetricsSource.PLATFORM, self._read_platform_metrics),
        )
        for source, reader in readers:
            try:
                async with db.connection() as conn:
                    async with conn.cursor() as cur:
                        await reader(cur, user_id, week_start, week_end, bundle)
            except psycopg.Error as e:
                logger.warning(f"{source.value} metrics unavailable for user {user_id}: {e}")
                bundle.unavailable_sources.add(source)

        return bundle

    @staticmethod
    async def _read_engagement_metrics(cur, user_id: str, week_start: datetime, week_end: datetime,
                                       bundle: MetricsBundle) -> None:
        await cur.execute(
            """
            SELECT e.login_count, e.canvas_sync_count, e.page_views,
                   p.avatar_url IS NOT NULL AS has_profile_picture,
                   COALESCE(p.prefers_dark_mode, FALSE) AS prefers_dark_mode
            FROM profiles p
            LEFT JOIN user_engagement e ON e.user_id = p.id
            WHERE p.id = %s
            """,
            (user_id,)
        )
        row = await cur.fetchone()
        if row:
            bundle.login_count = row["login_count"] or 0
            bundle.canvas_sync_count = row["canvas_sync_count"] or 0
            bundle.page_views = row["page_views"] or {}
            bundle.has_profile_picture = bool(row["has_profile_picture"])
            bundle.prefers_dark_mode = bool(row["prefers_dark_mode"])

        await cur.execute(
            "SELECT DISTINCT active_date FROM user_active_days WHERE user_id = %s",
            (user_id,)
        )
        bundle.active_days = [r["active_date"] for r in await cur.fetchall()]

    @staticmethod
    async def _read_canvas_metrics(cur, user_id: str, week_start: datetime, week_end: datetime,
                                   bundle: MetricsBundle) -> None:
        await cur.execute(
            """
            SELECT COUNT(*) FILTER (WHERE completed) AS completed,
                   COUNT(*) FILTER (WHERE points_possible > 0 AND score >= points_possible) AS perfect
            FROM assignments
            WHERE user_id = %s
            """,
            (user_id,)
        )
        row = await cur.fetchone()
        if row:
            bundle.assignment_complete_count = row["completed"] or 0
            bundle.perfect_grade_count = row["perfect"] or 0

        await cur.execute(
            "SELECT id, grade FROM courses WHERE user_id = %s AND grade IS NOT NULL",
            (user_id,)
        )
        bundle.course_grades = {str(r["id"]): float(r["grade"]) for r in await cur.fetchall()}

        await cur.execute(
            """
            SELECT id, name, course_id, assignment_type, completed,
                   score, points_possible, due_at, submitted_at
            FROM assignments
            WHERE user_id = %s AND due_at >= %s AND due_at < %s
            """,
            (user_id, week_start, week_end)
        )
        bundle.weekly_assignments = [
            AssignmentRecord(**{**r, "id": str(r["id"]), "course_id": str(r["course_id"]) if r["course_id"] else None})
            for r in await cur.fetchall()
        ]

    @staticmethod
    async def _read_platform_metrics(cur, user_id: str, week_start: datetime, week_end: datetime,
                                     bundle: MetricsBundle) -> None:
        await cur.execute(
            """
            SELECT assignment_id, amount, placed_at
            FROM wagers
            WHERE user_id = %s AND placed_at >= %s AND placed_at < %s
            """,
            (user_id, week_start, week_end)
        )
        bundle.wagers = [WagerRecord(**{**r, "assignment_id": str(r["assignment_id"])}) for r in await cur.fetchall()]

        await cur.execute(
            """
            SELECT position, recorded_at
            FROM rank_history
            WHERE user_id = %s
            ORDER BY recorded_at DESC
            LIMIT 2
            """,
            (user_id,)
        )
        bundle.rank_history = [RankEntry(**r) for r in await cur.fetchall()]

        await cur.execute(
            """
            SELECT quiz_id, quiz_type, score, max_score, taken_at
            FROM quiz_results
            WHERE user_id = %s AND taken_at >= %s AND taken_at < %s
            """,
            (user_id, week_start, week_end)
        )
        bundle.quiz_results = [QuizResult(**{**r, "quiz_id": str(r["quiz_id"])}) for r in await cur.fetchall()]

        await cur.execute(
            """
            SELECT week_start, position, total_participants
            FROM leaderboard_positions
            WHERE user_id = %s AND week_start = %s
            """,
            (user_id, week_start.date())
        )
        bundle.leaderboard_positions = [LeaderboardPosition(**r) for r in await cur.fetchall()]

    async def read_achievement_progress(self, user_id: str) -> list[AchievementProgress]:
        async with _cursor("read_achievement_progress", user_id) as (conn, cur):
            await cur.execute(
                """
                SELECT achievement_id, title, points, progress, unlocked, updated_at
                FROM achievement_progress
                WHERE user_id = %s
                """,
                (user_id,)
            )
            rows = await cur.fetchall()

        return [AchievementProgress(**row) for row in rows]

    async def write_achievement_progress(self, user_id: str, records: Iterable[AchievementProgress]) -> None:
        records = list(records)
        if not records:
            return

        async with _cursor("write_achievement_progress", user_id) as (conn, cur):
            await cur.executemany(
                """
                INSERT INTO achievement_progress (user_id, achievement_id, title, points, progress, unlocked)
                VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (user_id, achievement_id) DO UPDATE
                SET title = EXCLUDED.title,
                    points = EXCLUDED.points,
                    progress = EXCLUDED.progress,
                    unlocked = EXCLUDED.unlocked,
                    updated_at = CURRENT_TIMESTAMP
                """,
                [
                    (user_id, r.achievement_id, r.title, r.points, r.progress, r.unlocked)
                    for r in records
                ]
            )
            await conn.commit()

        logger.debug(f"Stored progress for {len(records)} achievements of user {user_id}")

    async def add_achievement_progress_if_absent(
        self, user_id: str, records: Iterable[AchievementProgress]
    ) -> list[AchievementProgress]:
        records = list(records)
        if not records:
            return []

        inserted = []
        async with _cursor("add_achievement_progress_if_absent", user_id) as (conn, cur):
            for record in records:
                await cur.execute(
                    """
                    INSERT INTO achievement_progress (user_id, achievement_id, title, points, progress, unlocked)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    ON CONFLICT (user_id, achievement_id) DO NOTHING
                    RETURNING achievement_id
                    """,
                    (user_id, record.achievement_id, record.title, record.points, record.progress, record.unlocked)
                )
                if await cur.fetchone() is not None:
                    inserted.append(record)
            await conn.commit()

        logger.debug(f"Inserted {len(inserted)} of {len(records)} achievement rows for user {user_id}")
        return inserted

    async def read_grade_snapshots(self, user_id: str) -> list[GradeSnapshot]:
        async with _cursor("read_grade_snapshots", user_id) as (conn, cur):
            await cur.execute(
                """
                SELECT course_id, grade, recorded_at
                FROM course_grade_snapshots
                WHERE user_id = %s
                ORDER BY recorded_at DESC
                """,
                (user_id,)
            )
            rows = await cur.fetchall()

        return [
            GradeSnapshot(course_id=str(r["course_id"]), grade=float(r["grade"]), recorded_at=r["recorded_at"])
            for r in rows
        ]

    # ==========================================
    # Week marker & streaks
    # ==========================================

    async def read_week_marker(self, user_id: str) -> Optional[str]:
        async with _cursor("read_week_marker", user_id) as (conn, cur):
            await cur.execute(
                "SELECT value FROM user_week_markers WHERE marker_key = %s",
                (week_marker_key(user_id),)
            )
            row = await cur.fetchone()

        return row["value"] if row else None

    async def write_week_marker(self, user_id: str, week_key: str) -> None:
        async with _cursor("write_week_marker", user_id) as (conn, cur):
            await cur.execute(
                """
                INSERT INTO user_week_markers (marker_key, user_id, value)
                VALUES (%s, %s, %s)
                ON CONFLICT (marker_key) DO UPDATE
                SET value = EXCLUDED.value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (week_marker_key(user_id), user_id, week_key)
            )
            await conn.commit()

    async def read_streak_state(self, user_id: str, streak_type: StreakType) -> StreakState:
        async with _cursor("read_streak_state", user_id) as (conn, cur):
            await cur.execute(
                """
                SELECT current_streak, best_streak, last_activity_date
                FROM user_streaks
                WHERE user_id = %s AND streak_type = %s
                """,
                (user_id, streak_type.value)
            )
            row = await cur.fetchone()

        if not row:
            return StreakState(streak_type=streak_type)
        return StreakState(streak_type=streak_type, **row)

    async def write_streak_state(self, user_id: str, state: StreakState) -> None:
        async with _cursor("write_streak_state", user_id) as (conn, cur):
            await cur.execute(
                """
                INSERT INTO user_streaks (user_id, streak_type, current_streak, best_streak, last_activity_date)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (user_id, streak_type) DO UPDATE
                SET current_streak = EXCLUDED.current_streak,
                    best_streak = EXCLUDED.best_streak,
                    last_activity_date = EXCLUDED.last_activity_date,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    user_id,
                    state.streak_type.value,
                    state.current_streak,
                    state.best_streak,
                    state.last_activity_date,
                )
            )
            await conn.commit()
