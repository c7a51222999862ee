"""
Achievement Progress Evaluation

Computes live progress (0-100) for an achievement from a user's metrics.

Progress styles:
- Ratio: min(100, round_half_up(current / required * 100))
- Boolean: 100 or 0

Progress is recomputed on every request and may go down as well as up.
Problems with a single achievement (unknown descriptor, unavailable metrics
source, unexpected failure) degrade that record to 0 and never fail the batch.
"""

from datetime import timedelta
from typing import Callable, Iterable
import logging

from gradequest.exceptions import MetricsUnavailableError
from gradequest.models.achievement import (
    AchievementDefinition,
    GradeAverageThresholdRequirement,
    OnTimeRateRequirement,
    ProgressRecord,
    UnsupportedRequirement,
)
from gradequest.models.metrics import MetricsBundle
from gradequest.monitoring.prometheus_metrics import track_achievement_evaluation
from gradequest.utils.rounding import round_half_up

logger = logging.getLogger(__name__)


def ratio_progress(current: float, required: float, label: str = "") -> int:
    """Ratio progress, clamping negative counts to 0 and rejecting non-positive targets"""
    if required <= 0:
        logger.warning(f"Non-positive requirement {required} for '{label}'; progress is 0")
        return 0
    if current < 0:
        logger.warning(f"Negative metric {current} for '{label}' clamped to 0")
        current = 0
    return min(100, round_half_up(current / required * 100))


def boolean_progress(condition: bool) -> int:
    return 100 if condition else 0


# ==========================================
# Handlers, one per requirement tag
# ==========================================

def _login_count(req, metrics: MetricsBundle) -> int:
    return ratio_progress(metrics.login_count, req.count, req.type)


def _page_view(req, metrics: MetricsBundle) -> int:
    return boolean_progress(metrics.page_views.get(req.page, 0) > 0)


def _unique_page_views(req, metrics: MetricsBundle) -> int:
    visited = sum(1 for views in metrics.page_views.values() if views > 0)
    return ratio_progress(visited, req.count, req.type)


def _app_usage(req, metrics: MetricsBundle) -> int:
    return ratio_progress(len(set(metrics.active_days)), req.count, req.type)


def _canvas_sync(req, metrics: MetricsBundle) -> int:
    return ratio_progress(metrics.canvas_sync_count, req.count, req.type)


def _profile_picture(req, metrics: MetricsBundle) -> int:
    return boolean_progress(metrics.has_profile_picture)


def _dark_mode(req, metrics: MetricsBundle) -> int:
    return boolean_progress(metrics.prefers_dark_mode)


def _assignment_complete(req, metrics: MetricsBundle) -> int:
    return ratio_progress(metrics.assignment_complete_count, req.count, req.type)


def _perfect_grade(req, metrics: MetricsBundle) -> int:
    return ratio_progress(metrics.perfect_grade_count, req.count, req.type)


def _course_grade_above(req, metrics: MetricsBundle) -> int:
    courses = sum(1 for grade in metrics.course_grades.values() if grade >= req.threshold)
    return ratio_progress(courses, req.count, req.type)


def _gambling_occurred(req, metrics: MetricsBundle) -> int:
    return boolean_progress(len(metrics.wagers) > 0)


def _rank_improved(req, metrics: MetricsBundle) -> int:
    """Compare the two most recent rank entries; a lower position is an improvement"""
    history = sorted(metrics.rank_history, key=lambda entry: entry.recorded_at)
    if len(history) < 2:
        return 0
    previous, current = history[-2], history[-1]
    return boolean_progress(current.position < previous.position)


def _ai_quiz_perfect(req, metrics: MetricsBundle) -> int:
    return boolean_progress(any(
        quiz.quiz_type == "ai" and quiz.max_score > 0 and quiz.score >= quiz.max_score
        for quiz in metrics.quiz_results
    ))


def _leaderboard_first(req, metrics: MetricsBundle) -> int:
    return boolean_progress(any(p.position == 1 for p in metrics.leaderboard_positions))


def _assignments_completed_count(req, metrics: MetricsBundle) -> int:
    completed = sum(1 for assignment in metrics.weekly_assignments if assignment.completed)
    return ratio_progress(completed, req.count, req.type)


def _on_time_rate(req: OnTimeRateRequirement, metrics: MetricsBundle) -> int:
    submitted = [
        a for a in metrics.weekly_assignments
        if a.submitted_at is not None and a.due_at is not None
    ]
    if not submitted:
        return 0

    margin = timedelta(hours=req.hours_early)
    on_time = sum(1 for a in submitted if a.due_at - a.submitted_at >= margin)
    rate = on_time / len(submitted) * 100
    return ratio_progress(rate, req.percentage, req.type)


def _grade_average_threshold(req: GradeAverageThresholdRequirement, metrics: MetricsBundle) -> int:
    grades = [
        a.percentage for a in metrics.weekly_assignments
        if a.percentage is not None
        and (not req.assignment_types or a.assignment_type in req.assignment_types)
    ]
    if not grades:
        return 0

    value = max(grades) if req.scope == "any" else sum(grades) / len(grades)
    return ratio_progress(value, req.threshold, req.type)


HANDLERS: dict[str, Callable[..., int]] = {
    "login_count": _login_count,
    "page_view": _page_view,
    "unique_page_views": _unique_page_views,
    "app_usage": _app_usage,
    "canvas_sync": _canvas_sync,
    "profile_picture": _profile_picture,
    "dark_mode": _dark_mode,
    "assignment_complete": _assignment_complete,
    "perfect_grade": _perfect_grade,
    "course_grade_above": _course_grade_above,
    "gambling_occurred": _gambling_occurred,
    "rank_improved": _rank_improved,
    "ai_quiz_perfect": _ai_quiz_perfect,
    "leaderboard_first": _leaderboard_first,
    "assignments_completed_count": _assignments_completed_count,
    "on_time_rate": _on_time_rate,
    "grade_average_threshold": _grade_average_threshold,
}


class ProgressEvaluator:
    """Stateless evaluator; safe to share"""

    def __init__(self, handlers: dict[str, Callable[..., int]] = HANDLERS):
        self.handlers = handlers

    def evaluate(self, achievement: AchievementDefinition, metrics: MetricsBundle) -> ProgressRecord:
        req = achievement.requirements

        if isinstance(req, UnsupportedRequirement):
            logger.warning(
                f"Achievement {achievement.id} has unsupported requirement '{req.raw_type}'; progress is 0"
            )
            return self._degraded(achievement)

        handler = self.handlers.get(req.type)
        if handler is None:
            logger.warning(f"No evaluator for requirement '{req.type}' on achievement {achievement.id}")
            return self._degraded(achievement)

        if not metrics.is_available(req.source):
            # Logged on creation
            MetricsUnavailableError(
                message=f"{req.source.value} metrics unavailable for achievement {achievement.id}",
                source=req.source.value,
                operation="evaluate",
            )
            return self._degraded(achievement)

        record = ProgressRecord.from_progress(achievement.id, handler(req, metrics))
        track_achievement_evaluation("unlocked" if record.unlocked else "in_progress")
        return record

    def evaluate_many(
        self,
        achievements: Iterable[AchievementDefinition],
        metrics: MetricsBundle,
    ) -> list[ProgressRecord]:
        """Evaluate a batch; a failure inside one evaluation degrades that record only"""
        records = []
        for achievement in achievements:
            try:
                records.append(self.evaluate(achievement, metrics))
            except Exception as e:
                logger.error(f"Failed to evaluate achievement {achievement.id}: {e}", exc_info=True)
                records.append(self._degraded(achievement))
        return records

    @staticmethod
    def _degraded(achievement: AchievementDefinition) -> ProgressRecord:
        track_achievement_evaluation("degraded")
        return ProgressRecord.from_progress(achievement.id, 0, degraded=True)
