"""Monitoring infrastructure for gradequest"""
from gradequest.monitoring.prometheus_metrics import (
    metrics,
    track_selection,
    track_selection_draw,
    track_pool_reset,
    track_draw_conflict,
    track_achievement_evaluation,
    track_wager
)

__all__ = [
    "metrics",
    "track_selection",
    "track_selection_draw",
    "track_pool_reset",
    "track_draw_conflict",
    "track_achievement_evaluation",
    "track_wager"
]
