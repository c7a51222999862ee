"""Unit tests for Prometheus metrics (gradequest/monitoring/prometheus_metrics.py)"""
import pytest
from unittest.mock import patch

from prometheus_client import CollectorRegistry

from gradequest.monitoring import prometheus_metrics
from gradequest.monitoring.prometheus_metrics import (
    PrometheusMetrics,
    track_achievement_evaluation,
    track_draw_conflict,
    track_pool_reset,
    track_selection,
    track_selection_draw,
    track_wager,
)


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def local_metrics(registry):
    """Fresh metrics on a private registry, swapped in for the global instance"""
    metrics = PrometheusMetrics(enabled=True, registry=registry)
    with patch.object(prometheus_metrics, "metrics", metrics):
        yield metrics


def test_disabled_metrics(registry):
    metrics = PrometheusMetrics(enabled=False, registry=registry)

    assert metrics.enabled is False
    assert registry.get_sample_value("gradequest_draw_conflicts_total") is None


def test_duplicate_registration_disables(registry):
    PrometheusMetrics(enabled=True, registry=registry)
    duplicate = PrometheusMetrics(enabled=True, registry=registry)

    assert duplicate.enabled is False


def test_selection_draw_counter(local_metrics, registry):
    track_selection_draw("easy", "weekly")
    track_selection_draw("easy", "weekly")
    track_selection_draw("hard", "force_refresh")

    assert registry.get_sample_value(
        "gradequest_selection_draws_total", {"tier": "easy", "trigger": "weekly"}
    ) == 2.0
    assert registry.get_sample_value(
        "gradequest_selection_draws_total", {"tier": "hard", "trigger": "force_refresh"}
    ) == 1.0


def test_pool_reset_and_conflict_counters(local_metrics, registry):
    track_pool_reset("medium")
    track_draw_conflict()

    assert registry.get_sample_value("gradequest_pool_resets_total", {"tier": "medium"}) == 1.0
    assert registry.get_sample_value("gradequest_draw_conflicts_total") == 1.0


def test_evaluation_and_wager_counters(local_metrics, registry):
    track_achievement_evaluation("degraded")
    track_wager("insufficient_points")

    assert registry.get_sample_value(
        "gradequest_achievement_evaluations_total", {"status": "degraded"}
    ) == 1.0
    assert registry.get_sample_value(
        "gradequest_wager_requests_total", {"result": "insufficient_points"}
    ) == 1.0


def test_track_selection_observes_duration(local_metrics, registry):
    with track_selection("get_or_create"):
        pass

    assert registry.get_sample_value(
        "gradequest_selection_duration_seconds_count", {"operation": "get_or_create"}
    ) == 1.0


def test_track_selection_observes_on_error(local_metrics, registry):
    with pytest.raises(RuntimeError):
        with track_selection("force_refresh"):
            raise RuntimeError("boom")

    assert registry.get_sample_value(
        "gradequest_selection_duration_seconds_count", {"operation": "force_refresh"}
    ) == 1.0


def test_helpers_are_noops_when_disabled(registry):
    disabled = PrometheusMetrics(enabled=False, registry=registry)
    with patch.object(prometheus_metrics, "metrics", disabled):
        track_selection_draw("easy", "weekly")
        track_pool_reset("easy")
        track_draw_conflict()
        track_achievement_evaluation("unlocked")
        track_wager("ok")
        with track_selection("get_or_create"):
            pass
