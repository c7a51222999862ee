"""Prometheus metrics definitions and helpers"""
import logging
import time
from contextlib import contextmanager

from prometheus_client import CollectorRegistry, Counter, Histogram, REGISTRY

from gradequest.config import ENABLE_PROMETHEUS

logger = logging.getLogger(__name__)


class PrometheusMetrics:
    """Container for all Prometheus metrics"""

    def __init__(self, enabled: bool = ENABLE_PROMETHEUS, registry: CollectorRegistry = REGISTRY):
        if not enabled:
            logger.info("Prometheus metrics disabled")
            self._enabled = False
            return

        try:
            # Selection Metrics
            self.selection_draws_total = Counter(
                'gradequest_selection_draws_total',
                'Weekly achievements drawn',
                ['tier', 'trigger'],
                registry=registry
            )

            self.pool_resets_total = Counter(
                'gradequest_pool_resets_total',
                'Tier pools reset after every achievement was used',
                ['tier'],
                registry=registry
            )

            self.draw_conflicts_total = Counter(
                'gradequest_draw_conflicts_total',
                'Concurrent draws resolved in favour of the first writer',
                registry=registry
            )

            self.selection_duration_seconds = Histogram(
                'gradequest_selection_duration_seconds',
                'Selection read/draw latency',
                ['operation'],
                buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0],
                registry=registry
            )

            # Progress Metrics
            self.achievement_evaluations_total = Counter(
                'gradequest_achievement_evaluations_total',
                'Achievement progress evaluations',
                ['status'],
                registry=registry
            )

            # Points Metrics
            self.wager_requests_total = Counter(
                'gradequest_wager_requests_total',
                'Wager deductions by result',
                ['result'],
                registry=registry
            )

            self._enabled = True
            logger.info("Prometheus metrics initialized")

        except ValueError as e:
            # Duplicated timeseries in the registry
            logger.error(f"Failed to initialize Prometheus metrics: {e}", exc_info=True)
            self._enabled = False

    @property
    def enabled(self) -> bool:
        """Check if metrics are enabled"""
        return self._enabled


# Global metrics instance
metrics = PrometheusMetrics()


@contextmanager
def track_selection(operation: str):
    """Track selection latency"""
    if not metrics.enabled:
        yield
        return

    start_time = time.time()

    try:
        yield
    finally:
        duration = time.time() - start_time
        metrics.selection_duration_seconds.labels(
            operation=operation
        ).observe(duration)


def track_selection_draw(tier: str, trigger: str):
    """Track one tier drawn (trigger: weekly or force_refresh)"""
    if not metrics.enabled:
        return

    metrics.selection_draws_total.labels(
        tier=tier,
        trigger=trigger
    ).inc()


def track_pool_reset(tier: str):
    """Track an exhausted tier pool being reset"""
    if not metrics.enabled:
        return

    metrics.pool_resets_total.labels(tier=tier).inc()


def track_draw_conflict():
    """Track a concurrent draw that lost the conditional write"""
    if not metrics.enabled:
        return

    metrics.draw_conflicts_total.inc()


def track_achievement_evaluation(status: str):
    """Track an evaluation (status: unlocked, in_progress, degraded)"""
    if not metrics.enabled:
        return

    metrics.achievement_evaluations_total.labels(status=status).inc()


def track_wager(result: str):
    """Track a wager deduction (result: ok or the failure reason)"""
    if not metrics.enabled:
        return

    metrics.wager_requests_total.labels(result=result).inc()
