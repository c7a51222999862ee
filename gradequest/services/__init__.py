"""
Service Layer Package

Business logic services between callers (web handlers, jobs) and the
persistence gateway.

Core Services:
- WeeklyAchievementService: weekly selection, progress, points, wagers, streaks
"""

from gradequest.services.container import ServiceContainer, get_container, init_container

__all__ = [
    "ServiceContainer",
    "get_container",
    "init_container",
]
