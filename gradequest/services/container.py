"""
Service Container - Dependency Injection Container

Simple DI container for managing service instances and their dependencies.
Uses lazy loading to only instantiate services when first accessed.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from gradequest.cache.redis_client import RedisCache
from gradequest.db.gateway import PersistenceGateway

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Simple dependency injection container for services.

    Services are lazy-loaded on first access via properties.
    Infrastructure dependencies (gateway, cache) are injected.
    """

    # Infrastructure dependencies (injected)
    gateway: PersistenceGateway
    cache: Optional[RedisCache] = None
    chooser: Optional[object] = None  # Chooser override (tests, reproducible draws)

    # Services (lazy-loaded via properties)
    _selector: Optional[object] = field(default=None, init=False, repr=False)
    _weekly_achievement_service: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def selector(self):
        """Get WeeklySelector instance (lazy-loaded)"""
        if self._selector is None:
            from gradequest.cache.selection_cache import SelectionCache
            from gradequest.gamification.weekly_selector import WeeklySelector, random_chooser
            self._selector = WeeklySelector(
                self.gateway,
                chooser=self.chooser or random_chooser,
                cache=SelectionCache(self.cache),
            )
            logger.debug("WeeklySelector instantiated")
        return self._selector

    @property
    def weekly_achievement_service(self):
        """Get WeeklyAchievementService instance (lazy-loaded)"""
        if self._weekly_achievement_service is None:
            from gradequest.services.weekly_achievement_service import WeeklyAchievementService
            self._weekly_achievement_service = WeeklyAchievementService(self.gateway, self.selector)
            logger.debug("WeeklyAchievementService instantiated")
        return self._weekly_achievement_service


# Global container instance (initialized at startup)
_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """
    Get the global service container.

    Returns:
        ServiceContainer: The global container instance

    Raises:
        RuntimeError: If container not initialized (call init_container first)
    """
    if _container is None:
        raise RuntimeError(
            "Service container not initialized. "
            "Call init_container() at startup before using services."
        )
    return _container


def init_container(
    gateway: PersistenceGateway,
    cache: Optional[RedisCache] = None,
    chooser: Optional[object] = None
) -> ServiceContainer:
    """
    Initialize the global service container.

    Should be called once at startup after infrastructure setup.

    Args:
        gateway: Persistence gateway instance
        cache: Optional Redis cache for selection reads
        chooser: Optional chooser override for weekly draws

    Returns:
        ServiceContainer: The initialized container
    """
    global _container

    _container = ServiceContainer(gateway=gateway, cache=cache, chooser=chooser)

    logger.info("Service container initialized")
    return _container
