"""Cache-first reads of weekly selections"""
import logging
from datetime import datetime
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from gradequest.cache.redis_client import RedisCache
from gradequest.config import SELECTION_CACHE_TTL
from gradequest.gamification.week_clock import week_key
from gradequest.models.achievement import WeeklySelection

logger = logging.getLogger(__name__)


def selection_cache_key(user_id: str, week_start: datetime) -> str:
    return f"weekly_selection:{user_id}:{week_key(week_start)}"


class SelectionCache:
    """
    Read-through cache in front of the persistence gateway

    A missing or disabled Redis client turns every call into a no-op miss.
    """

    def __init__(self, cache: Optional[RedisCache], ttl: int = SELECTION_CACHE_TTL):
        self.cache = cache
        self.ttl = ttl

    async def try_cache(self, user_id: str, week_start: datetime) -> Optional[WeeklySelection]:
        if self.cache is None:
            return None

        key = selection_cache_key(user_id, week_start)
        data = await self.cache.get(key)
        if data is None:
            return None

        try:
            return WeeklySelection.model_validate(data)
        except PydanticValidationError as e:
            logger.warning(f"Discarding unreadable cached selection {key}: {e.error_count()} error(s)")
            await self.cache.delete(key)
            return None

    async def store(self, selection: WeeklySelection) -> None:
        if self.cache is None:
            return

        key = selection_cache_key(selection.user_id, selection.week_start)
        await self.cache.set(key, selection.model_dump(mode="json"), ttl=self.ttl)

    async def invalidate(self, user_id: str, week_start: datetime) -> None:
        if self.cache is None:
            return

        await self.cache.delete(selection_cache_key(user_id, week_start))
