"""Process startup and shutdown for the weekly achievement engine"""
import logging
import asyncio

from gradequest.cache.redis_client import close_cache, get_cache, init_cache
from gradequest.config import ENABLE_CACHE, REDIS_URL, validate_config
from gradequest.db.connection import db
from gradequest.db.queries import PostgresGateway
from gradequest.logging_config import configure_logging
from gradequest.services.container import ServiceContainer, init_container

logger = logging.getLogger(__name__)


async def startup() -> ServiceContainer:
    """Validate config, open the pool and cache, and build the service container"""
    configure_logging()

    logger.info("Validating configuration...")
    validate_config()

    logger.info("Initializing database connection pool...")
    await db.init_pool()

    logger.info("Connecting selection cache...")
    cache = await init_cache(REDIS_URL, enabled=ENABLE_CACHE)

    return init_container(PostgresGateway(), cache=cache)


async def shutdown() -> None:
    cache = get_cache()
    if cache:
        logger.info(f"Selection cache stats: {cache.get_stats()}")

    logger.info("Closing selection cache...")
    await close_cache()

    logger.info("Closing database connection...")
    await db.close_pool()

    logger.info("Shutdown complete")


async def main() -> None:
    """Start everything, confirm the service wires up, then shut down"""
    try:
        container = await startup()
        service = container.weekly_achievement_service
        logger.info(f"{type(service).__name__} ready")
    finally:
        await shutdown()


if __name__ == "__main__":
    asyncio.run(main())
