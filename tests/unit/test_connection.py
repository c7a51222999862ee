"""Unit tests for the database pool wrapper (gradequest/db/connection.py)"""
import pytest
from unittest.mock import patch

from gradequest.db.connection import Database
from gradequest.db.queries import PostgresGateway
from gradequest.exceptions import PersistenceUnavailableError


@pytest.mark.asyncio
async def test_connection_before_init_is_unavailable():
    database = Database("postgresql://unused")

    with pytest.raises(PersistenceUnavailableError) as exc_info:
        async with database.connection():
            pass

    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_gateway_surfaces_uninitialized_pool():
    with patch('gradequest.db.queries.gamification.db', Database("postgresql://unused")):
        with pytest.raises(PersistenceUnavailableError):
            await PostgresGateway().read_profile_ledger_points("user-123")


@pytest.mark.asyncio
async def test_close_without_pool_is_noop():
    database = Database("postgresql://unused")

    await database.close_pool()

    assert database._pool is None
