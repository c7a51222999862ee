"""
Database queries

Module organization:
- gamification.py: PostgreSQL implementation of the persistence gateway
"""

from gradequest.db.queries.gamification import PostgresGateway

__all__ = ["PostgresGateway"]
