"""
Database connection and store management
"""

import asyncpg
import logging
from typing import Optional

from users_service.config.settings import DATABASE_URL, DB_POOL_MIN_SIZE, DB_POOL_MAX_SIZE, DB_COMMAND_TIMEOUT
from users_service.database.store import CREATE_USERS_TABLE, InMemoryUserStore, PostgresUserStore, UserStore

logger = logging.getLogger(__name__)

# Global database pool
db_pool: Optional[asyncpg.Pool] = None

# Fallback store when no DATABASE_URL is configured
_memory_store = InMemoryUserStore()


async def init_database():
    """Initialize database connection pool and the users table"""
    global db_pool
    if not DATABASE_URL:
        logger.info("Using in-memory user store")
        return

    db_pool = await asyncpg.create_pool(
        DATABASE_URL,
        min_size=DB_POOL_MIN_SIZE,
        max_size=DB_POOL_MAX_SIZE,
        command_timeout=DB_COMMAND_TIMEOUT,
        statement_cache_size=0  # Fix for pgbouncer compatibility
    )

    async with db_pool.acquire() as conn:
        await conn.execute(CREATE_USERS_TABLE)

    logger.info("Database initialized successfully")


async def close_database():
    """Close database connection pool"""
    global db_pool
    if db_pool:
        await db_pool.close()
        db_pool = None
    logger.info("Database connections closed")


def get_db_pool() -> Optional[asyncpg.Pool]:
    """Get the database pool instance"""
    return db_pool


def get_user_store() -> UserStore:
    """Store backing the users API: PostgreSQL when a pool exists, memory otherwise"""
    pool = get_db_pool()
    if pool is not None:
        return PostgresUserStore(pool)
    return _memory_store
