"""Database engine factories: SQLite, PostgreSQL, MySQL.

Provides async SQLAlchemy engine creation with support for:
- SQLite (aiosqlite driver)
- PostgreSQL (asyncpg driver)
- MySQL (aiomysql driver)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from spl_storefront.config.settings import DatabaseEngine

if TYPE_CHECKING:
    from spl_storefront.config.settings import DatabaseConfig


def create_engine(config: DatabaseConfig) -> AsyncEngine:
    """Create an async SQLAlchemy engine from database configuration.

    Args:
        config: Database configuration with DSN, pool settings, etc.

    Returns:
        A configured ``AsyncEngine`` ready for use.
    """
    kwargs: dict[str, Any] = {
        "echo": config.debug_sql,
    }

    # SQLite doesn't support pool settings in the same way
    if "sqlite" not in config.dsn:
        kwargs["pool_size"] = config.max_idle_connections
        kwargs["max_overflow"] = config.max_open_connections - config.max_idle_connections
        kwargs["pool_pre_ping"] = True

    # MySQL drops idle connections after wait_timeout (8h by default)
    if config.engine == DatabaseEngine.MYSQL:
        kwargs["pool_recycle"] = 1800

    return create_async_engine(config.dsn, **kwargs)
