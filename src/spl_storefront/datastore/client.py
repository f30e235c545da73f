"""Datastore client: the storefront's async SQLAlchemy engine and sessions.

Webhook deliveries, admin requests and the operator CLI's repair pass all
write the ``transactions`` table through short, independent sessions; no
session is held across a Stripe or Solana call. On SQLite every
connection runs in WAL mode with a busy timeout so those writers queue on
the file lock instead of failing with ``database is locked``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from spl_storefront.config.settings import DatabaseEngine
from spl_storefront.datastore.engines import create_engine

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from spl_storefront.config.settings import DatabaseConfig

logger = logging.getLogger(__name__)

SQLITE_BUSY_TIMEOUT_MS = 5000


def _is_file_sqlite(config: DatabaseConfig) -> bool:
    return config.engine == DatabaseEngine.SQLITE and ":memory:" not in config.dsn


def _sqlite_pragmas(dbapi_connection: Any, _connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    cursor.close()


class Datastore:
    """Engine and session factory shared by the storefront services.

    Usage::

        ds = Datastore(db_config)
        await ds.open()
        async with ds.transaction() as session:
            session.add(row)
        await ds.close()
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self._config = config
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        """Return the underlying async engine.

        Raises:
            RuntimeError: If the datastore is not open.
        """
        if self._engine is None:
            msg = "Datastore is not open. Call open() first."
            raise RuntimeError(msg)
        return self._engine

    async def open(self) -> None:
        """Create the engine and session factory."""
        self._engine = create_engine(self._config)
        if _is_file_sqlite(self._config):
            event.listen(self._engine.sync_engine, "connect", _sqlite_pragmas)
        # Rows outlive their session: services return them to routes.
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.debug("Datastore opened (%s)", self._config.engine)

    async def close(self) -> None:
        """Dispose the engine and release all connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

    def session(self) -> AsyncSession:
        """Create a new async session; the caller commits.

        Raises:
            RuntimeError: If the datastore is not open.
        """
        if self._session_factory is None:
            msg = "Datastore is not open. Call open() first."
            raise RuntimeError(msg)
        return self._session_factory()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session scoped to one unit of work: commit on exit, roll back on error."""
        async with self.session() as session, session.begin():
            yield session

    async def ping(self) -> None:
        """Round-trip ``SELECT 1``; raises whatever the driver raises."""
        async with self.session() as session:
            await session.execute(text("SELECT 1"))

    @property
    def is_open(self) -> bool:
        """Check if the datastore is open."""
        return self._engine is not None
