"""Schema bootstrap for the storefront tables.

``run_auto_migrate`` creates ``transactions``, ``webhook_logs`` and
``token_configuration`` straight from the ORM metadata when they are
missing; it is meant for development, tests and single-node SQLite
installs. Production deployments run the Alembic revisions under
``alembic/``, after which this is a no-op.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import inspect

from spl_storefront.engine.models.base import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


async def run_auto_migrate(engine: AsyncEngine) -> list[str]:
    """Create any missing storefront tables.

    Returns:
        Names of the tables that were created, in dependency order.
    """
    # Registers every model with Base.metadata
    import spl_storefront.engine.models  # noqa: F401

    async with engine.begin() as conn:
        existing = await conn.run_sync(lambda c: set(inspect(c).get_table_names()))
        await conn.run_sync(Base.metadata.create_all)

    created = [t.name for t in Base.metadata.sorted_tables if t.name not in existing]
    if created:
        logger.info("Created storefront tables: %s", ", ".join(created))
    return created
