"""Create the school schema and the scheduling tables if they are missing.

Usage: python -m app.db.schema_check
"""

import asyncio
import logging
from typing import List

from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncEngine

import app.core.models  # noqa: F401  (registers all tables on Base.metadata)
from app.core.logging import configure_logging
from app.db.session import Base, engine

logger = logging.getLogger(__name__)

SCHEMA = "school"


async def ensure_tables(db_engine: AsyncEngine) -> List[str]:
    """Create missing tables (dependency order is resolved by metadata). Returns the names created."""
    async with db_engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA};"))

        def _missing(sync_conn) -> List[str]:
            inspector = inspect(sync_conn)
            existing = set(inspector.get_table_names(schema=SCHEMA))
            return [t.name for t in Base.metadata.sorted_tables if t.name not in existing]

        missing = await conn.run_sync(_missing)
        await conn.run_sync(Base.metadata.create_all)
    return missing


async def main() -> None:
    configure_logging()
    created = await ensure_tables(engine)
    if created:
        logger.info("Created tables: %s", ", ".join(created))
    else:
        logger.info("All scheduling tables already exist")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
