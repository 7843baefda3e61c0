"""State database connection helpers."""

import logging
from pathlib import Path

import aiosqlite

from .migrations import run_migrations

logger = logging.getLogger("agentfarm.supervisor.database")


async def init_db(db_path: Path) -> None:
    """Create the state database and apply migrations."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    logger.debug("Initializing state database at %s", db_path)
    async with aiosqlite.connect(db_path) as db:
        await run_migrations(db)


async def get_db(db_path: Path):
    """Yield a migrated connection with row access by column name."""
    await init_db(db_path)
    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        yield db
