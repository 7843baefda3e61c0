"""Persisted supervisor state backed by the project state database."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite
from pydantic import ValidationError

from agentfarm.errors import StateStoreError

from .database import get_db
from .models import ProcessEntry, Role, SupervisorState

logger = logging.getLogger("agentfarm.supervisor.state")

ROLE_TABLES = {
    Role.BUILDER: "builders",
    Role.UTIL: "utils",
    Role.ANNOTATION: "annotations",
}


class StateStore:
    """Reads, clears and seeds the tracked process record for one project.

    A missing database file is treated as empty state: ``load`` returns an
    empty ``SupervisorState`` and ``clear`` does nothing.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    async def load(self) -> SupervisorState:
        if not self.db_path.exists():
            return SupervisorState()
        try:
            async for db in get_db(self.db_path):
                architect = await self._load_architect(db)
                builders = await self._load_role(db, Role.BUILDER)
                utils = await self._load_role(db, Role.UTIL)
                annotations = await self._load_role(db, Role.ANNOTATION)
        except (aiosqlite.Error, OSError) as exc:
            raise StateStoreError(f"failed to load state from {self.db_path}: {exc}") from exc
        return SupervisorState(
            architect=architect,
            builders=builders,
            utils=utils,
            annotations=annotations,
        )

    async def clear(self) -> None:
        if not self.db_path.exists():
            return
        try:
            async for db in get_db(self.db_path):
                await db.execute("DELETE FROM architect")
                for table in ROLE_TABLES.values():
                    await db.execute(f"DELETE FROM {table}")
                await db.commit()
        except (aiosqlite.Error, OSError) as exc:
            raise StateStoreError(f"failed to clear state at {self.db_path}: {exc}") from exc
        logger.debug("Cleared supervisor state at %s", self.db_path)

    async def save(self, state: SupervisorState) -> None:
        """Replace persisted state with ``state``."""
        try:
            async for db in get_db(self.db_path):
                await db.execute("DELETE FROM architect")
                for table in ROLE_TABLES.values():
                    await db.execute(f"DELETE FROM {table}")
                if state.architect is not None:
                    await self._insert(db, state.architect)
                for entry in (*state.builders, *state.utils, *state.annotations):
                    await self._insert(db, entry)
                await db.commit()
        except (aiosqlite.Error, OSError) as exc:
            raise StateStoreError(f"failed to save state to {self.db_path}: {exc}") from exc

    async def record_entry(self, entry: ProcessEntry) -> None:
        """Insert or replace a single tracked entry."""
        try:
            async for db in get_db(self.db_path):
                await self._insert(db, entry)
                await db.commit()
        except (aiosqlite.Error, OSError) as exc:
            raise StateStoreError(f"failed to record {entry.label}: {exc}") from exc

    async def _insert(self, db: aiosqlite.Connection, entry: ProcessEntry) -> None:
        if entry.role == Role.ARCHITECT:
            await db.execute(
                "INSERT OR REPLACE INTO architect (id, pid) VALUES (1, ?)",
                (entry.pid,),
            )
            return
        table = ROLE_TABLES[entry.role]
        await db.execute(
            f"INSERT OR REPLACE INTO {table} (id, pid) VALUES (?, ?)",
            (entry.id, entry.pid),
        )

    async def _load_architect(self, db: aiosqlite.Connection) -> ProcessEntry | None:
        async with db.execute("SELECT pid FROM architect WHERE id = 1") as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        try:
            return ProcessEntry(role=Role.ARCHITECT, pid=row["pid"])
        except ValidationError:
            logger.warning("Skipping architect row with invalid pid: %r", row["pid"])
            return None

    async def _load_role(self, db: aiosqlite.Connection, role: Role) -> list[ProcessEntry]:
        table = ROLE_TABLES[role]
        async with db.execute(f"SELECT id, pid FROM {table} ORDER BY rowid") as cursor:
            rows = await cursor.fetchall()
        entries: list[ProcessEntry] = []
        for row in rows:
            try:
                entries.append(ProcessEntry(role=role, id=row["id"], pid=row["pid"]))
            except ValidationError:
                logger.warning(
                    "Skipping %s row with invalid id/pid: id=%r pid=%r",
                    role.value,
                    row["id"],
                    row["pid"],
                )
        return entries
