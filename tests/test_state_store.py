"""Tests for the SQLite-backed supervisor state store."""

import tempfile
import unittest
from pathlib import Path

import aiosqlite

from agentfarm.supervisor.models import ProcessEntry, Role, SupervisorState
from agentfarm.supervisor.state import StateStore


class StateStoreTests(unittest.IsolatedAsyncioTestCase):
    """Validate load/clear semantics, ordering and tolerance of bad rows."""

    async def asyncSetUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmpdir.name) / ".agent-farm" / "state.db"
        self.store = StateStore(self.db_path)

    async def asyncTearDown(self) -> None:
        self._tmpdir.cleanup()

    async def test_missing_database_loads_empty_and_clear_is_noop(self) -> None:
        state = await self.store.load()
        self.assertTrue(state.is_empty())
        await self.store.clear()
        self.assertFalse(self.db_path.exists())

    async def test_save_and_load_preserves_role_order(self) -> None:
        state = SupervisorState(
            architect=ProcessEntry(role=Role.ARCHITECT, pid=100),
            builders=[
                ProcessEntry(role=Role.BUILDER, id="b2", pid=102),
                ProcessEntry(role=Role.BUILDER, id="b1", pid=101),
            ],
            utils=[ProcessEntry(role=Role.UTIL, id="u1", pid=200)],
            annotations=[ProcessEntry(role=Role.ANNOTATION, id="a1", pid=300)],
        )
        await self.store.save(state)
        loaded = await self.store.load()
        self.assertEqual(loaded, state)
        self.assertEqual([entry.id for entry in loaded.builders], ["b2", "b1"])

    async def test_clear_removes_all_entries(self) -> None:
        await self.store.record_entry(ProcessEntry(role=Role.ARCHITECT, pid=1))
        await self.store.record_entry(ProcessEntry(role=Role.UTIL, id="u1", pid=2))
        await self.store.clear()
        self.assertTrue((await self.store.load()).is_empty())

    async def test_invalid_rows_are_skipped(self) -> None:
        await self.store.record_entry(ProcessEntry(role=Role.BUILDER, id="good", pid=5))
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("INSERT INTO builders (id, pid) VALUES (?, ?)", ("bad", -3))
            await db.execute("INSERT INTO utils (id, pid) VALUES (?, ?)", ("", 9))
            await db.commit()
        loaded = await self.store.load()
        self.assertEqual([entry.id for entry in loaded.builders], ["good"])
        self.assertEqual(loaded.utils, [])


if __name__ == "__main__":
    unittest.main()
