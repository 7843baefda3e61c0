"""Detect agent farm server processes that tracked state no longer knows about."""

from __future__ import annotations

import logging
import re
from typing import Iterable

from agentfarm.errors import ProcessQueryError

from .farm_config import DEFAULT_ROLE_PATH_MARKER
from .process_control import ProcessControl

logger = logging.getLogger("agentfarm.supervisor.orphans")

_LEADING_PID = re.compile(r"^(\d+)")


def parse_leading_pid(line: str) -> int | None:
    """Return the first run of digits at the start of a process-table line."""
    match = _LEADING_PID.match(line.strip())
    if not match:
        return None
    return int(match.group(1))


def is_orphan_candidate(line: str, project_root: str, role_path_marker: str) -> bool:
    """A line belongs to this farm only when it names both the project and the server path."""
    return project_root in line and role_path_marker in line


def select_orphans(
    lines: Iterable[str],
    project_root: str,
    tracked_pids: set[int],
    role_path_marker: str = DEFAULT_ROLE_PATH_MARKER,
) -> list[int]:
    """Filter process-table lines down to untracked farm PIDs, in table order."""
    if not project_root.strip():
        return []
    orphans: list[int] = []
    for line in lines:
        if not is_orphan_candidate(line, project_root, role_path_marker):
            continue
        pid = parse_leading_pid(line)
        if pid is None:
            continue
        if pid in tracked_pids or pid in orphans:
            continue
        orphans.append(pid)
    return orphans


class OrphanScanner:
    """Read-only scan of the OS process table for untracked farm servers."""

    def __init__(
        self,
        process_control: ProcessControl,
        *,
        role_path_marker: str = DEFAULT_ROLE_PATH_MARKER,
    ) -> None:
        self.process_control = process_control
        self.role_path_marker = role_path_marker

    async def scan(self, project_root: str, tracked_pids: set[int]) -> list[int]:
        """Return orphan PIDs; an unavailable process table yields an empty list.

        An empty result does not prove that no orphans exist.
        """
        try:
            lines = await self.process_control.list_processes()
        except ProcessQueryError as exc:
            logger.debug("Orphan scan skipped: %s", exc)
            return []
        return select_orphans(lines, project_root, tracked_pids, self.role_path_marker)
