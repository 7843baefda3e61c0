"""Stop sweep: terminate tracked agent farm processes, clear state, reap orphans."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, TypeVar

from agentfarm.failures import build_stop_failure, classify_stop_error, describe_error

from .farm_config import DEFAULT_ROLE_PATH_MARKER, DEFAULT_TERMINATION_TIMEOUT_SECONDS, FarmConfig
from .models import Role, StopOutcome, SupervisorState, TargetResult, TargetStatus
from .orphans import OrphanScanner
from .process_control import ProcessControl
from .state import StateStore
from .tracked import resolve_tracked

logger = logging.getLogger("agentfarm.supervisor.shutdown")

STATE_TARGET = "state"

T = TypeVar("T")


@dataclass(frozen=True)
class StopTarget:
    """One PID the sweep will check and possibly terminate."""

    label: str
    pid: int
    role: Role | None = None


class StopEngine:
    """Runs one stop sweep over tracked entries and orphans.

    Phases run in a fixed order: tracked entries (architect, builders, utils,
    annotations), state clear, orphan scan, orphan termination. A failure on
    one target is recorded in the outcome and the sweep moves on; nothing
    short of cancellation aborts it.
    """

    def __init__(
        self,
        store: StateStore,
        process_control: ProcessControl,
        *,
        project_root: str,
        scanner: OrphanScanner | None = None,
        role_path_marker: str = DEFAULT_ROLE_PATH_MARKER,
        call_timeout_seconds: float | None = DEFAULT_TERMINATION_TIMEOUT_SECONDS,
    ) -> None:
        self.store = store
        self.process_control = process_control
        self.project_root = project_root
        self.scanner = scanner or OrphanScanner(process_control, role_path_marker=role_path_marker)
        self.call_timeout_seconds = call_timeout_seconds

    async def stop(self) -> StopOutcome:
        outcome = StopOutcome()
        logger.info("Stopping Agent Farm")

        state = await self._load_state(outcome)
        entries, tracked_pids = resolve_tracked(state)

        for entry in entries:
            logger.info("Stopping %s (PID: %s)", entry.label, entry.pid)
            await self._stop_target(StopTarget(label=entry.label, pid=entry.pid, role=entry.role), outcome)

        outcome.state_cleared = await self._clear_state(outcome)

        orphans = await self.scanner.scan(self.project_root, tracked_pids)
        outcome.orphan_pids = list(orphans)
        if orphans:
            logger.info("Found %d orphan process(es)", len(orphans))
        for pid in orphans:
            logger.info("Stopping orphan PID %s", pid)
            await self._stop_target(StopTarget(label=f"orphan {pid}", pid=pid), outcome)

        logger.info(format_stop_summary(outcome))
        return outcome

    async def _call(self, operation: Awaitable[T]) -> T:
        if self.call_timeout_seconds is None:
            return await operation
        return await asyncio.wait_for(operation, timeout=self.call_timeout_seconds)

    async def _stop_target(self, target: StopTarget, outcome: StopOutcome) -> None:
        """Check one PID and terminate it if it is running."""
        outcome.attempted += 1
        try:
            running = await self._call(self.process_control.is_running(target.pid))
            if not running:
                logger.debug("%s (PID: %s) is not running", target.label, target.pid)
                outcome.skipped += 1
                status = TargetStatus.NOT_RUNNING
            else:
                await self._call(self.process_control.terminate(target.pid))
                outcome.stopped += 1
                status = TargetStatus.TERMINATED
        except Exception as exc:
            message = describe_error(exc)
            logger.warning("Failed to stop %s: %s", target.label, message)
            outcome.failures.append(
                build_stop_failure(
                    target=target.label,
                    error_code=classify_stop_error(exc),
                    message=message,
                    pid=target.pid,
                )
            )
            status = TargetStatus.FAILED
        outcome.results.append(
            TargetResult(target=target.label, pid=target.pid, role=target.role, status=status)
        )

    async def _load_state(self, outcome: StopOutcome) -> SupervisorState:
        try:
            return await self.store.load()
        except Exception as exc:
            message = describe_error(exc)
            logger.warning("Failed to load supervisor state, continuing with orphan scan only: %s", message)
            outcome.failures.append(
                build_stop_failure(
                    target=STATE_TARGET,
                    error_code=classify_stop_error(exc),
                    message=message,
                )
            )
            return SupervisorState()

    async def _clear_state(self, outcome: StopOutcome) -> bool:
        try:
            await self.store.clear()
        except Exception as exc:
            message = describe_error(exc)
            logger.warning("Failed to clear supervisor state: %s", message)
            outcome.failures.append(
                build_stop_failure(
                    target=STATE_TARGET,
                    error_code=classify_stop_error(exc),
                    message=message,
                )
            )
            return False
        return True


def format_stop_summary(outcome: StopOutcome) -> str:
    if outcome.stopped > 0:
        return f"Stopped {outcome.stopped} process(es)"
    return "No processes were running"


def build_stop_engine(
    config: FarmConfig,
    *,
    process_control: ProcessControl | None = None,
    store: StateStore | None = None,
) -> StopEngine:
    """Wire a StopEngine from project configuration."""
    return StopEngine(
        store or StateStore(config.state_db_path),
        process_control or ProcessControl(),
        project_root=str(config.project_root),
        role_path_marker=config.role_path_marker,
        call_timeout_seconds=config.termination_timeout_seconds,
    )


async def stop_agent_farm(config: FarmConfig, **kwargs) -> StopOutcome:
    """Stop every tracked and orphaned agent farm process for a project."""
    return await build_stop_engine(config, **kwargs).stop()
