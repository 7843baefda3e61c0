"""Tests for the stop sweep: ordering, failure isolation and state clearing."""

from __future__ import annotations

import asyncio
import unittest

from agentfarm.errors import LivenessCheckError, ProcessQueryError, StateStoreError, TerminationError
from agentfarm.supervisor.models import ProcessEntry, Role, SupervisorState, TargetStatus
from agentfarm.supervisor.shutdown import StopEngine, format_stop_summary

PROJECT = "/home/dev/proj"
MARKER = "agent-farm/servers/"


class _FakeStore:
    def __init__(self, state: SupervisorState | None = None) -> None:
        self.state = state or SupervisorState()
        self.clear_calls = 0
        self.load_error: Exception | None = None
        self.clear_error: Exception | None = None
        self.events: list[str] | None = None

    async def load(self) -> SupervisorState:
        if self.load_error is not None:
            raise self.load_error
        return self.state

    async def clear(self) -> None:
        self.clear_calls += 1
        if self.events is not None:
            self.events.append("clear")
        if self.clear_error is not None:
            raise self.clear_error
        self.state = SupervisorState()


class _FakeProcessControl:
    def __init__(
        self,
        running: set[int] | None = None,
        lines: list[str] | None = None,
    ) -> None:
        self.running = set(running or ())
        self.lines = lines or []
        self.terminate_errors: dict[int, Exception] = {}
        self.liveness_errors: dict[int, Exception] = {}
        self.query_error: Exception | None = None
        self.hang_on_terminate: set[int] = set()
        self.events: list[str] = []
        self.terminated: list[int] = []

    async def is_running(self, pid: int) -> bool:
        self.events.append(f"check {pid}")
        if pid in self.liveness_errors:
            raise self.liveness_errors[pid]
        return pid in self.running

    async def terminate(self, pid: int) -> None:
        self.events.append(f"terminate {pid}")
        if pid in self.hang_on_terminate:
            await asyncio.sleep(10)
        if pid in self.terminate_errors:
            raise self.terminate_errors[pid]
        self.running.discard(pid)
        self.terminated.append(pid)

    async def list_processes(self) -> list[str]:
        self.events.append("list")
        if self.query_error is not None:
            raise self.query_error
        return [line for line in self.lines if int(line.split()[0]) in self.running]


def _engine(store: _FakeStore, control: _FakeProcessControl, timeout: float | None = None) -> StopEngine:
    return StopEngine(
        store,
        control,
        project_root=PROJECT,
        role_path_marker=MARKER,
        call_timeout_seconds=timeout,
    )


def _server_line(pid: int) -> str:
    return f"{pid} node {PROJECT}/dist/{MARKER}dashboard-server.js"


class StopEngineTests(unittest.IsolatedAsyncioTestCase):
    """Validate stop outcome accounting across tracked and orphan phases."""

    async def test_architect_and_builders_scenario(self) -> None:
        store = _FakeStore(
            SupervisorState(
                architect=ProcessEntry(role=Role.ARCHITECT, pid=100),
                builders=[
                    ProcessEntry(role=Role.BUILDER, id="b1", pid=101),
                    ProcessEntry(role=Role.BUILDER, id="b2", pid=102),
                ],
            )
        )
        control = _FakeProcessControl(running={100, 101})
        outcome = await _engine(store, control).stop()

        self.assertEqual(outcome.attempted, 3)
        self.assertEqual(outcome.stopped, 2)
        self.assertEqual(outcome.skipped, 1)
        self.assertEqual(outcome.failures, [])
        self.assertEqual(control.terminated, [100, 101])
        self.assertNotIn("terminate 102", control.events)
        self.assertEqual(store.clear_calls, 1)
        self.assertTrue(outcome.state_cleared)
        self.assertEqual(
            [result.status for result in outcome.results],
            [TargetStatus.TERMINATED, TargetStatus.TERMINATED, TargetStatus.NOT_RUNNING],
        )

    async def test_orphan_only_scenario(self) -> None:
        store = _FakeStore()
        control = _FakeProcessControl(running={999}, lines=[_server_line(999)])
        outcome = await _engine(store, control).stop()

        self.assertEqual(outcome.attempted, 1)
        self.assertEqual(outcome.stopped, 1)
        self.assertEqual(outcome.orphan_pids, [999])
        self.assertEqual(outcome.results[0].target, "orphan 999")
        self.assertIsNone(outcome.results[0].role)

    async def test_termination_failure_is_isolated(self) -> None:
        store = _FakeStore(
            SupervisorState(
                builders=[
                    ProcessEntry(role=Role.BUILDER, id="b50", pid=50),
                    ProcessEntry(role=Role.BUILDER, id="b51", pid=51),
                ],
                utils=[ProcessEntry(role=Role.UTIL, id="u1", pid=60)],
            )
        )
        control = _FakeProcessControl(running={50, 51, 60})
        control.terminate_errors[50] = TerminationError(
            "permission denied signaling PID 50", pid=50, error_code="ACCESS_DENIED"
        )
        outcome = await _engine(store, control).stop()

        self.assertEqual(outcome.stopped, 2)
        self.assertEqual(len(outcome.failures), 1)
        failure = outcome.failures[0]
        self.assertEqual(failure.target, "builder b50")
        self.assertEqual(failure.pid, 50)
        self.assertEqual(failure.error_code, "ACCESS_DENIED")
        self.assertEqual(control.terminated, [51, 60])
        self.assertEqual(store.clear_calls, 1)

    async def test_state_cleared_once_when_every_termination_fails(self) -> None:
        store = _FakeStore(
            SupervisorState(
                architect=ProcessEntry(role=Role.ARCHITECT, pid=1),
                annotations=[ProcessEntry(role=Role.ANNOTATION, id="a1", pid=2)],
            )
        )
        control = _FakeProcessControl(running={1, 2})
        control.terminate_errors[1] = TerminationError("gone", pid=1, error_code="PROCESS_GONE")
        control.liveness_errors[2] = LivenessCheckError("cannot check PID 2", pid=2)
        outcome = await _engine(store, control).stop()

        self.assertEqual(store.clear_calls, 1)
        self.assertEqual(outcome.stopped, 0)
        self.assertEqual([f.target for f in outcome.failures], ["architect", "annotation a1"])
        self.assertEqual([f.error_code for f in outcome.failures], ["PROCESS_GONE", "LIVENESS_FAILED"])

    async def test_phase_order_clear_between_tracked_and_orphans(self) -> None:
        store = _FakeStore(
            SupervisorState(
                architect=ProcessEntry(role=Role.ARCHITECT, pid=10),
                utils=[ProcessEntry(role=Role.UTIL, id="u1", pid=30)],
                builders=[ProcessEntry(role=Role.BUILDER, id="b1", pid=20)],
            )
        )
        control = _FakeProcessControl(running={10, 20, 30, 40}, lines=[_server_line(40)])
        store.events = control.events
        await _engine(store, control).stop()

        self.assertEqual(
            control.events,
            [
                "check 10",
                "terminate 10",
                "check 20",
                "terminate 20",
                "check 30",
                "terminate 30",
                "clear",
                "list",
                "check 40",
                "terminate 40",
            ],
        )

    async def test_orphan_scan_excludes_pids_tracked_before_clear(self) -> None:
        store = _FakeStore(SupervisorState(builders=[ProcessEntry(role=Role.BUILDER, id="b1", pid=20)]))
        control = _FakeProcessControl(running={20}, lines=[_server_line(20)])
        control.terminate_errors[20] = TerminationError("denied", pid=20, error_code="ACCESS_DENIED")
        outcome = await _engine(store, control).stop()

        self.assertEqual(outcome.orphan_pids, [])
        self.assertEqual(outcome.attempted, 1)

    async def test_second_stop_is_idempotent(self) -> None:
        store = _FakeStore(SupervisorState(architect=ProcessEntry(role=Role.ARCHITECT, pid=100)))
        control = _FakeProcessControl(running={100, 999}, lines=[_server_line(999)])
        engine = _engine(store, control)

        first = await engine.stop()
        second = await engine.stop()

        self.assertEqual(first.stopped, 2)
        self.assertEqual(second.stopped, 0)
        self.assertEqual(second.attempted, 0)
        self.assertEqual(second.failures, [])
        self.assertEqual(format_stop_summary(second), "No processes were running")

    async def test_orphan_query_failure_still_returns_summary(self) -> None:
        store = _FakeStore(SupervisorState(architect=ProcessEntry(role=Role.ARCHITECT, pid=5)))
        control = _FakeProcessControl(running={5})
        control.query_error = ProcessQueryError("ps unavailable")
        outcome = await _engine(store, control).stop()

        self.assertEqual(outcome.stopped, 1)
        self.assertEqual(outcome.orphan_pids, [])
        self.assertEqual(outcome.failures, [])
        self.assertEqual(format_stop_summary(outcome), "Stopped 1 process(es)")

    async def test_hung_termination_times_out_and_sweep_continues(self) -> None:
        store = _FakeStore(
            SupervisorState(
                builders=[
                    ProcessEntry(role=Role.BUILDER, id="slow", pid=70),
                    ProcessEntry(role=Role.BUILDER, id="fast", pid=71),
                ]
            )
        )
        control = _FakeProcessControl(running={70, 71})
        control.hang_on_terminate.add(70)
        outcome = await _engine(store, control, timeout=0.05).stop()

        self.assertEqual(outcome.stopped, 1)
        self.assertEqual(outcome.failures[0].target, "builder slow")
        self.assertEqual(outcome.failures[0].error_code, "TIMEOUT")
        self.assertEqual(store.clear_calls, 1)

    async def test_state_load_failure_still_clears_and_scans(self) -> None:
        store = _FakeStore()
        store.load_error = StateStoreError("database is locked")
        control = _FakeProcessControl(running={999}, lines=[_server_line(999)])
        outcome = await _engine(store, control).stop()

        self.assertEqual(store.clear_calls, 1)
        self.assertEqual(outcome.stopped, 1)
        self.assertEqual(outcome.failures[0].target, "state")
        self.assertEqual(outcome.failures[0].error_code, "STATE_STORE_FAILED")

    async def test_state_clear_failure_is_reported(self) -> None:
        store = _FakeStore(SupervisorState(architect=ProcessEntry(role=Role.ARCHITECT, pid=5)))
        store.clear_error = StateStoreError("disk full")
        control = _FakeProcessControl(running={5})
        outcome = await _engine(store, control).stop()

        self.assertFalse(outcome.state_cleared)
        self.assertEqual(outcome.stopped, 1)
        self.assertEqual([f.target for f in outcome.failures], ["state"])

    async def test_failure_fingerprint_is_deterministic(self) -> None:
        def _build() -> tuple[_FakeStore, _FakeProcessControl]:
            store = _FakeStore(SupervisorState(utils=[ProcessEntry(role=Role.UTIL, id="u1", pid=8)]))
            control = _FakeProcessControl(running={8})
            control.terminate_errors[8] = TerminationError("boom", pid=8)
            return store, control

        first = await _engine(*_build()).stop()
        second = await _engine(*_build()).stop()
        self.assertEqual(first.failures[0].fingerprint, second.failures[0].fingerprint)
        self.assertEqual(first.failures[0].error_schema_version, "error.v1")


if __name__ == "__main__":
    unittest.main()
