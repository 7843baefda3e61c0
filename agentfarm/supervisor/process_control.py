"""OS process primitives used by the stop sweep: liveness, terminate, table query."""

from __future__ import annotations

import asyncio
import logging
import shutil
import subprocess
import sys

import psutil

from agentfarm.errors import LivenessCheckError, ProcessQueryError, TerminationError

logger = logging.getLogger("agentfarm.supervisor.process_control")

PS_COMMAND = ["ps", "-eo", "pid,command"]


def pid_is_running(pid: int) -> bool:
    """Return True when ``pid`` exists and is not a zombie."""
    if pid <= 0:
        return False
    try:
        if not psutil.pid_exists(pid):
            return False
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # Exists but belongs to someone else.
        return True
    except psutil.Error as exc:
        raise LivenessCheckError(f"cannot check PID {pid}: {exc}", pid=pid) from exc


def terminate_pid(pid: int) -> None:
    """Send the termination signal (SIGTERM on POSIX) to ``pid``."""
    try:
        psutil.Process(pid).terminate()
    except psutil.NoSuchProcess as exc:
        raise TerminationError(f"PID {pid} no longer exists", pid=pid, error_code="PROCESS_GONE") from exc
    except psutil.AccessDenied as exc:
        raise TerminationError(f"permission denied signaling PID {pid}", pid=pid, error_code="ACCESS_DENIED") from exc
    except (psutil.Error, OSError) as exc:
        raise TerminationError(f"failed to signal PID {pid}: {exc}", pid=pid) from exc


def _format_psutil_table() -> list[str]:
    lines: list[str] = []
    for proc in psutil.process_iter(["pid", "cmdline"]):
        cmdline = proc.info.get("cmdline") or []
        lines.append(f"{proc.info['pid']} {' '.join(cmdline)}")
    return lines


class ProcessControl:
    """Thread-offloaded process operations for the asyncio stop sweep."""

    def __init__(self, *, use_ps: bool | None = None) -> None:
        if use_ps is None:
            use_ps = sys.platform != "win32" and shutil.which("ps") is not None
        self.use_ps = use_ps

    async def is_running(self, pid: int) -> bool:
        return await asyncio.to_thread(pid_is_running, pid)

    async def terminate(self, pid: int) -> None:
        await asyncio.to_thread(terminate_pid, pid)

    async def list_processes(self) -> list[str]:
        """Return the process table as ``"<pid> <command line>"`` text lines."""
        if not self.use_ps:
            try:
                return await asyncio.to_thread(_format_psutil_table)
            except psutil.Error as exc:
                raise ProcessQueryError(f"psutil process listing failed: {exc}") from exc
        try:
            result = await asyncio.to_thread(
                subprocess.run,
                PS_COMMAND,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except (OSError, ValueError) as exc:
            raise ProcessQueryError(f"cannot run {' '.join(PS_COMMAND)}: {exc}") from exc
        if result.returncode != 0:
            raise ProcessQueryError(
                f"{' '.join(PS_COMMAND)} exited with {result.returncode}: {(result.stderr or '').strip()}"
            )
        return result.stdout.splitlines()
