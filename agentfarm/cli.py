import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from platformdirs import user_log_dir

from agentfarm.errors import AgentFarmError
from agentfarm.supervisor.farm_config import FarmConfig, load_config, resolve_project_root
from agentfarm.supervisor.models import StopOutcome
from agentfarm.supervisor.orphans import OrphanScanner
from agentfarm.supervisor.process_control import ProcessControl
from agentfarm.supervisor.shutdown import format_stop_summary, stop_agent_farm
from agentfarm.supervisor.state import StateStore
from agentfarm.supervisor.tracked import resolve_tracked

app = typer.Typer(help="Manage agent farm processes for a project.")

LOG_DIR = Path(user_log_dir("agentfarm"))
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("agentfarm.cli")


def _configure_logging(verbose: bool) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(LOG_DIR / "agentfarm.log", encoding="utf-8"))
    except OSError as exc:
        file_error = exc
    else:
        file_error = None
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        handlers=handlers,
    )
    if file_error is not None:
        logger.debug("File logging disabled, cannot write to %s: %s", LOG_DIR, file_error)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every sweep step"),
):
    """Agent farm process tools."""
    _configure_logging(verbose)


def _load_project_config(project_root: Optional[Path]) -> FarmConfig:
    return load_config(resolve_project_root(project_root))


def _print_stop_outcome_human(outcome: StopOutcome) -> None:
    """Print compact stop summary for humans."""
    if outcome.orphan_pids:
        typer.echo(f"Found {len(outcome.orphan_pids)} orphan process(es)")
    for failure in outcome.failures:
        typer.echo(f"  Failed to stop {failure.target}: {failure.error}")
    if not outcome.state_cleared:
        typer.echo("  Warning: supervisor state was not cleared")
    typer.echo(format_stop_summary(outcome))


@app.command()
def stop(
    project_root: Optional[Path] = typer.Option(None, "--project-root", help="Project whose farm to stop"),
    json_output: bool = typer.Option(False, "--json", help="Print full JSON stop outcome"),
    fail_on_error: bool = typer.Option(
        False, "--fail-on-error", help="Exit 1 when any target could not be stopped"
    ),
):
    """Stop all agent farm processes, including orphans."""
    config = _load_project_config(project_root)
    outcome = asyncio.run(stop_agent_farm(config))
    if json_output:
        typer.echo(json.dumps(outcome.model_dump(mode="json"), indent=2))
    else:
        _print_stop_outcome_human(outcome)
    if fail_on_error and outcome.failures:
        raise typer.Exit(code=1)


async def _build_status_snapshot(config: FarmConfig, process_control: ProcessControl) -> dict:
    """Collect tracked entries with liveness plus untracked orphans; signals nothing."""
    state = await StateStore(config.state_db_path).load()
    entries, tracked_pids = resolve_tracked(state)
    tracked: list[dict[str, object]] = []
    for entry in entries:
        try:
            running: bool | None = await process_control.is_running(entry.pid)
        except AgentFarmError as exc:
            logger.warning("Cannot check %s (PID: %s): %s", entry.label, entry.pid, exc)
            running = None
        tracked.append(
            {
                "target": entry.label,
                "role": entry.role.value,
                "id": entry.id,
                "pid": entry.pid,
                "running": running,
            }
        )
    scanner = OrphanScanner(process_control, role_path_marker=config.role_path_marker)
    orphan_pids = await scanner.scan(str(config.project_root), tracked_pids)
    return {
        "project_root": str(config.project_root),
        "tracked": tracked,
        "orphans": orphan_pids,
    }


@app.command()
def status(
    project_root: Optional[Path] = typer.Option(None, "--project-root", help="Project to inspect"),
    json_output: bool = typer.Option(False, "--json", help="Print JSON status payload"),
):
    """Show tracked processes and orphans without stopping anything."""
    config = _load_project_config(project_root)
    try:
        snapshot = asyncio.run(_build_status_snapshot(config, ProcessControl()))
    except AgentFarmError as exc:
        typer.echo(f"Failed to read agent farm state: {exc}")
        raise typer.Exit(code=1)

    if json_output:
        typer.echo(json.dumps(snapshot, indent=2))
        return

    typer.echo(f"Project: {snapshot['project_root']}")
    tracked = snapshot["tracked"]
    if not tracked:
        typer.echo("Tracked: none")
    else:
        typer.echo(f"Tracked: {len(tracked)}")
        for row in tracked:
            running = row["running"]
            label = "unknown" if running is None else ("running" if running else "not running")
            typer.echo(f" - {row['target']} (PID: {row['pid']}) [{label}]")
    orphan_pids = snapshot["orphans"]
    if orphan_pids:
        typer.echo(f"Orphans: {', '.join(str(pid) for pid in orphan_pids)}")
    else:
        typer.echo("Orphans: none found")


@app.command()
def orphans(
    project_root: Optional[Path] = typer.Option(None, "--project-root", help="Project to scan"),
):
    """List untracked agent farm server PIDs for this project."""
    config = _load_project_config(project_root)

    async def _scan() -> list[int]:
        state = await StateStore(config.state_db_path).load()
        _, tracked_pids = resolve_tracked(state)
        scanner = OrphanScanner(ProcessControl(), role_path_marker=config.role_path_marker)
        return await scanner.scan(str(config.project_root), tracked_pids)

    try:
        found = asyncio.run(_scan())
    except AgentFarmError as exc:
        typer.echo(f"Failed to read agent farm state: {exc}")
        raise typer.Exit(code=1)
    for pid in found:
        typer.echo(str(pid))


if __name__ == "__main__":
    app()
