"""Flatten persisted supervisor state into ordered stop targets."""

from __future__ import annotations

from .models import ProcessEntry, SupervisorState


def resolve_tracked(state: SupervisorState) -> tuple[list[ProcessEntry], set[int]]:
    """Return entries in stop order (architect, builders, utils, annotations) and their PIDs."""
    entries: list[ProcessEntry] = []
    if state.architect is not None:
        entries.append(state.architect)
    entries.extend(state.builders)
    entries.extend(state.utils)
    entries.extend(state.annotations)
    tracked_pids = {entry.pid for entry in entries}
    return entries, tracked_pids
