"""Deterministic stop-failure records and error classification."""

from __future__ import annotations

import asyncio
import hashlib

from agentfarm.contracts import ERROR_SCHEMA_V1
from agentfarm.errors import ProcessControlError, StateStoreError
from agentfarm.supervisor.models import StopFailure


def build_stop_failure(
    *,
    target: str,
    error_code: str,
    message: str,
    pid: int | None = None,
) -> StopFailure:
    """Build a stable failure record for one sweep target."""
    fingerprint_input = "|".join(
        [
            target,
            error_code,
            str(pid) if pid is not None else "",
        ]
    )
    fingerprint = hashlib.sha256(fingerprint_input.encode("utf-8")).hexdigest()
    return StopFailure(
        target=target,
        error=message,
        pid=pid,
        error_code=error_code,
        fingerprint=fingerprint,
        error_schema_version=ERROR_SCHEMA_V1,
    )


def classify_stop_error(error: BaseException) -> str:
    """Map an exception raised during a sweep to a stable error code."""
    if isinstance(error, ProcessControlError):
        return error.error_code
    if isinstance(error, StateStoreError):
        return StateStoreError.error_code
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return "TIMEOUT"
    if isinstance(error, PermissionError):
        return "ACCESS_DENIED"
    return "UNEXPECTED"


def describe_error(error: BaseException) -> str:
    """Return a non-empty message for an exception."""
    message = str(error).strip()
    if message:
        return message
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return "operation timed out"
    return type(error).__name__
