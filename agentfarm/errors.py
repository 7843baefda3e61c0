"""Agent farm exception hierarchy."""


class AgentFarmError(Exception):
    """Base error type for all agent farm failures."""


class ProcessControlError(AgentFarmError):
    """OS-level process operation failed; carries a stable error code."""

    def __init__(self, message: str, *, error_code: str, pid: int | None = None):
        super().__init__(message)
        self.error_code = error_code
        self.pid = pid


class TerminationError(ProcessControlError):
    """A PID could not be signaled."""

    def __init__(self, message: str, *, pid: int, error_code: str = "TERMINATE_FAILED"):
        super().__init__(message, error_code=error_code, pid=pid)


class LivenessCheckError(ProcessControlError):
    """Liveness of a PID could not be determined."""

    def __init__(self, message: str, *, pid: int):
        super().__init__(message, error_code="LIVENESS_FAILED", pid=pid)


class ProcessQueryError(ProcessControlError):
    """The OS process table could not be listed."""

    def __init__(self, message: str = "process table query failed"):
        super().__init__(message, error_code="QUERY_FAILED")


class StateStoreError(AgentFarmError):
    """Persisted supervisor state could not be read or cleared."""

    error_code = "STATE_STORE_FAILED"


class ConfigError(AgentFarmError, ValueError):
    """Invalid agent farm configuration."""
