from pydantic import BaseModel, ConfigDict, Field, PositiveInt, model_validator
from typing import Optional, List
from enum import Enum

from agentfarm.contracts import ERROR_SCHEMA_V1, STOP_OUTCOME_SCHEMA_V1

class Role(str, Enum):
    ARCHITECT = "architect"
    BUILDER = "builder"
    UTIL = "util"
    ANNOTATION = "annotation"

class TargetStatus(str, Enum):
    TERMINATED = "terminated"
    NOT_RUNNING = "not_running"
    FAILED = "failed"

class ProcessEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    id: Optional[str] = None
    pid: PositiveInt

    @model_validator(mode="after")
    def check_id_for_role(self) -> "ProcessEntry":
        if self.role == Role.ARCHITECT:
            if self.id is not None:
                raise ValueError("architect entries carry no id")
        elif not (self.id or "").strip():
            raise ValueError(f"{self.role.value} entries require an id")
        return self

    @property
    def label(self) -> str:
        if self.id is None:
            return self.role.value
        return f"{self.role.value} {self.id}"

class SupervisorState(BaseModel):
    model_config = ConfigDict(frozen=True)

    architect: Optional[ProcessEntry] = None
    builders: List[ProcessEntry] = Field(default_factory=list)
    utils: List[ProcessEntry] = Field(default_factory=list)
    annotations: List[ProcessEntry] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return self.architect is None and not (self.builders or self.utils or self.annotations)

class StopFailure(BaseModel):
    target: str
    error: str
    pid: Optional[int] = None
    error_code: str = "UNEXPECTED"
    fingerprint: str = ""
    error_schema_version: str = ERROR_SCHEMA_V1

class TargetResult(BaseModel):
    target: str
    pid: int
    role: Optional[Role] = None
    status: TargetStatus

class StopOutcome(BaseModel):
    schema_version: str = STOP_OUTCOME_SCHEMA_V1
    attempted: int = 0
    stopped: int = 0
    skipped: int = 0
    failures: List[StopFailure] = Field(default_factory=list)
    orphan_pids: List[int] = Field(default_factory=list)
    state_cleared: bool = False
    results: List[TargetResult] = Field(default_factory=list)
