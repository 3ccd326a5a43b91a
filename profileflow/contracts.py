"""Core models shared by the profileflow orchestrator."""

from __future__ import annotations

from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class StepStatus(str, Enum):
    """Lifecycle status of a single step."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class OutcomeKind(str, Enum):
    """Classified result of one step execution."""

    SUCCESS = "success"
    USER_CANCELLED = "user_cancelled"
    TRANSIENT = "transient"
    PRECONDITION_FAILED = "precondition_failed"
    TIMED_OUT = "timed_out"
    FATAL = "fatal"


def step_key(step_id: Any) -> str:
    """Normalize a step identifier (plain string or enum member) to a string."""
    if isinstance(step_id, Enum):
        return str(step_id.value)
    return str(step_id)


class _Cancelled:
    """Sentinel returned by a handler when the user declined an approval."""

    _instance: Optional["_Cancelled"] = None

    def __new__(cls) -> "_Cancelled":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:  # pragma: no cover - simple formatting
        return "CANCELLED"

    def __bool__(self) -> bool:
        return False


CANCELLED = _Cancelled()

StepHandler = Callable[["StepContext"], Awaitable[Any]]


class StepDefinition(BaseModel):
    """Static description of a step a workflow kind may include."""

    step_id: str
    prerequisites: List[str] = Field(default_factory=list)
    optional: bool = True
    label: Optional[str] = None

    @field_validator("step_id", mode="before")
    @classmethod
    def _normalize_id(cls, v: Any) -> str:
        return step_key(v)

    @field_validator("prerequisites", mode="before")
    @classmethod
    def _normalize_prerequisites(cls, v: Any) -> List[str]:
        return [step_key(p) for p in v]


class StepState(BaseModel):
    """Mutable status of one step inside a workflow instance."""

    step_id: str
    status: StepStatus = StepStatus.IDLE
    enabled: bool = True
    prerequisites: List[str] = Field(default_factory=list)
    label: Optional[str] = None

    @field_validator("step_id", mode="before")
    @classmethod
    def _normalize_id(cls, v: Any) -> str:
        return step_key(v)

    @field_validator("prerequisites", mode="before")
    @classmethod
    def _normalize_prerequisites(cls, v: Any) -> List[str]:
        return [step_key(p) for p in v]

    @property
    def display_name(self) -> str:
        return self.label or self.step_id


class Outcome(BaseModel):
    """Result of running a step through the safe execution wrapper."""

    step_id: str
    kind: OutcomeKind
    artifact: Any = None
    reason: Optional[str] = None
    attempts: int = 1

    @field_validator("step_id", mode="before")
    @classmethod
    def _normalize_id(cls, v: Any) -> str:
        return step_key(v)

    @property
    def succeeded(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def retryable(self) -> bool:
        """``True`` for outcomes that may get one automatic re-invocation."""
        return self.kind in (OutcomeKind.TRANSIENT, OutcomeKind.TIMED_OUT)

    @classmethod
    def success(cls, step_id: str, artifact: Any = None) -> "Outcome":
        return cls(step_id=step_id, kind=OutcomeKind.SUCCESS, artifact=artifact)

    @classmethod
    def failure(
        cls, step_id: str, kind: OutcomeKind, reason: Optional[str] = None
    ) -> "Outcome":
        if kind is OutcomeKind.SUCCESS:
            raise ValueError("failure outcome cannot have kind SUCCESS")
        return cls(step_id=step_id, kind=kind, reason=reason)


class StepContext(BaseModel):
    """Read-only view handed to a step handler."""

    step_id: str
    workflow_name: str
    artifacts: Dict[str, Any] = Field(default_factory=dict)


class WorkflowSnapshot(BaseModel):
    """Read-only view of a workflow instance for presentation code."""

    name: str
    steps: List[StepState] = Field(default_factory=list)
    completed_count: int = 0
    total_steps: int = 0
    auto_progress: bool = False
    auto_progress_suspended: bool = False
    current_step: Optional[str] = None
    artifacts: Dict[str, Any] = Field(default_factory=dict)
    finished: bool = False
    cancelled: bool = False

    def status_of(self, step_id: str) -> Optional[StepStatus]:
        """Return the status of ``step_id`` or ``None`` when absent."""
        for step in self.steps:
            if step.step_id == step_id:
                return step.status
        return None
