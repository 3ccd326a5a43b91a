"""profileflow: multi-step workflow orchestration for profile updates."""

from .config import ProfileflowConfig, WorkflowConfig, load_config
from .contracts import (
    CANCELLED,
    Outcome,
    OutcomeKind,
    StepContext,
    StepDefinition,
    StepState,
    StepStatus,
    WorkflowSnapshot,
)
from .execute import SafeExecutor
from .gate import GateDecision, PreflightGate
from .notify import LoggingNotifier, Notifier, RecordingNotifier
from .registry import MigrationStep, UpdateStep, build_steps
from .store import StepStateStore
from .workflow import Workflow

__version__ = "0.1.0"
__all__ = [
    "CANCELLED",
    "GateDecision",
    "LoggingNotifier",
    "MigrationStep",
    "Notifier",
    "Outcome",
    "OutcomeKind",
    "PreflightGate",
    "ProfileflowConfig",
    "RecordingNotifier",
    "SafeExecutor",
    "StepContext",
    "StepDefinition",
    "StepState",
    "StepStateStore",
    "StepStatus",
    "UpdateStep",
    "Workflow",
    "WorkflowConfig",
    "WorkflowSnapshot",
    "build_steps",
    "load_config",
]
