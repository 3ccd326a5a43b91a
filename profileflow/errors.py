"""Exception types raised by profileflow."""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for workflow errors."""


class InvalidTransitionError(WorkflowError, ValueError):
    """Raised when a step status change would break the step lifecycle."""


class TransientStepError(WorkflowError):
    """Raised by a step handler for a recoverable fault worth one retry."""


class StepCancelledError(WorkflowError):
    """Raised by a step handler when the user declined an external approval."""


class WorkflowCancelledError(WorkflowError):
    """Raised when a cancelled workflow instance is asked to do more work."""
