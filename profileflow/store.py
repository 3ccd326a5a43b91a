"""In-memory step state store for one workflow instance."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from .contracts import StepState, StepStatus, step_key
from .errors import InvalidTransitionError

logger = logging.getLogger(__name__)

_ALLOWED = {
    StepStatus.IDLE: {StepStatus.IDLE, StepStatus.LOADING},
    StepStatus.ERROR: {StepStatus.ERROR, StepStatus.LOADING},
    StepStatus.LOADING: {StepStatus.SUCCESS, StepStatus.ERROR},
    StepStatus.SUCCESS: {StepStatus.SUCCESS},
}


class StepStateStore:
    """Ordered mapping from step identifier to its current state.

    Only steps that are part of the workflow instance are stored. A missing
    identifier means "not part of this workflow", which is different from an
    idle step.
    """

    def __init__(self, steps: Iterable[StepState]) -> None:
        self._steps: Dict[str, StepState] = {}
        for step in steps:
            key = step_key(step.step_id)
            if key in self._steps:
                raise ValueError(f"Duplicate step identifier: {key}")
            self._steps[key] = step.model_copy(deep=True)

    def __contains__(self, step_id: object) -> bool:
        return step_key(step_id) in self._steps

    def __len__(self) -> int:
        return len(self._steps)

    def get(self, step_id: str) -> Optional[StepState]:
        return self._steps.get(step_key(step_id))

    def all(self) -> List[StepState]:
        """Return the steps in declared order."""
        return list(self._steps.values())

    def ids(self) -> List[str]:
        return list(self._steps.keys())

    def loading(self) -> Optional[StepState]:
        """Return the step currently loading, if any."""
        return next(
            (s for s in self._steps.values() if s.status is StepStatus.LOADING), None
        )

    def set(self, step_id: str, status: StepStatus, enabled: bool) -> StepState:
        """Update status and enablement of ``step_id``.

        Raises:
            KeyError: If the step is not part of this workflow instance.
            InvalidTransitionError: If the status change breaks the lifecycle
                or a second step would be loading.
        """
        step = self._steps.get(step_key(step_id))
        if step is None:
            raise KeyError(f"Step {step_id} is not part of this workflow")

        if status not in _ALLOWED[step.status]:
            raise InvalidTransitionError(
                f"Step {step_id} cannot move from {step.status.value} to {status.value}"
            )
        if status is StepStatus.LOADING:
            current = self.loading()
            if current is not None and current.step_id != step.step_id:
                raise InvalidTransitionError(
                    f"Step {current.step_id} is already loading; cannot start {step_id}"
                )

        if step.status is not status:
            logger.debug(f"Step {step_id}: {step.status.value} -> {status.value}")
        step.status = status
        step.enabled = enabled
        return step

    def snapshot(self) -> List[StepState]:
        """Return deep copies safe to hand to presentation code."""
        return [s.model_copy(deep=True) for s in self._steps.values()]
