"""Readiness resolution over a step state store.

Nothing here is cached: every answer is derived from the store as it is at
call time.
"""

from __future__ import annotations

from typing import Optional

from .contracts import StepState, StepStatus
from .store import StepStateStore


def prerequisites_met(store: StepStateStore, step: StepState) -> bool:
    """``True`` when every prerequisite is absent or has succeeded."""
    for prereq in step.prerequisites:
        other = store.get(prereq)
        if other is not None and other.status is not StepStatus.SUCCESS:
            return False
    return True


def is_ready(store: StepStateStore, step_id: str) -> bool:
    step = store.get(step_id)
    return (
        step is not None
        and step.status is StepStatus.IDLE
        and step.enabled
        and prerequisites_met(store, step)
    )


def can_start(store: StepStateStore, step_id: str) -> bool:
    """Whether ``step_id`` may be started now, either fresh or as a retry."""
    step = store.get(step_id)
    if step is None or not step.enabled:
        return False
    if step.status not in (StepStatus.IDLE, StepStatus.ERROR):
        return False
    if store.loading() is not None:
        return False
    return prerequisites_met(store, step)


def next_ready(store: StepStateStore) -> Optional[str]:
    """Return the first ready step in declared order."""
    for step in store.all():
        if is_ready(store, step.step_id):
            return step.step_id
    return None


def first_failed(store: StepStateStore) -> Optional[str]:
    """Return the first step in ``Error`` that can be retried."""
    for step in store.all():
        if step.status is StepStatus.ERROR and step.enabled:
            return step.step_id
    return None


def completed_count(store: StepStateStore) -> int:
    return sum(1 for s in store.all() if s.status is StepStatus.SUCCESS)


def is_workflow_complete(store: StepStateStore) -> bool:
    return completed_count(store) == len(store)


def refresh_enablement(store: StepStateStore) -> None:
    """Re-derive enablement of idle steps from their prerequisites."""
    for step in store.all():
        if step.status is StepStatus.IDLE:
            met = prerequisites_met(store, step)
            if step.enabled != met:
                store.set(step.step_id, StepStatus.IDLE, met)


__all__ = [
    "prerequisites_met",
    "is_ready",
    "can_start",
    "next_ready",
    "first_failed",
    "completed_count",
    "is_workflow_complete",
    "refresh_enablement",
]
