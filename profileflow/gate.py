"""Pre-flight gate with a single deferred continuation."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from pydantic import BaseModel

logger = logging.getLogger(__name__)

SubjectT = TypeVar("SubjectT")
Continuation = Callable[[], Union[Awaitable[Any], Any]]


class GateDecision(BaseModel):
    """Result of a gate check."""

    passed: bool
    reason: Optional[str] = None

    @property
    def blocked(self) -> bool:
        return not self.passed


class PreflightGate(Generic[SubjectT]):
    """Hold back a workflow until a one-time prerequisite workflow finishes.

    ``check`` returns ``None`` when the subject may proceed, or a reason string
    when it is blocked. Only one continuation is kept; blocking again replaces
    the stored one.
    """

    def __init__(
        self,
        check: Callable[[SubjectT], Optional[str]],
        release_delay: float = 1.0,
    ) -> None:
        self._check = check
        self._release_delay = release_delay
        self._pending: Optional[Continuation] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def gate(self, subject: SubjectT) -> GateDecision:
        """Evaluate ``subject`` without running anything."""
        reason = self._check(subject)
        if reason is None:
            return GateDecision(passed=True)
        return GateDecision(passed=False, reason=reason)

    async def require(
        self, subject: SubjectT, continuation: Continuation
    ) -> GateDecision:
        """Run ``continuation`` now if the gate passes, else store it."""
        decision = self.gate(subject)
        if decision.passed:
            await _invoke(continuation)
            return decision

        if self._pending is not None:
            logger.info("Replacing pending continuation behind pre-flight gate")
        logger.info(f"Pre-flight gate blocked: {decision.reason}")
        self._pending = continuation
        return decision

    async def release(self) -> bool:
        """Invoke the stored continuation once the prerequisite completed.

        Returns ``True`` when a continuation was run.
        """
        continuation = self._pending
        if continuation is None:
            return False
        self._pending = None
        if self._release_delay:
            await asyncio.sleep(self._release_delay)
        logger.info("Pre-flight prerequisite completed; running deferred action")
        await _invoke(continuation)
        return True

    def discard(self) -> None:
        """Forget the stored continuation, e.g. when the user closes the dialog."""
        self._pending = None


async def _invoke(continuation: Continuation) -> Any:
    result = continuation()
    if inspect.isawaitable(result):
        return await result
    return result


__all__ = ["GateDecision", "PreflightGate"]
