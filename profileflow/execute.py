"""Safe execution wrapper for workflow steps."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from .classify import ErrorClassifier
from .config import WorkflowConfig
from .contracts import CANCELLED, Outcome, OutcomeKind, StepStatus
from .notify import Notifier, safe_notify
from .store import StepStateStore

logger = logging.getLogger(__name__)

Precondition = Callable[[], Awaitable[bool]]

PRECONDITION_MESSAGE = "Wallet connection is not stable. Please reconnect your wallet."
TIMEOUT_MESSAGE = (
    "Operation timed out. This might indicate a wallet connectivity issue."
)


async def always_ready() -> bool:
    return True


def _discard_late_result(step_id: str) -> Callable[["asyncio.Future[Any]"], None]:
    def _callback(task: "asyncio.Future[Any]") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug(f"Discarding late failure of step {step_id}: {error}")
        else:
            logger.debug(f"Discarding late result of step {step_id}")

    return _callback


class SafeExecutor:
    """Run step handlers with precondition checks, timeouts and classification.

    The executor marks the step as loading before anything else and never
    sets the final status itself; the caller applies the returned
    :class:`Outcome`.
    """

    def __init__(
        self,
        store: StepStateStore,
        precondition: Optional[Precondition] = None,
        config: Optional[WorkflowConfig] = None,
        classifier: Optional[ErrorClassifier] = None,
        retry_allowed: Optional[Callable[[], bool]] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._store = store
        self._precondition = precondition or always_ready
        self._config = config or WorkflowConfig()
        self._classifier = classifier or ErrorClassifier(
            self._config.classification, self._config.step_policies
        )
        self._retry_allowed = retry_allowed or (lambda: False)
        self._notifier = notifier

    async def execute(
        self,
        step_id: str,
        handler: Callable[[], Awaitable[Any]],
        timeout: Optional[float] = None,
    ) -> Outcome:
        """Execute ``handler`` for ``step_id`` and classify the result.

        Transient faults and timeouts get one delayed re-invocation when
        retries are allowed both at the time of the failure and after the
        delay. The step stays loading during the delay. A second transient
        fault or timeout is reported as fatal.
        """
        self._store.set(step_id, StepStatus.LOADING, False)
        if timeout is None:
            timeout = self._config.timeout_for(step_id)

        outcome = await self._attempt(step_id, handler, timeout)
        if not outcome.retryable or not self._retry_allowed():
            return outcome

        logger.warning(
            f"Step {step_id} hit {outcome.kind.value} ({outcome.reason}); "
            f"retrying in {self._config.transient_retry_delay}s"
        )
        if self._notifier is not None:
            safe_notify(
                self._notifier,
                "warning",
                "Wallet connectivity issue detected. Retrying automatically...",
            )
        await asyncio.sleep(self._config.transient_retry_delay)
        if not self._retry_allowed():
            logger.info(f"Retry of step {step_id} dropped: retries no longer allowed")
            return outcome

        retried = await self._attempt(step_id, handler, timeout)
        retried.attempts = 2
        if retried.retryable:
            retried = Outcome(
                step_id=step_id,
                kind=OutcomeKind.FATAL,
                reason=f"{retried.reason} (retry failed)",
                attempts=2,
            )
        return retried

    async def _attempt(
        self,
        step_id: str,
        handler: Callable[[], Awaitable[Any]],
        timeout: float,
    ) -> Outcome:
        try:
            ready = await self._precondition()
        except Exception as e:
            logger.warning(f"Precondition check for step {step_id} raised: {e}")
            ready = False
        if not ready:
            logger.warning(f"Precondition failed for step {step_id}")
            return Outcome.failure(
                step_id, OutcomeKind.PRECONDITION_FAILED, PRECONDITION_MESSAGE
            )

        try:
            task = asyncio.ensure_future(handler())
        except Exception as e:
            return self._classified(step_id, e)

        try:
            result = await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError as e:
            if not task.done():
                task.add_done_callback(_discard_late_result(step_id))
                logger.error(f"Step {step_id} timed out after {timeout}s")
                return Outcome.failure(step_id, OutcomeKind.TIMED_OUT, TIMEOUT_MESSAGE)
            return self._classified(step_id, e)
        except Exception as e:
            return self._classified(step_id, e)

        if result is CANCELLED:
            logger.info(f"Step {step_id} was cancelled by the user")
            return Outcome.failure(
                step_id, OutcomeKind.USER_CANCELLED, "Transaction rejected by user"
            )
        return Outcome.success(step_id, result)

    def _classified(self, step_id: str, error: BaseException) -> Outcome:
        kind, reason = self._classifier.classify(step_id, error)
        if kind is OutcomeKind.FATAL:
            logger.error(f"Step {step_id} failed: {error}")
        else:
            logger.warning(f"Step {step_id} failed ({kind.value}): {error}")
        return Outcome.failure(step_id, kind, reason)
