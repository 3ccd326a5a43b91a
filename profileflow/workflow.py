"""Workflow instance: control surface and auto-progression controller."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import (
    Any,
    Awaitable,
    Callable,
    Coroutine,
    Dict,
    Mapping,
    Optional,
    Sequence,
    Set,
)

from .classify import ErrorClassifier
from .config import WorkflowConfig
from .contracts import (
    Outcome,
    OutcomeKind,
    StepContext,
    StepHandler,
    StepState,
    StepStatus,
    WorkflowSnapshot,
    step_key,
)
from .errors import WorkflowCancelledError
from .execute import Precondition, SafeExecutor, always_ready
from .notify import LoggingNotifier, Notifier, safe_notify
from .readiness import (
    can_start,
    completed_count,
    first_failed,
    is_workflow_complete,
    next_ready,
    refresh_enablement,
)
from .store import StepStateStore

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[WorkflowSnapshot], Optional[Awaitable[Any]]]


class Workflow:
    """One run of an ordered, partially conditional step sequence.

    The instance owns its step state store, runs steps one at a time through a
    :class:`SafeExecutor` and, while auto-progression is on, chains ready steps
    after a settle delay. Every status change after execution goes through
    :meth:`_apply_outcome`.

    Args:
        name: Human readable workflow name used in logs and messages.
        steps: Initial step states, usually from :mod:`profileflow.registry`.
        handlers: Async handler per step identifier.
        precondition: Async check that the session or identity is usable.
        notifier: Sink for user-facing messages.
        config: Timing and classification settings.
        classifier: Override for the error classifier built from ``config``.
        on_complete: Called exactly once when every step has succeeded.
    """

    def __init__(
        self,
        name: str,
        steps: Sequence[StepState],
        handlers: Mapping[Any, StepHandler],
        precondition: Optional[Precondition] = None,
        notifier: Optional[Notifier] = None,
        config: Optional[WorkflowConfig] = None,
        classifier: Optional[ErrorClassifier] = None,
        on_complete: Optional[CompletionCallback] = None,
    ) -> None:
        self.name = name
        self._handlers: Dict[str, StepHandler] = {
            step_key(k): v for k, v in handlers.items()
        }
        missing = [s.step_id for s in steps if s.step_id not in self._handlers]
        if missing:
            raise ValueError(f"No handler registered for steps: {missing}")

        self._store = StepStateStore(steps)
        self._config = config or WorkflowConfig()
        self._precondition = precondition or always_ready
        self._notifier: Notifier = notifier or LoggingNotifier()
        self._on_complete = on_complete
        self._executor = SafeExecutor(
            self._store,
            precondition=self._precondition,
            config=self._config,
            classifier=classifier,
            retry_allowed=lambda: self._auto_progress and not self._cancelled,
            notifier=self._notifier,
        )

        self._artifacts: Dict[str, Any] = {}
        self._auto_progress = False
        self._auto_suspended = False
        self._started = False
        self._finished = False
        self._cancelled = False
        self._completion_fired = False
        self._current_step: Optional[str] = None
        self._pending: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # read-only state
    @property
    def auto_progress(self) -> bool:
        return self._auto_progress

    @property
    def auto_progress_suspended(self) -> bool:
        return self._auto_suspended

    @property
    def completed_count(self) -> int:
        return completed_count(self._store)

    @property
    def total_steps(self) -> int:
        return len(self._store)

    @property
    def is_complete(self) -> bool:
        return is_workflow_complete(self._store)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def snapshot(self) -> WorkflowSnapshot:
        return WorkflowSnapshot(
            name=self.name,
            steps=self._store.snapshot(),
            completed_count=self.completed_count,
            total_steps=self.total_steps,
            auto_progress=self._auto_progress,
            auto_progress_suspended=self._auto_suspended,
            current_step=self._current_step,
            artifacts=dict(self._artifacts),
            finished=self._finished,
            cancelled=self._cancelled,
        )

    # ------------------------------------------------------------------
    # control surface
    async def start_workflow(self) -> WorkflowSnapshot:
        """Commit to the workflow; with auto-progression on, the first step
        is scheduled right away."""
        if self._cancelled:
            raise WorkflowCancelledError(f"Workflow {self.name} was cancelled")
        if self._started:
            logger.warning(f"Workflow {self.name} already started")
            return self.snapshot()

        self._started = True
        logger.info(
            f"Starting workflow {self.name} with steps {self._store.ids()}"
        )
        if self.is_complete:
            self._complete()
        elif self._auto_progress:
            self._schedule(self._config.settle_delay)
        return self.snapshot()

    async def start_step(self, step_id: Any) -> Optional[Outcome]:
        """Run ``step_id`` now, as a fresh start or a manual retry.

        Returns ``None`` without touching any state when the step cannot be
        started: it is loading, has succeeded, is disabled, has unmet
        prerequisites, another step is loading, or the workflow is not running.

        Raises:
            KeyError: If ``step_id`` is not part of this workflow.
        """
        key = step_key(step_id)
        if key not in self._store:
            raise KeyError(f"Step {key} is not part of workflow {self.name}")
        if self._cancelled or self._finished or not self._started:
            logger.warning(f"Rejected start of {key}: workflow {self.name} not running")
            return None
        if not can_start(self._store, key):
            logger.warning(
                f"Rejected start of {key}: step is {self._store.get(key).status.value}"
                f" and not startable"
            )
            return None
        return await self._run_step(key)

    async def toggle_auto(self, enabled: bool) -> bool:
        """Switch between manual and auto mode.

        Turning auto mode on requires an active session and no pending
        suspension; returns ``False`` when the toggle is rejected.
        """
        if not enabled:
            if self._auto_progress:
                self._auto_progress = False
                self._cancel_pending()
                logger.info(f"Auto-progression disabled for {self.name}")
            return True

        if self._auto_progress:
            return True
        if self._cancelled or self._finished:
            return False
        if self._auto_suspended:
            safe_notify(
                self._notifier,
                "warning",
                "Auto-progression was stopped by an error. Reset it to continue.",
            )
            return False
        if not await self._check_precondition():
            safe_notify(
                self._notifier,
                "warning",
                "Please connect your wallet before enabling auto-progression",
            )
            return False
        if self._cancelled or self._finished or self._auto_suspended:
            return False

        self._auto_progress = True
        logger.info(f"Auto-progression enabled for {self.name}")
        if self._started:
            self._schedule(self._config.settle_delay)
        return True

    async def resume_after_error(self) -> bool:
        """Clear a suspension, re-enter auto mode and retarget the workflow.

        The first failed step is retried if there is one, otherwise the first
        ready step starts. Rejected when the session precondition fails.
        """
        if self._cancelled or self._finished:
            return False
        if not await self._check_precondition():
            logger.info(f"Cannot reset auto-progression for {self.name}: no session")
            safe_notify(
                self._notifier,
                "warning",
                "Please connect your wallet before resetting auto-progression",
            )
            return False
        if self._cancelled or self._finished:
            return False

        self._auto_suspended = False
        self._auto_progress = True

        target = first_failed(self._store) or next_ready(self._store)
        if target is None:
            safe_notify(self._notifier, "success", "Auto-progression reset and enabled.")
            return True

        label = self._store.get(target).display_name
        if self._store.get(target).status is StepStatus.ERROR:
            safe_notify(
                self._notifier, "info", f"Auto-progression reset. Retrying {label}..."
            )
        else:
            safe_notify(
                self._notifier, "info", f"Auto-progression reset. Starting {label}..."
            )
        if self._started:
            self._schedule(0, target)
        return True

    def cancel(self) -> None:
        """Stop issuing new work. A handler already in flight keeps running
        but its result is discarded."""
        if self._cancelled:
            return
        self._cancelled = True
        self._auto_progress = False
        self._cancel_pending()
        logger.info(f"Workflow {self.name} cancelled")

    async def join(self) -> None:
        """Wait until no step or scheduled tick is outstanding."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # internals
    async def _check_precondition(self) -> bool:
        try:
            return bool(await self._precondition())
        except Exception as e:
            logger.warning(f"Session check failed for {self.name}: {e}")
            return False

    async def _run_step(self, step_id: str) -> Outcome:
        step = self._store.get(step_id)
        self._current_step = step_id
        logger.info(f"Running step {step_id} of {self.name}")
        safe_notify(self._notifier, "info", f"{step.display_name}...")

        handler = self._handlers[step_id]
        context = StepContext(
            step_id=step_id, workflow_name=self.name, artifacts=dict(self._artifacts)
        )
        outcome = await self._executor.execute(step_id, lambda: handler(context))
        self._apply_outcome(step_id, outcome)
        return outcome

    def _apply_outcome(self, step_id: str, outcome: Outcome) -> None:
        if self._cancelled:
            logger.info(
                f"Discarding {outcome.kind.value} result of {step_id}: "
                f"workflow {self.name} was cancelled"
            )
            return

        label = self._store.get(step_id).display_name
        if outcome.succeeded:
            self._store.set(step_id, StepStatus.SUCCESS, False)
            self._artifacts[step_id] = outcome.artifact
            logger.info(f"Step {step_id} of {self.name} succeeded")
            safe_notify(self._notifier, "success", f"{label} completed.")
        else:
            self._store.set(step_id, StepStatus.ERROR, True)
            if outcome.kind is OutcomeKind.USER_CANCELLED:
                safe_notify(
                    self._notifier,
                    "warning",
                    f"{label} cancelled. You can retry manually.",
                )
            else:
                safe_notify(self._notifier, "error", f"{label} failed: {outcome.reason}")
            if (
                outcome.kind in (OutcomeKind.USER_CANCELLED, OutcomeKind.FATAL)
                or self._auto_progress
            ):
                self._suspend(f"{step_id} {outcome.kind.value}")

        if self._current_step == step_id:
            self._current_step = None
        refresh_enablement(self._store)

        if is_workflow_complete(self._store):
            self._complete()
        elif outcome.succeeded and self._auto_progress:
            self._schedule(self._config.settle_delay)

    def _suspend(self, reason: str) -> None:
        logger.info(f"Disabling auto-progression for {self.name}: {reason}")
        self._auto_progress = False
        self._auto_suspended = True
        self._cancel_pending()

    def _complete(self) -> None:
        self._finished = True
        self._auto_progress = False
        self._cancel_pending()
        if self._completion_fired:
            return
        self._completion_fired = True
        logger.info(f"Workflow {self.name} completed")
        if self._on_complete is None:
            return
        result = self._on_complete(self.snapshot())
        if inspect.isawaitable(result):
            self._spawn(result)

    def _schedule(self, delay: float, target: Optional[str] = None) -> None:
        self._cancel_pending()
        self._pending = self._spawn(self._tick(delay, target))

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    async def _tick(self, delay: float, target: Optional[str]) -> None:
        await asyncio.sleep(delay)
        if self._pending is asyncio.current_task():
            self._pending = None

        if self._cancelled or self._finished or not self._auto_progress:
            return
        if self._store.loading() is not None:
            # a manually started step is in flight; its outcome reschedules
            return
        if target is not None and can_start(self._store, target):
            step_id: Optional[str] = target
        else:
            step_id = next_ready(self._store)
        if step_id is None:
            logger.debug(f"No ready step in {self.name}; auto-progression idle")
            return
        await self._run_step(step_id)

    def _spawn(self, coro: Coroutine[Any, Any, Any] | Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background task of workflow {self.name} failed: {error}")
