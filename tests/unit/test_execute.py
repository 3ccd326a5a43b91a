"""Safe execution wrapper tests."""

import asyncio

import pytest

from profileflow.classify import ErrorClassifier
from profileflow.config import ClassificationConfig, StepPolicy, WorkflowConfig
from profileflow.contracts import CANCELLED, OutcomeKind, StepStatus
from profileflow.errors import StepCancelledError, TransientStepError
from profileflow.execute import SafeExecutor
from profileflow.notify import RecordingNotifier
from profileflow.registry import build_update_steps
from profileflow.store import StepStateStore


def _config(**overrides):
    values = {"step_timeout": 1.0, "settle_delay": 0, "transient_retry_delay": 0}
    values.update(overrides)
    return WorkflowConfig(**values)


def _store():
    return StepStateStore(build_update_steps(has_picture=True, has_banner=False))


class _Handler:
    """Handler that replays queued results or exceptions."""

    def __init__(self, *results):
        self._results = list(results)
        self.calls = 0
        self.seen_status = []

    def bind(self, store, step_id):
        async def _run():
            self.calls += 1
            self.seen_status.append(store.get(step_id).status)
            result = self._results.pop(0)
            if isinstance(result, BaseException):
                raise result
            return result

        return _run


@pytest.mark.asyncio
async def test_success_returns_artifact_and_marks_loading():
    store = _store()
    handler = _Handler("ar://abc")
    executor = SafeExecutor(store, config=_config())

    outcome = await executor.execute("UploadPicture", handler.bind(store, "UploadPicture"))

    assert outcome.succeeded
    assert outcome.artifact == "ar://abc"
    assert handler.seen_status == [StepStatus.LOADING]
    # the executor leaves the final status to the caller
    assert store.get("UploadPicture").status is StepStatus.LOADING
    assert store.get("UploadPicture").enabled is False


@pytest.mark.asyncio
async def test_precondition_failure_skips_handler():
    store = _store()
    handler = _Handler("unused")

    async def no_session():
        return False

    executor = SafeExecutor(store, precondition=no_session, config=_config())
    outcome = await executor.execute("UploadPicture", handler.bind(store, "UploadPicture"))

    assert outcome.kind is OutcomeKind.PRECONDITION_FAILED
    assert handler.calls == 0


@pytest.mark.asyncio
async def test_cancel_sentinel_is_user_cancelled():
    store = _store()
    executor = SafeExecutor(store, config=_config())

    outcome = await executor.execute(
        "UploadPicture", _Handler(CANCELLED).bind(store, "UploadPicture")
    )

    assert outcome.kind is OutcomeKind.USER_CANCELLED


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, expected",
    [
        (RuntimeError("wallet said USER_REJECT"), OutcomeKind.USER_CANCELLED),
        (StepCancelledError("declined"), OutcomeKind.USER_CANCELLED),
        (RuntimeError("boom"), OutcomeKind.FATAL),
        (RuntimeError("Query.fromBytes failed"), OutcomeKind.TRANSIENT),
        (TransientStepError("flaky"), OutcomeKind.TRANSIENT),
    ],
)
async def test_errors_are_classified(error, expected):
    store = _store()
    executor = SafeExecutor(store, config=_config())

    outcome = await executor.execute("UploadPicture", _Handler(error).bind(store, "UploadPicture"))

    assert outcome.kind is expected
    assert outcome.reason


@pytest.mark.asyncio
async def test_timeout_does_not_abort_handler():
    store = _store()
    finished = asyncio.Event()

    async def slow():
        await asyncio.sleep(0.05)
        finished.set()
        return "late"

    executor = SafeExecutor(store, config=_config(step_timeout=0.01))
    outcome = await executor.execute("UploadPicture", slow)

    assert outcome.kind is OutcomeKind.TIMED_OUT
    await asyncio.wait_for(finished.wait(), 1)


@pytest.mark.asyncio
async def test_transient_retried_once_when_allowed():
    store = _store()
    handler = _Handler(RuntimeError("Query.fromBytes"), "ar://ok")
    notifier = RecordingNotifier()
    executor = SafeExecutor(
        store, config=_config(), retry_allowed=lambda: True, notifier=notifier
    )

    outcome = await executor.execute("UploadPicture", handler.bind(store, "UploadPicture"))

    assert outcome.succeeded
    assert outcome.attempts == 2
    assert handler.calls == 2
    # the step stays loading across the retry
    assert handler.seen_status == [StepStatus.LOADING, StepStatus.LOADING]
    assert notifier.of_level("warning")


@pytest.mark.asyncio
async def test_transient_not_retried_when_not_allowed():
    store = _store()
    handler = _Handler(RuntimeError("Query.fromBytes"), "ar://ok")
    executor = SafeExecutor(store, config=_config())

    outcome = await executor.execute("UploadPicture", handler.bind(store, "UploadPicture"))

    assert outcome.kind is OutcomeKind.TRANSIENT
    assert handler.calls == 1


@pytest.mark.asyncio
async def test_second_transient_falls_back_to_fatal():
    store = _store()
    handler = _Handler(RuntimeError("Query.fromBytes"), RuntimeError("Query.fromBytes"))
    executor = SafeExecutor(store, config=_config(), retry_allowed=lambda: True)

    outcome = await executor.execute("UploadPicture", handler.bind(store, "UploadPicture"))

    assert outcome.kind is OutcomeKind.FATAL
    assert handler.calls == 2


def test_classification_can_be_overridden_per_step():
    classifier = ErrorClassifier(
        ClassificationConfig(),
        {"UpdateRecord": StepPolicy(transient_signatures=[])},
    )
    error = RuntimeError("Query.fromBytes")

    assert classifier.classify("UploadPicture", error)[0] is OutcomeKind.TRANSIENT
    assert classifier.classify("UpdateRecord", error)[0] is OutcomeKind.FATAL


@pytest.mark.asyncio
async def test_step_policy_timeout_is_used():
    store = _store()

    async def slow():
        await asyncio.sleep(0.2)
        return "late"

    config = _config(
        step_timeout=5.0, step_policies={"UploadPicture": StepPolicy(timeout=0.01)}
    )
    executor = SafeExecutor(store, config=config)

    outcome = await executor.execute("UploadPicture", slow)

    assert outcome.kind is OutcomeKind.TIMED_OUT


@pytest.mark.asyncio
async def test_retry_dropped_when_disallowed_during_delay():
    store = _store()
    handler = _Handler(RuntimeError("Query.fromBytes"), "ar://never")
    allowed = [True]
    executor = SafeExecutor(
        store,
        config=_config(transient_retry_delay=0.05),
        retry_allowed=lambda: allowed[0],
    )

    running = asyncio.ensure_future(
        executor.execute("UploadPicture", handler.bind(store, "UploadPicture"))
    )
    await asyncio.sleep(0.01)
    allowed[0] = False
    outcome = await running

    assert outcome.kind is OutcomeKind.TRANSIENT
    assert outcome.attempts == 1
    assert handler.calls == 1


@pytest.mark.asyncio
async def test_second_timeout_falls_back_to_fatal():
    store = _store()
    calls = []

    async def slow():
        calls.append(True)
        await asyncio.sleep(0.2)
        return "late"

    executor = SafeExecutor(
        store, config=_config(step_timeout=0.01), retry_allowed=lambda: True
    )

    outcome = await executor.execute("UploadPicture", slow)

    assert outcome.kind is OutcomeKind.FATAL
    assert outcome.attempts == 2
    assert "timed out" in outcome.reason
    assert len(calls) == 2
