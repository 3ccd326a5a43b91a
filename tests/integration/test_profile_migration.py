"""Legacy profile migration and the update gate."""

import pytest

from profileflow.config import ProfileflowConfig
from profileflow.contracts import OutcomeKind
from profileflow.notify import RecordingNotifier
from profileflow.profile import (
    InMemoryLedger,
    InMemoryMediaStore,
    ProfileEditor,
    ProfileRecord,
    ProfileUpdate,
    WalletSession,
    create_migration_workflow,
)

TOPIC = "0.0.42"


def _config():
    config = ProfileflowConfig()
    config.workflow.settle_delay = 0
    config.workflow.transient_retry_delay = 0
    config.workflow.gate_release_delay = 0
    config.profile.topic_propagation_delay = 0
    return config


def _legacy(**lists):
    values = {"Name": "Ana", "Picture": "ar://pic"}
    values.update(lists)
    return ProfileRecord(**values)


@pytest.mark.asyncio
async def test_only_groups_creates_single_topic():
    ledger = InMemoryLedger()
    profile = _legacy(Groups=[{"id": "g1"}], Channels=[])
    workflow = create_migration_workflow(
        profile, TOPIC, ledger, WalletSession("0.0.1001"), config=_config()
    )

    assert [s.step_id for s in workflow.snapshot().steps] == [
        "CreateGroupsTopic",
        "UpdateRecord",
    ]

    await workflow.toggle_auto(True)
    await workflow.start_workflow()
    await workflow.join()

    assert workflow.is_complete
    groups_topic = workflow.snapshot().artifacts["CreateGroupsTopic"]
    assert ledger.memos[groups_topic] == "iBird Groups List"
    assert ledger.latest(groups_topic) == [{"id": "g1"}]

    record = ledger.latest(TOPIC)
    assert record["Groups"] == groups_topic
    assert record["Channels"] == ""
    assert record["FollowingChannels"] == ""
    assert record["PrivateMessages"] == ""
    assert record["ProfileVersion"] == "2"
    assert record["Picture"] == "ar://pic"


@pytest.mark.asyncio
async def test_manual_migration_of_all_lists():
    ledger = InMemoryLedger()
    profile = _legacy(
        Channels=["c"], Groups=["g"], FollowingChannels=["fc"], FollowingGroups=["fg"]
    )
    workflow = create_migration_workflow(
        profile, TOPIC, ledger, WalletSession("0.0.1001"), config=_config()
    )
    await workflow.start_workflow()

    order = [s.step_id for s in workflow.snapshot().steps]
    assert await workflow.start_step(order[1]) is None
    for step_id in order:
        outcome = await workflow.start_step(step_id)
        assert outcome.succeeded

    record = ledger.latest(TOPIC)
    assert [record[k] for k in ("Channels", "Groups", "FollowingChannels", "FollowingGroups")] == [
        workflow.snapshot().artifacts[s] for s in order[:4]
    ]


@pytest.mark.asyncio
async def test_declined_topic_creation_is_user_cancelled():
    ledger = InMemoryLedger()
    ledger.decline_next_create()
    profile = _legacy(Channels=["c"])
    notifier = RecordingNotifier()
    workflow = create_migration_workflow(
        profile, TOPIC, ledger, WalletSession("0.0.1001"), notifier=notifier, config=_config()
    )
    await workflow.start_workflow()

    outcome = await workflow.start_step("CreateChannelsTopic")

    assert outcome.kind is OutcomeKind.USER_CANCELLED
    assert workflow.auto_progress_suspended
    assert notifier.of_level("warning")


def test_current_profile_cannot_be_migrated():
    with pytest.raises(ValueError):
        create_migration_workflow(
            ProfileRecord(ProfileVersion=2), TOPIC, InMemoryLedger(), WalletSession("a")
        )


@pytest.mark.asyncio
async def test_editor_defers_update_until_migration_completes():
    ledger = InMemoryLedger()
    refreshed = []
    editor = ProfileEditor(
        _legacy(Channels=["c"]),
        TOPIC,
        InMemoryMediaStore(),
        ledger,
        WalletSession("0.0.1001"),
        config=_config(),
        on_refresh=lambda: refreshed.append(True),
    )

    decision = await editor.request_update(ProfileUpdate(name="Ana B"))

    assert decision.blocked
    assert editor.update_workflow is None
    assert editor.gate.pending
    migration = editor.migration_workflow
    assert [s.step_id for s in migration.snapshot().steps] == [
        "CreateChannelsTopic",
        "UpdateRecord",
    ]

    await migration.toggle_auto(True)
    await migration.start_workflow()
    await migration.join()

    assert editor.profile.is_v2()
    assert not editor.gate.pending
    update = editor.update_workflow
    assert update is not None

    await update.toggle_auto(True)
    await update.join()

    assert update.is_complete
    record = ledger.latest(TOPIC)
    assert record["Name"] == "Ana B"
    assert record["Channels"] == migration.snapshot().artifacts["CreateChannelsTopic"]
    assert record["ProfileVersion"] == "2"
    assert refreshed == [True]


@pytest.mark.asyncio
async def test_editor_updates_current_profile_directly():
    editor = ProfileEditor(
        ProfileRecord(Name="Ana", ProfileVersion="2"),
        TOPIC,
        InMemoryMediaStore(),
        InMemoryLedger(),
        WalletSession("0.0.1001"),
        config=_config(),
    )

    decision = await editor.request_update(ProfileUpdate(name="Ana"))

    assert decision.passed
    assert editor.migration_workflow is None
    assert editor.update_workflow.snapshot().total_steps == 1


@pytest.mark.asyncio
async def test_closing_migration_drops_pending_update():
    editor = ProfileEditor(
        _legacy(Groups=["g"]),
        TOPIC,
        InMemoryMediaStore(),
        InMemoryLedger(),
        WalletSession("0.0.1001"),
        config=_config(),
    )
    await editor.request_update(ProfileUpdate(name="Ana"))

    editor.close_migration()

    assert not editor.gate.pending
    assert editor.migration_workflow.cancelled
    assert await editor.gate.release() is False
