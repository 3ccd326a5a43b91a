"""Step registry tests."""

import pytest

from profileflow.contracts import StepDefinition, StepStatus
from profileflow.registry import (
    MigrationStep,
    UpdateStep,
    build_migration_steps,
    build_steps,
    build_update_steps,
)


def _summary(steps):
    return [(s.step_id, s.status, s.enabled) for s in steps]


def test_update_without_media_has_only_record_step():
    steps = build_update_steps(has_picture=False, has_banner=False)

    assert _summary(steps) == [("UpdateRecord", StepStatus.IDLE, True)]


def test_update_with_picture_and_banner():
    steps = build_update_steps(has_picture=True, has_banner=True)

    assert _summary(steps) == [
        ("UploadPicture", StepStatus.IDLE, True),
        ("UploadBanner", StepStatus.IDLE, True),
        ("UpdateRecord", StepStatus.IDLE, False),
    ]


def test_update_with_banner_only_omits_picture_step():
    steps = build_update_steps(has_picture=False, has_banner=True)

    assert [s.step_id for s in steps] == ["UploadBanner", "UpdateRecord"]
    assert steps[1].enabled is False
    # absent prerequisites are still declared
    assert steps[1].prerequisites == ["UploadPicture", "UploadBanner"]


def test_migration_with_only_groups():
    steps = build_migration_steps(
        has_channels=False,
        has_groups=True,
        has_following_channels=False,
        has_following_groups=False,
    )

    assert _summary(steps) == [
        ("CreateGroupsTopic", StepStatus.IDLE, True),
        ("UpdateRecord", StepStatus.IDLE, False),
    ]


def test_migration_topic_steps_are_chained():
    steps = build_migration_steps(True, True, True, True)

    assert [s.step_id for s in steps] == [m.value for m in MigrationStep]
    assert [s.enabled for s in steps] == [True, False, False, False, False]
    assert steps[3].prerequisites == [
        "CreateChannelsTopic",
        "CreateGroupsTopic",
        "CreateFollowingChannelsTopic",
    ]


def test_migration_without_lists_enables_record_step():
    steps = build_migration_steps(False, False, False, False)

    assert _summary(steps) == [("UpdateRecord", StepStatus.IDLE, True)]


def test_build_steps_accepts_enum_identifiers():
    definitions = [
        StepDefinition(step_id=UpdateStep.UPLOAD_PICTURE),
        StepDefinition(
            step_id=UpdateStep.UPDATE_RECORD,
            prerequisites=[UpdateStep.UPLOAD_PICTURE],
            optional=False,
        ),
    ]

    steps = build_steps(definitions, {"UploadPicture": True})

    assert [s.step_id for s in steps] == ["UploadPicture", "UpdateRecord"]
    assert steps[1].prerequisites == ["UploadPicture"]


def test_build_steps_rejects_duplicates():
    definitions = [
        StepDefinition(step_id="a", optional=False),
        StepDefinition(step_id="a", optional=False),
    ]

    with pytest.raises(ValueError):
        build_steps(definitions, {})
