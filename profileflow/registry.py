"""Step registry: which steps exist for a workflow instance."""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Mapping, Sequence

from .contracts import StepDefinition, StepState, StepStatus

logger = logging.getLogger(__name__)


class UpdateStep(str, Enum):
    """Steps of the profile update workflow."""

    UPLOAD_PICTURE = "UploadPicture"
    UPLOAD_BANNER = "UploadBanner"
    UPDATE_RECORD = "UpdateRecord"


class MigrationStep(str, Enum):
    """Steps of the legacy profile format migration workflow."""

    CREATE_CHANNELS_TOPIC = "CreateChannelsTopic"
    CREATE_GROUPS_TOPIC = "CreateGroupsTopic"
    CREATE_FOLLOWING_CHANNELS_TOPIC = "CreateFollowingChannelsTopic"
    CREATE_FOLLOWING_GROUPS_TOPIC = "CreateFollowingGroupsTopic"
    UPDATE_RECORD = "UpdateRecord"


UPDATE_DEFINITIONS: List[StepDefinition] = [
    StepDefinition(step_id=UpdateStep.UPLOAD_PICTURE.value, label="Upload picture"),
    StepDefinition(step_id=UpdateStep.UPLOAD_BANNER.value, label="Upload banner"),
    StepDefinition(
        step_id=UpdateStep.UPDATE_RECORD.value,
        prerequisites=[UpdateStep.UPLOAD_PICTURE.value, UpdateStep.UPLOAD_BANNER.value],
        optional=False,
        label="Update profile",
    ),
]


def _chained(step_ids: Sequence[str]) -> List[List[str]]:
    return [list(step_ids[:i]) for i in range(len(step_ids))]


_MIGRATION_ORDER = [step.value for step in MigrationStep]
_MIGRATION_LABELS = {
    MigrationStep.CREATE_CHANNELS_TOPIC.value: "Create channels list",
    MigrationStep.CREATE_GROUPS_TOPIC.value: "Create groups list",
    MigrationStep.CREATE_FOLLOWING_CHANNELS_TOPIC.value: "Create following channels list",
    MigrationStep.CREATE_FOLLOWING_GROUPS_TOPIC.value: "Create following groups list",
    MigrationStep.UPDATE_RECORD.value: "Upgrade profile",
}

MIGRATION_DEFINITIONS: List[StepDefinition] = [
    StepDefinition(
        step_id=step_id,
        prerequisites=prereqs,
        optional=step_id != MigrationStep.UPDATE_RECORD.value,
        label=_MIGRATION_LABELS[step_id],
    )
    for step_id, prereqs in zip(_MIGRATION_ORDER, _chained(_MIGRATION_ORDER))
]


def build_steps(
    definitions: Sequence[StepDefinition], present: Mapping[str, bool]
) -> List[StepState]:
    """Return the concrete step sequence for the inputs that are present.

    Optional steps whose entry in ``present`` is falsy are left out entirely.
    A step starts enabled only when none of its declared prerequisites made it
    into the sequence; absent prerequisites count as satisfied.
    """

    included = [
        d for d in definitions if not d.optional or present.get(d.step_id, False)
    ]
    included_ids = {d.step_id for d in included}
    if len(included_ids) != len(included):
        raise ValueError("Duplicate step identifiers in workflow definition")

    steps = [
        StepState(
            step_id=d.step_id,
            status=StepStatus.IDLE,
            enabled=not any(p in included_ids for p in d.prerequisites),
            prerequisites=list(d.prerequisites),
            label=d.label,
        )
        for d in included
    ]
    logger.debug(f"Built steps: {[s.step_id for s in steps]}")
    return steps


def build_update_steps(has_picture: bool, has_banner: bool) -> List[StepState]:
    """Steps for a profile update; uploads only when a file was chosen."""
    return build_steps(
        UPDATE_DEFINITIONS,
        {
            UpdateStep.UPLOAD_PICTURE.value: has_picture,
            UpdateStep.UPLOAD_BANNER.value: has_banner,
        },
    )


def build_migration_steps(
    has_channels: bool,
    has_groups: bool,
    has_following_channels: bool,
    has_following_groups: bool,
) -> List[StepState]:
    """Steps for a migration; one topic step per non-empty legacy list."""
    return build_steps(
        MIGRATION_DEFINITIONS,
        {
            MigrationStep.CREATE_CHANNELS_TOPIC.value: has_channels,
            MigrationStep.CREATE_GROUPS_TOPIC.value: has_groups,
            MigrationStep.CREATE_FOLLOWING_CHANNELS_TOPIC.value: has_following_channels,
            MigrationStep.CREATE_FOLLOWING_GROUPS_TOPIC.value: has_following_groups,
        },
    )


__all__ = [
    "UpdateStep",
    "MigrationStep",
    "UPDATE_DEFINITIONS",
    "MIGRATION_DEFINITIONS",
    "build_steps",
    "build_update_steps",
    "build_migration_steps",
]
