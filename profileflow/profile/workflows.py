"""Profile update and legacy format migration workflows."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from ..config import ProfileflowConfig
from ..contracts import CANCELLED, StepContext, StepHandler, WorkflowSnapshot
from ..gate import GateDecision, PreflightGate
from ..notify import Notifier
from ..registry import (
    MigrationStep,
    UpdateStep,
    build_migration_steps,
    build_update_steps,
)
from ..workflow import CompletionCallback, Workflow
from .models import (
    MediaFile,
    ProfileRecord,
    ProfileUpdate,
    has_list_data,
    list_data,
)
from .ports import LedgerClient, MediaUploader

logger = logging.getLogger(__name__)

LIST_TOPIC_MEMOS: Dict[str, str] = {
    MigrationStep.CREATE_CHANNELS_TOPIC.value: "iBird Channels List",
    MigrationStep.CREATE_GROUPS_TOPIC.value: "iBird Groups List",
    MigrationStep.CREATE_FOLLOWING_CHANNELS_TOPIC.value: "iBird Following Channels List",
    MigrationStep.CREATE_FOLLOWING_GROUPS_TOPIC.value: "iBird Following Groups List",
}

_TOPIC_STEP_FIELDS = {
    MigrationStep.CREATE_CHANNELS_TOPIC.value: ("channels", "Channels"),
    MigrationStep.CREATE_GROUPS_TOPIC.value: ("groups", "Groups"),
    MigrationStep.CREATE_FOLLOWING_CHANNELS_TOPIC.value: (
        "following_channels",
        "FollowingChannels",
    ),
    MigrationStep.CREATE_FOLLOWING_GROUPS_TOPIC.value: (
        "following_groups",
        "FollowingGroups",
    ),
}


class WalletSession:
    """Identity of the connected wallet, passed in by the caller."""

    def __init__(self, account_id: Optional[str] = None) -> None:
        self.account_id = account_id

    @property
    def connected(self) -> bool:
        return bool(self.account_id) and self.account_id != "undefined"

    async def is_active(self) -> bool:
        return self.connected


# ----------------------------------------------------------------------
# record messages
def build_update_record(
    update: ProfileUpdate,
    profile: Optional[ProfileRecord],
    artifacts: Dict[str, Any],
) -> ProfileRecord:
    """Merge form values and uploaded media into the current record."""
    current = profile or ProfileRecord()
    picture = artifacts.get(UpdateStep.UPLOAD_PICTURE.value) or current.picture
    banner = artifacts.get(UpdateStep.UPLOAD_BANNER.value) or current.banner
    return current.model_copy(
        update={
            "type": "Profile",
            "name": update.name,
            "bio": update.bio,
            "website": update.website,
            "picture": picture,
            "banner": banner,
            "profile_version": current.profile_version or "2",
        }
    )


def build_v2_record(profile: ProfileRecord, artifacts: Dict[str, Any]) -> ProfileRecord:
    """Replace inline legacy lists with the topic ids created for them."""
    values: Dict[str, Any] = {"private_messages": "", "profile_version": "2"}
    for step_id, (attr, _) in _TOPIC_STEP_FIELDS.items():
        values[attr] = artifacts.get(step_id) or ""
    return profile.model_copy(update=values)


# ----------------------------------------------------------------------
# handlers
def upload_handler(uploader: MediaUploader, file: MediaFile) -> StepHandler:
    async def _handler(ctx: StepContext) -> str:
        logger.info(f"Uploading {file.name} ({file.size} bytes) for {ctx.step_id}")
        return await uploader.upload(file)

    return _handler


def write_record_handler(
    ledger: LedgerClient,
    profile_topic_id: str,
    build: Callable[[Dict[str, Any]], ProfileRecord],
) -> StepHandler:
    """Submit the record produced by ``build`` to the profile topic."""

    async def _handler(ctx: StepContext) -> Any:
        record = build(ctx.artifacts)
        receipt = await ledger.send_message(profile_topic_id, record.to_message())
        if receipt is None:
            logger.warning("Profile update was cancelled or rejected by user")
            return CANCELLED
        if not receipt.ok:
            raise RuntimeError("Failed to update profile - transaction failed")
        return record

    return _handler


def list_topic_handler(
    ledger: LedgerClient,
    memo: str,
    items: List[Any],
    propagation_delay: float,
) -> StepHandler:
    """Create a topic for a legacy list and seed it with the list entries."""

    async def _handler(ctx: StepContext) -> Any:
        topic = await ledger.create_topic(memo)
        if topic is None:
            return CANCELLED
        if propagation_delay:
            await asyncio.sleep(propagation_delay)
        receipt = await ledger.send_message(topic, items)
        if receipt is None or not receipt.ok:
            raise RuntimeError(f"Failed to initialize {memo} topic")
        logger.info(f"Created {memo} topic {topic} with {len(items)} entries")
        return topic

    return _handler


# ----------------------------------------------------------------------
# workflow assembly
def create_update_workflow(
    update: ProfileUpdate,
    profile: Optional[ProfileRecord],
    profile_topic_id: str,
    uploader: MediaUploader,
    ledger: LedgerClient,
    session: WalletSession,
    notifier: Optional[Notifier] = None,
    config: Optional[ProfileflowConfig] = None,
    on_complete: Optional[CompletionCallback] = None,
) -> Workflow:
    """Build the ``[UploadPicture?, UploadBanner?, UpdateRecord]`` workflow.

    Raises:
        ValueError: If the form values cannot be submitted.
    """
    config = config or ProfileflowConfig()
    update.validate_for_submit(config.profile.max_media_bytes)

    steps = build_update_steps(
        has_picture=update.picture is not None, has_banner=update.banner is not None
    )
    handlers: Dict[str, StepHandler] = {
        UpdateStep.UPDATE_RECORD.value: write_record_handler(
            ledger,
            profile_topic_id,
            lambda artifacts: build_update_record(update, profile, artifacts),
        )
    }
    if update.picture is not None:
        handlers[UpdateStep.UPLOAD_PICTURE.value] = upload_handler(
            uploader, update.picture
        )
    if update.banner is not None:
        handlers[UpdateStep.UPLOAD_BANNER.value] = upload_handler(
            uploader, update.banner
        )

    return Workflow(
        "profile-update",
        steps,
        handlers,
        precondition=session.is_active,
        notifier=notifier,
        config=config.workflow,
        on_complete=on_complete,
    )


def create_migration_workflow(
    profile: ProfileRecord,
    profile_topic_id: str,
    ledger: LedgerClient,
    session: WalletSession,
    notifier: Optional[Notifier] = None,
    config: Optional[ProfileflowConfig] = None,
    on_complete: Optional[CompletionCallback] = None,
) -> Workflow:
    """Build the legacy-to-V2 migration workflow for ``profile``.

    One topic creation step is included per non-empty legacy list.
    """
    if profile.is_v2():
        raise ValueError("Profile is already in the current format")
    config = config or ProfileflowConfig()

    steps = build_migration_steps(
        has_channels=has_list_data(profile.channels),
        has_groups=has_list_data(profile.groups),
        has_following_channels=has_list_data(profile.following_channels),
        has_following_groups=has_list_data(profile.following_groups),
    )
    handlers: Dict[str, StepHandler] = {
        MigrationStep.UPDATE_RECORD.value: write_record_handler(
            ledger,
            profile_topic_id,
            lambda artifacts: build_v2_record(profile, artifacts),
        )
    }
    for step_id, (attr, _) in _TOPIC_STEP_FIELDS.items():
        field = getattr(profile, attr)
        if has_list_data(field):
            handlers[step_id] = list_topic_handler(
                ledger,
                LIST_TOPIC_MEMOS[step_id],
                list_data(field),
                config.profile.topic_propagation_delay,
            )

    return Workflow(
        "profile-migration",
        steps,
        handlers,
        precondition=session.is_active,
        notifier=notifier,
        config=config.workflow,
        on_complete=on_complete,
    )


class ProfileFormatGate(PreflightGate[Optional[ProfileRecord]]):
    """Block writes from legacy profiles until they have been migrated.

    Without a connected wallet or a loaded profile the gate lets the action
    through and leaves error handling to the action itself.
    """

    def __init__(self, session: WalletSession, release_delay: float = 1.0) -> None:
        super().__init__(self._needs_migration, release_delay=release_delay)
        self._session = session

    def _needs_migration(self, profile: Optional[ProfileRecord]) -> Optional[str]:
        if not self._session.connected or profile is None or profile.is_v2():
            return None
        return "Legacy profile format must be upgraded before it can be changed"


class ProfileEditor:
    """Runs profile updates, detouring through migration for legacy profiles.

    A blocked update is kept as the gate's deferred continuation and started
    once the migration workflow completes.
    """

    def __init__(
        self,
        profile: Optional[ProfileRecord],
        profile_topic_id: str,
        uploader: MediaUploader,
        ledger: LedgerClient,
        session: WalletSession,
        notifier: Optional[Notifier] = None,
        config: Optional[ProfileflowConfig] = None,
        on_refresh: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.profile = profile
        self.profile_topic_id = profile_topic_id
        self._uploader = uploader
        self._ledger = ledger
        self._session = session
        self._notifier = notifier
        self._config = config or ProfileflowConfig()
        self._on_refresh = on_refresh
        self.gate = ProfileFormatGate(
            session, release_delay=self._config.workflow.gate_release_delay
        )
        self.update_workflow: Optional[Workflow] = None
        self.migration_workflow: Optional[Workflow] = None

    async def request_update(self, update: ProfileUpdate) -> GateDecision:
        """Start the update workflow, or the migration workflow it waits on.

        Raises:
            ValueError: If the form values cannot be submitted.
        """
        update.validate_for_submit(self._config.profile.max_media_bytes)

        async def proceed() -> None:
            self.update_workflow = create_update_workflow(
                update,
                self.profile,
                self.profile_topic_id,
                self._uploader,
                self._ledger,
                self._session,
                notifier=self._notifier,
                config=self._config,
                on_complete=self._update_done,
            )
            await self.update_workflow.start_workflow()

        decision = await self.gate.require(self.profile, proceed)
        if decision.blocked:
            self.migration_workflow = create_migration_workflow(
                self.profile,
                self.profile_topic_id,
                self._ledger,
                self._session,
                notifier=self._notifier,
                config=self._config,
                on_complete=self._migration_done,
            )
        return decision

    def close_migration(self) -> None:
        """Abandon the migration and the update waiting behind it."""
        if self.migration_workflow is not None:
            self.migration_workflow.cancel()
        self.gate.discard()

    async def _migration_done(self, snapshot: WorkflowSnapshot) -> None:
        migrated = snapshot.artifacts.get(MigrationStep.UPDATE_RECORD.value)
        if isinstance(migrated, ProfileRecord):
            self.profile = migrated
        logger.info("Profile migrated to current format")
        await self.gate.release()

    async def _update_done(self, snapshot: WorkflowSnapshot) -> None:
        updated = snapshot.artifacts.get(UpdateStep.UPDATE_RECORD.value)
        if isinstance(updated, ProfileRecord):
            self.profile = updated
        if self._on_refresh is not None:
            self._on_refresh()
