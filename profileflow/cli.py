"""Command line interface for planning and dry-running profile workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer

from profileflow import RecordingNotifier, StepStatus, Workflow, WorkflowSnapshot
from profileflow.config import ProfileflowConfig, load_config
from profileflow.profile import (
    InMemoryLedger,
    InMemoryMediaStore,
    MediaFile,
    ProfileRecord,
    ProfileUpdate,
    WalletSession,
    create_migration_workflow,
    create_update_workflow,
    has_list_data,
)
from profileflow.registry import build_migration_steps, build_update_steps

app = typer.Typer(help="CLI for profileflow workflows")

plan_app = typer.Typer(help="Show the steps a workflow would run")
run_app = typer.Typer(help="Run workflows against in-memory backends")

app.add_typer(plan_app, name="plan")
app.add_typer(run_app, name="run")

_LEVEL_COLORS = {
    "success": typer.colors.GREEN,
    "error": typer.colors.RED,
    "warning": typer.colors.YELLOW,
    "info": None,
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """profileflow CLI entry point."""
    level = "DEBUG" if verbose else load_config().log_level
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _load_profile(path: Path) -> ProfileRecord:
    if not path.exists():
        typer.secho(f"Profile file not found: {path}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return ProfileRecord.model_validate(json.loads(path.read_text()))


def _load_run_config(config_path: Optional[Path], no_delay: bool) -> ProfileflowConfig:
    config = load_config(str(config_path) if config_path else None)
    if no_delay:
        config.workflow.settle_delay = 0
        config.workflow.transient_retry_delay = 0
        config.workflow.gate_release_delay = 0
        config.profile.topic_propagation_delay = 0
    return config


def _echo_steps(snapshot: WorkflowSnapshot) -> None:
    for step in snapshot.steps:
        state = step.status.value
        if step.status is StepStatus.IDLE:
            state = "idle" if step.enabled else "idle (waiting)"
        typer.echo(f"{step.step_id}\t{state}")


def _echo_result(snapshot: WorkflowSnapshot, notifier: RecordingNotifier) -> None:
    for level, message in notifier.messages:
        typer.secho(message, fg=_LEVEL_COLORS.get(level))
    _echo_steps(snapshot)
    typer.echo(f"Completed {snapshot.completed_count}/{snapshot.total_steps}")


async def _drive(workflow: Workflow, auto: bool) -> WorkflowSnapshot:
    """Run ``workflow`` to completion or first failure."""
    if auto:
        if not await workflow.toggle_auto(True):
            return workflow.snapshot()
        await workflow.start_workflow()
        await workflow.join()
        return workflow.snapshot()

    await workflow.start_workflow()
    while not workflow.is_complete:
        ready = next(
            (
                s.step_id
                for s in workflow.snapshot().steps
                if s.status is StepStatus.IDLE and s.enabled
            ),
            None,
        )
        if ready is None:
            break
        outcome = await workflow.start_step(ready)
        if outcome is None or not outcome.succeeded:
            break
    await workflow.join()
    return workflow.snapshot()


@plan_app.command("update")
def plan_update(
    picture: bool = typer.Option(False, help="A new profile picture was chosen"),
    banner: bool = typer.Option(False, help="A new banner was chosen"),
) -> None:
    """
    Show the steps of a profile update.

    Example:
        profileflow plan update --picture
        # Output: UploadPicture    idle
        #         UpdateRecord     idle (waiting)
    """
    for step in build_update_steps(has_picture=picture, has_banner=banner):
        state = "idle" if step.enabled else "idle (waiting)"
        typer.echo(f"{step.step_id}\t{state}")


@plan_app.command("migrate")
def plan_migrate(profile_path: Path) -> None:
    """Show the steps needed to migrate a legacy profile record."""
    profile = _load_profile(profile_path)
    if profile.is_v2():
        typer.echo("Profile is already in the current format")
        return
    steps = build_migration_steps(
        has_channels=has_list_data(profile.channels),
        has_groups=has_list_data(profile.groups),
        has_following_channels=has_list_data(profile.following_channels),
        has_following_groups=has_list_data(profile.following_groups),
    )
    for step in steps:
        state = "idle" if step.enabled else "idle (waiting)"
        typer.echo(f"{step.step_id}\t{state}")


@run_app.command("update")
def run_update(
    name: str = typer.Option(..., help="Display name"),
    bio: str = typer.Option("", help="Biography"),
    website: str = typer.Option("", help="Website URL"),
    picture: Optional[Path] = typer.Option(None, help="Profile picture file"),
    banner: Optional[Path] = typer.Option(None, help="Banner file"),
    auto: bool = typer.Option(True, "--auto/--manual", help="Auto-progress steps"),
    account: str = typer.Option("0.0.1001", help="Wallet account id"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Config file"),
    no_delay: bool = typer.Option(False, help="Skip settle and retry delays"),
) -> None:
    """
    Dry-run a profile update against in-memory storage.

    Example:
        profileflow run update --name Ana --picture ./me.png --no-delay
    """
    config = _load_run_config(config_path, no_delay)
    for path in (picture, banner):
        if path is not None and not path.exists():
            typer.secho(f"File not found: {path}", fg=typer.colors.RED)
            raise typer.Exit(code=1)

    update = ProfileUpdate(
        name=name,
        bio=bio,
        website=website,
        picture=MediaFile.from_path(picture) if picture else None,
        banner=MediaFile.from_path(banner) if banner else None,
    )
    notifier = RecordingNotifier()
    try:
        workflow = create_update_workflow(
            update,
            ProfileRecord(profile_version="2"),
            "0.0.1",
            InMemoryMediaStore(),
            InMemoryLedger(),
            WalletSession(account),
            notifier=notifier,
            config=config,
        )
    except ValueError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    snapshot = asyncio.run(_drive(workflow, auto))
    _echo_result(snapshot, notifier)
    if not workflow.is_complete:
        raise typer.Exit(code=1)


@run_app.command("migrate")
def run_migrate(
    profile_path: Path,
    auto: bool = typer.Option(True, "--auto/--manual", help="Auto-progress steps"),
    account: str = typer.Option("0.0.1001", help="Wallet account id"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Config file"),
    no_delay: bool = typer.Option(False, help="Skip settle and retry delays"),
) -> None:
    """Dry-run the migration of a legacy profile record."""
    config = _load_run_config(config_path, no_delay)
    profile = _load_profile(profile_path)
    if profile.is_v2():
        typer.echo("Profile is already in the current format")
        return

    notifier = RecordingNotifier()
    ledger = InMemoryLedger()
    workflow = create_migration_workflow(
        profile,
        "0.0.1",
        ledger,
        WalletSession(account),
        notifier=notifier,
        config=config,
    )
    snapshot = asyncio.run(_drive(workflow, auto))
    _echo_result(snapshot, notifier)
    if not workflow.is_complete:
        raise typer.Exit(code=1)
    typer.echo(json.dumps(ledger.latest("0.0.1"), indent=2))


if __name__ == "__main__":  # pragma: no cover
    app()
