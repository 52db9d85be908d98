"""Command line interface for the RFI workflow engine."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import typer

from rfiflow import api
from rfiflow.config import load_config
from rfiflow.models import ensure_utc
from rfiflow.notifications import get_notifier
from rfiflow.persistence import get_repository
from rfiflow.states import Stage, Status
from rfiflow.workflow import DEFAULT_CATALOG, OverdueSweeper, TransitionExecutor, build_executor

T = TypeVar("T")

app = typer.Typer(help="CLI for RFI lifecycle workflows")

# Command groups
rfi_app = typer.Typer(help="Commands for managing RFIs")
audit_app = typer.Typer(help="Commands for the audit trail")
activity_app = typer.Typer(help="Commands for the activity feed")
sweep_app = typer.Typer(help="Overdue sweeper commands")
notifications_app = typer.Typer(help="Notification commands")

app.add_typer(rfi_app, name="rfi")
app.add_typer(audit_app, name="audit")
app.add_typer(activity_app, name="activity")
app.add_typer(sweep_app, name="sweep")
app.add_typer(notifications_app, name="notifications")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level (defaults to the configured log_level)"
    ),
) -> None:
    """rfiflow CLI entry point."""
    level = (log_level or load_config().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _run(command: Callable[[TransitionExecutor], Awaitable[T]]) -> T:
    """Run ``command`` against a freshly wired executor.

    The outbox is drained before the event loop closes so activity entries
    and notifications queued by the command are delivered.
    """
    config = load_config()

    async def runner() -> T:
        notifier = get_notifier(config=config)
        await notifier.connect()
        executor = build_executor(get_repository(), notifier)
        try:
            return await command(executor)
        finally:
            await executor.outbox.close()
            await notifier.disconnect()

    return asyncio.run(runner())


def _emit(response: dict[str, Any]) -> None:
    typer.echo(json.dumps(response, indent=2, default=str))
    if not response.get("success"):
        raise typer.Exit(code=1)


def _parse_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _parse_assignments(assignments: List[str]) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for item in assignments:
        if "=" not in item:
            typer.secho(f"Expected key=value, got '{item}'", fg=typer.colors.RED)
            raise typer.Exit(code=2)
        key, raw = item.split("=", 1)
        fields[key.strip()] = _parse_value(raw)
    return fields


@rfi_app.command("create")
def rfi_create(
    subject: str = typer.Option(..., help="Short subject line"),
    actor: str = typer.Option(..., help="Acting user id"),
    description: str = typer.Option("", help="Question body"),
    rfi_number: Optional[str] = typer.Option(None, help="Human-readable RFI number"),
    project_id: Optional[str] = typer.Option(None, help="Owning project id"),
    priority: str = typer.Option("medium", help="Priority label"),
) -> None:
    """
    Create a new RFI in draft status.

    Example:
        rfiflow rfi create --subject "Beam size at grid C4" --actor u-17
    """
    fields: dict[str, Any] = {
        "subject": subject,
        "description": description,
        "priority": priority,
    }
    if rfi_number:
        fields["rfi_number"] = rfi_number
    if project_id:
        fields["project_id"] = project_id
    _emit(_run(lambda executor: api.create_rfi(executor, fields, actor)))


@rfi_app.command("show")
def rfi_show(rfi_id: str) -> None:
    """Show the stored record for an RFI."""
    repo = get_repository()
    record = asyncio.run(repo.get_rfi(rfi_id))
    if record is None:
        typer.echo("RFI not found")
        raise typer.Exit(code=1)
    typer.echo(json.dumps(record.model_dump(mode="json"), indent=2))


@rfi_app.command("transitions")
def rfi_transitions(rfi_id: str) -> None:
    """List the status and stage moves available from the current state."""
    _emit(_run(lambda executor: api.get_transitions(executor, rfi_id)))


@rfi_app.command("transition")
def rfi_transition(
    rfi_id: str,
    target: Status,
    actor: str = typer.Option(..., help="Acting user id"),
    due_date: Optional[str] = typer.Option(None, help="Due date (ISO 8601) when sending"),
    assigned_to: Optional[str] = typer.Option(None, help="Assignee when sending"),
    response: Optional[str] = typer.Option(None, help="Client response text"),
    rejection_type: Optional[str] = typer.Option(None, help="Rejection type"),
    rejection_reason: Optional[str] = typer.Option(None, help="Rejection reason"),
    voided_reason: Optional[str] = typer.Option(None, help="Reason for voiding"),
    superseded_by: Optional[str] = typer.Option(None, help="Id of the replacing RFI"),
    reason: Optional[str] = typer.Option(None, help="Free-text reason for the audit trail"),
    retries: int = typer.Option(0, help="Retries on concurrent update conflicts"),
) -> None:
    """
    Move an RFI to a new status.

    Example:
        rfiflow rfi transition 3f2a... sent --actor u-17 --due-date 2026-11-01 --assigned-to u-22
        rfiflow rfi transition 3f2a... rejected --actor u-17 \\
            --rejection-type client_rejected --rejection-reason "Out of scope"
    """
    candidates = {
        "due_date": due_date,
        "assigned_to": assigned_to,
        "response": response,
        "rejection_type": rejection_type,
        "rejection_reason": rejection_reason,
        "voided_reason": voided_reason,
        "superseded_by": superseded_by,
        "reason": reason,
    }
    payload = {
        "rfi_id": rfi_id,
        "target_status": target.value,
        "actor_id": actor,
        "extra": {key: value for key, value in candidates.items() if value is not None},
    }
    _emit(_run(lambda executor: api.change_status(executor, payload, retries=retries)))


@rfi_app.command("stage")
def rfi_stage(
    rfi_id: str,
    target: Stage,
    actor: str = typer.Option(..., help="Acting user id"),
    reason: Optional[str] = typer.Option(None, help="Free-text reason for the audit trail"),
) -> None:
    """Move an RFI to a new stage within its current status."""
    payload = {
        "rfi_id": rfi_id,
        "target_stage": target.value,
        "actor_id": actor,
        "extra": {"reason": reason} if reason else {},
    }
    _emit(_run(lambda executor: api.change_stage(executor, payload)))


@rfi_app.command("update")
def rfi_update(
    rfi_id: str,
    assignments: List[str] = typer.Option(..., "--set", help="Field assignment key=value"),
    actor: str = typer.Option(..., help="Acting user id"),
) -> None:
    """
    Update fields that are not governed by the state machine.

    Values are parsed as JSON when possible, otherwise kept as text.

    Example:
        rfiflow rfi update 3f2a... --set labor_costs=1200 --set subject="Revised" --actor u-17
    """
    payload = {"rfi_id": rfi_id, "actor_id": actor, "fields": _parse_assignments(assignments)}
    _emit(_run(lambda executor: api.update_rfi(executor, payload)))


@rfi_app.command("delete")
def rfi_delete(
    rfi_id: str,
    actor: str = typer.Option(..., help="Acting user id"),
    yes: bool = typer.Option(False, "--yes", help="Skip confirmation"),
) -> None:
    """Administratively remove an RFI. Its audit trail is kept."""
    if not yes:
        typer.confirm(f"Delete RFI {rfi_id}?", abort=True)
    _emit(_run(lambda executor: api.delete_rfi(executor, rfi_id, actor)))


@audit_app.command("list")
def audit_list(rfi_id: str) -> None:
    """Show the audit trail for an RFI, oldest first."""
    repo = get_repository()
    entries = asyncio.run(repo.list_audit(rfi_id))
    if not entries:
        typer.echo("No audit entries found")
        return
    for entry in entries:
        typer.echo(
            f"{entry.timestamp.isoformat()}\t{entry.action_kind.value}\t"
            f"{entry.from_state} -> {entry.to_state}\t{entry.actor_id}"
            + (f"\t{entry.detail}" if entry.detail else "")
        )


@audit_app.command("clear")
def audit_clear(
    actor: str = typer.Option(..., help="Acting user id"),
    rfi_id: Optional[str] = typer.Option(None, help="Limit to one RFI"),
    yes: bool = typer.Option(False, "--yes", help="Skip confirmation"),
) -> None:
    """Delete audit entries. The clear itself is written to the activity feed."""
    if not yes:
        scope = rfi_id or "ALL RFIs"
        typer.confirm(f"Clear audit trail for {scope}?", abort=True)
    _emit(_run(lambda executor: api.clear_audit(executor, actor, rfi_id)))


@activity_app.command("list")
def activity_list(
    rfi_id: Optional[str] = typer.Option(None, help="Limit to one RFI"),
    limit: Optional[int] = typer.Option(None, help="Maximum number of entries"),
) -> None:
    """Show the activity feed, newest first."""
    repo = get_repository()
    entries = asyncio.run(repo.list_activity(rfi_id, limit))
    if not entries:
        typer.echo("No activity found")
        return
    for entry in entries:
        typer.echo(
            f"{entry.created_at.isoformat()}\t{entry.activity_type}\t"
            f"{entry.actor_id}\t{entry.message}"
        )


@sweep_app.command("run")
def sweep_run(
    now: Optional[datetime] = typer.Option(None, help="Reference time (defaults to now, UTC)"),
) -> None:
    """Mark every sent RFI past its due date as overdue, once."""
    config = load_config()

    async def command(executor: TransitionExecutor) -> int:
        sweeper = OverdueSweeper(executor.repository, executor, config.sweeper.actor_id)
        return await sweeper.sweep(ensure_utc(now))

    marked = _run(command)
    typer.echo(f"Marked {marked} RFI(s) overdue")


@sweep_app.command("watch")
def sweep_watch(
    interval: Optional[float] = typer.Option(None, help="Seconds between sweeps"),
    lifespan: Optional[float] = typer.Option(None, help="Stop after this many seconds"),
) -> None:
    """Run the overdue sweeper on a timer."""
    config = load_config()
    every = interval or config.sweeper.interval_seconds

    async def command(executor: TransitionExecutor) -> int:
        sweeper = OverdueSweeper(executor.repository, executor, config.sweeper.actor_id)
        return await sweeper.run_periodic(every, lifespan=lifespan)

    typer.echo(f"Sweeping every {every}s")
    marked = _run(command)
    typer.echo(f"Marked {marked} RFI(s) overdue")


@notifications_app.command("tail")
def notifications_tail(
    lifespan: Optional[float] = typer.Option(None, help="Stop after this many seconds"),
) -> None:
    """Print notifications as they arrive on the configured topic."""
    config = load_config()

    async def tail() -> None:
        notifier = get_notifier(config=config)
        await notifier.connect()
        try:
            async for raw, notification in notifier.subscribe(notifier.topic, lifespan):
                typer.echo(
                    f"{notification.timestamp.isoformat()}\t{notification.kind.value}\t"
                    f"{notification.rfi_id}\t{notification.message}"
                )
                await notifier.ack(raw)
        finally:
            await notifier.disconnect()

    asyncio.run(tail())


@app.command("states")
def states() -> None:
    """Print the status and stage catalog."""
    typer.echo("Statuses:")
    for meta in DEFAULT_CATALOG.statuses.values():
        typer.echo(f"  {meta.value}\t{meta.label}\t[{meta.category.value}]\t{meta.description}")
    typer.echo("Stages:")
    for meta in DEFAULT_CATALOG.stages.values():
        typer.echo(f"  {meta.value}\t{meta.label}\t{meta.description}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
