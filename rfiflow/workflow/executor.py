"""Transition execution engine for RFI workflows.

The executor is the only code path that writes ``status`` or ``stage``.
Every command follows the same shape: read, validate, compute the field
update, persist conditionally on the status that was read, then record the
audit entry and hand the activity entry and notification to the outbox.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from pydantic import ValidationError

from ..audit import ActivityLog, AuditLog
from ..errors import (
    IllegalTransitionError,
    PersistenceError,
    RfiFlowError,
    ValidationFailedError,
)
from ..models import (
    LIFECYCLE_TIMESTAMPS,
    ActivityEntry,
    AuditEntry,
    RfiRecord,
    TransitionResult,
    utcnow,
)
from ..notifications.base import NotificationTransport
from ..persistence.repository import ANY_STAGE, RfiRepository
from ..states import ActionKind, NotificationKind, Stage, Status
from .catalog import DEFAULT_CATALOG, StateCatalog
from .outbox import Outbox, OutboxTask
from .transitions import DEFAULT_STAGE_TABLE, DEFAULT_STATUS_TABLE, TransitionTable
from .validator import TransitionValidator, fetch_for_validation

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

STATUS_TIMESTAMPS: dict[Status, str] = {
    Status.ACTIVE: "date_activated",
    Status.SENT: "date_sent",
    Status.RESPONDED: "date_responded",
    Status.CLOSED: "date_closed",
}

# Fields a caller may supply in ``extra`` for a given target; copied onto
# the record only when the record does not already have a value.
EXTRA_FIELDS: dict[Status, tuple[str, ...]] = {
    Status.SENT: ("due_date", "assigned_to"),
    Status.RESPONDED: ("response",),
    Status.REJECTED: ("rejection_type", "rejection_reason"),
    Status.VOIDED: ("voided_reason",),
    Status.SUPERSEDED: ("superseded_by",),
}

STATUS_STAGES: dict[Status, Stage] = {
    Status.SENT: Stage.AWAITING_RESPONSE,
    Status.OVERDUE: Stage.LATE_OVERDUE,
    Status.RESPONDED: Stage.RESPONSE_RECEIVED,
}
STAGE_PRESERVING_STATUSES = frozenset({Status.CLOSED})

STAGE_TIMESTAMPS: dict[Stage, str] = {
    Stage.FIELD_WORK_IN_PROGRESS: "work_started_at",
    Stage.WORK_COMPLETED: "work_completed_at",
}

NOTIFICATION_KINDS: dict[Status, NotificationKind] = {
    Status.RESPONDED: NotificationKind.RESPONSE_RECEIVED,
    Status.OVERDUE: NotificationKind.OVERDUE_REMINDER,
}

PROTECTED_FIELDS = frozenset(
    {
        "id",
        "status",
        "stage",
        "created_at",
        "updated_at",
        "work_started_at",
        "work_completed_at",
        "total_cost",
        "exclude_from_cost_tracking",
        "cost_tracking_transferred_to",
        *LIFECYCLE_TIMESTAMPS,
    }
)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _coerce_target(kind: type, value: Any, current: Any) -> Any:
    try:
        return kind(value)
    except ValueError:
        raise IllegalTransitionError(getattr(current, "value", current), str(value)) from None


def _validation_messages(exc: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in exc.errors()
    ]


class TransitionExecutor:
    """Validates, applies and records RFI status and stage changes."""

    def __init__(
        self,
        repository: RfiRepository,
        notifier: Optional[NotificationTransport] = None,
        *,
        table: TransitionTable[Status] = DEFAULT_STATUS_TABLE,
        stage_table: TransitionTable[Stage] = DEFAULT_STAGE_TABLE,
        catalog: StateCatalog = DEFAULT_CATALOG,
        validator: Optional[TransitionValidator] = None,
        audit_log: Optional[AuditLog] = None,
        activity_log: Optional[ActivityLog] = None,
        outbox: Optional[Outbox] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._repository = repository
        self._notifier = notifier
        self.table = table
        self.stage_table = stage_table
        self.catalog = catalog
        self.validator = validator or TransitionValidator(table, stage_table)
        self.activity_log = activity_log or ActivityLog(repository)
        self.audit_log = audit_log or AuditLog(repository, self.activity_log)
        self.outbox = outbox or Outbox()
        self._clock = clock or utcnow

    @property
    def repository(self) -> RfiRepository:
        return self._repository

    # ------------------------------------------------------------------
    # Commands
    async def execute(
        self,
        rfi_id: str,
        target_status: Status | str,
        actor_id: str,
        extra: Optional[dict[str, Any]] = None,
    ) -> TransitionResult:
        """Move ``rfi_id`` to ``target_status`` on behalf of ``actor_id``.

        An unknown status name is reported as an illegal transition.
        """
        try:
            record = await self._transition(rfi_id, target_status, actor_id, extra or {})
        except RfiFlowError as exc:
            logger.debug(f"Transition of {rfi_id} refused: {exc.message}")
            return TransitionResult.failure(exc)
        return TransitionResult.success(record)

    async def change_stage(
        self,
        rfi_id: str,
        target_stage: Stage | str,
        actor_id: str,
        extra: Optional[dict[str, Any]] = None,
    ) -> TransitionResult:
        """Move ``rfi_id`` to ``target_stage`` within its current status."""
        try:
            record = await self._stage_transition(rfi_id, target_stage, actor_id, extra or {})
        except RfiFlowError as exc:
            logger.debug(f"Stage change of {rfi_id} refused: {exc.message}")
            return TransitionResult.failure(exc)
        return TransitionResult.success(record)

    async def update_fields(
        self, rfi_id: str, fields: dict[str, Any], actor_id: str
    ) -> TransitionResult:
        """Generic update path for fields outside the state machine."""
        try:
            record = await self._update(rfi_id, fields, actor_id)
        except RfiFlowError as exc:
            return TransitionResult.failure(exc)
        return TransitionResult.success(record)

    async def create(self, fields: dict[str, Any], actor_id: str) -> TransitionResult:
        """Insert a new RFI. New records always start as ``draft``."""
        try:
            record = await self._create(fields, actor_id)
        except RfiFlowError as exc:
            return TransitionResult.failure(exc)
        return TransitionResult.success(record)

    async def available_transitions(self, rfi_id: str) -> dict[str, Any]:
        record = await fetch_for_validation(self._repository, rfi_id)
        state = self.catalog.describe_status(record.status)
        return {
            "current_status": record.status.value,
            "current_stage": record.stage.value if record.stage else None,
            "workflow_state": {
                "status": state.value,
                "label": state.label,
                "description": state.description,
                "color": state.color,
                "bg_color": state.bg_color,
                "icon": state.icon,
            },
            "available_transitions": [
                entry.to_dict() for entry in self.table.transitions_from(record.status)
            ],
            "available_stage_transitions": [
                entry.to_dict() for entry in self.stage_table.transitions_from(record.stage)
            ],
        }

    # ------------------------------------------------------------------
    # Pipelines
    async def _transition(
        self, rfi_id: str, target_status: Status | str, actor_id: str, extra: dict[str, Any]
    ) -> RfiRecord:
        record = await fetch_for_validation(self._repository, rfi_id)
        target = _coerce_target(Status, target_status, record.status)
        candidate = self._overlay(record, target, extra)

        result = self.validator.validate(candidate, target)
        if not result.legal:
            raise IllegalTransitionError(record.status.value, target.value)
        if not result.valid:
            raise ValidationFailedError(result.errors)

        now = self._clock()
        fields = self._status_fields(record, candidate, target, now)
        updated = await self._persist(rfi_id, fields, record.status)

        from_status = record.status.value
        reason = extra.get("reason")
        logger.info(f"RFI {rfi_id} moved {from_status} -> {target.value} by {actor_id}")

        await self.audit_log.append(
            AuditEntry(
                rfi_id=rfi_id,
                actor_id=actor_id,
                action_kind=ActionKind.STATUS_TRANSITION,
                from_state=from_status,
                to_state=target.value,
                detail=reason or "",
                timestamp=now,
            )
        )
        message = f"Status changed from {from_status} to {target.value}"
        self._enqueue_activity(
            ActivityEntry(
                rfi_id=rfi_id,
                actor_id=actor_id,
                activity_type="status_changed",
                message=message,
                details={
                    "from_status": from_status,
                    "to_status": target.value,
                    "reason": reason,
                },
                created_at=now,
            )
        )
        self._enqueue_notification(
            NOTIFICATION_KINDS.get(target, NotificationKind.STATUS_CHANGED),
            updated,
            from_status,
            actor_id,
            reason,
            message,
        )
        return updated

    async def _stage_transition(
        self, rfi_id: str, target_stage: Stage | str, actor_id: str, extra: dict[str, Any]
    ) -> RfiRecord:
        record = await fetch_for_validation(self._repository, rfi_id)
        target = _coerce_target(Stage, target_stage, record.stage)
        from_stage = record.stage.value if record.stage else None

        result = self.validator.validate_stage(record, target)
        if not result.legal:
            raise IllegalTransitionError(from_stage, target.value)
        if not result.valid:
            raise ValidationFailedError(result.errors)

        now = self._clock()
        fields: dict[str, Any] = {"stage": target, "updated_at": now}
        stamp = STAGE_TIMESTAMPS.get(target)
        if stamp and getattr(record, stamp) is None:
            fields[stamp] = now
        updated = await self._persist(
            rfi_id, fields, record.status, expected_stage=record.stage
        )

        reason = extra.get("reason")
        logger.info(f"RFI {rfi_id} stage {from_stage} -> {target.value} by {actor_id}")
        await self.audit_log.append(
            AuditEntry(
                rfi_id=rfi_id,
                actor_id=actor_id,
                action_kind=ActionKind.STAGE_TRANSITION,
                from_state=from_stage,
                to_state=target.value,
                detail=reason or "",
                timestamp=now,
            )
        )
        self._enqueue_activity(
            ActivityEntry(
                rfi_id=rfi_id,
                actor_id=actor_id,
                activity_type="stage_changed",
                message=f"Stage changed from {from_stage or 'none'} to {target.value}",
                details={"from_stage": from_stage, "to_stage": target.value, "reason": reason},
                created_at=now,
            )
        )
        return updated

    async def _update(
        self, rfi_id: str, fields: dict[str, Any], actor_id: str
    ) -> RfiRecord:
        errors = [f"{name} cannot be changed directly" for name in fields if name in PROTECTED_FIELDS]
        errors += [
            f"Unknown field {name}"
            for name in fields
            if name not in PROTECTED_FIELDS and name not in RfiRecord.model_fields
        ]
        if not fields:
            errors.append("No fields to update")
        if errors:
            raise ValidationFailedError(errors)

        record = await fetch_for_validation(self._repository, rfi_id)
        now = self._clock()
        changes = dict(fields)
        changes["updated_at"] = now
        if "response" in fields and not _is_empty(fields["response"]) and record.response_date is None:
            changes["response_date"] = now
        try:
            record.merged(changes)
        except ValidationError as exc:
            raise ValidationFailedError(_validation_messages(exc)) from exc

        updated = await self._persist(rfi_id, changes, record.status)

        names = ", ".join(sorted(fields))
        await self.audit_log.append(
            AuditEntry(
                rfi_id=rfi_id,
                actor_id=actor_id,
                action_kind=ActionKind.GENERIC_UPDATE,
                from_state=record.status.value,
                to_state=record.status.value,
                detail=f"Updated fields: {names}",
                timestamp=now,
            )
        )
        self._enqueue_activity(
            ActivityEntry(
                rfi_id=rfi_id,
                actor_id=actor_id,
                activity_type="rfi_updated",
                message=f"RFI updated: {names}",
                details={"fields": sorted(fields)},
                created_at=now,
            )
        )
        return updated

    async def _create(self, fields: dict[str, Any], actor_id: str) -> RfiRecord:
        blocked = [
            f"{name} cannot be set on creation"
            for name in fields
            if name in PROTECTED_FIELDS and name != "id"
        ]
        blocked += [f"Unknown field {name}" for name in fields if name not in RfiRecord.model_fields]
        if blocked:
            raise ValidationFailedError(blocked)

        now = self._clock()
        data = dict(fields)
        data.update(status=Status.DRAFT, created_at=now, updated_at=now)
        data.setdefault("created_by", actor_id)
        try:
            record = RfiRecord.model_validate(data)
        except ValidationError as exc:
            raise ValidationFailedError(_validation_messages(exc)) from exc

        try:
            stored = await self._repository.create_rfi(record)
        except RfiFlowError:
            raise
        except Exception as exc:
            raise PersistenceError(f"Failed to create RFI: {exc}") from exc

        logger.info(f"RFI {stored.id} created by {actor_id}")
        self._enqueue_activity(
            ActivityEntry(
                rfi_id=stored.id,
                actor_id=actor_id,
                activity_type="rfi_created",
                message=f"RFI {stored.rfi_number or stored.id} created",
                details={"subject": stored.subject},
                created_at=now,
            )
        )
        return stored

    # ------------------------------------------------------------------
    # Helpers
    def _overlay(self, record: RfiRecord, target: Status, extra: dict[str, Any]) -> RfiRecord:
        fills = {
            name: extra[name]
            for name in EXTRA_FIELDS.get(target, ())
            if not _is_empty(extra.get(name)) and _is_empty(getattr(record, name))
        }
        if not fills:
            return record
        try:
            return record.merged(fills)
        except ValidationError as exc:
            raise ValidationFailedError(_validation_messages(exc)) from exc

    def _status_fields(
        self, record: RfiRecord, candidate: RfiRecord, target: Status, now: datetime
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {"status": target, "updated_at": now}
        for name in EXTRA_FIELDS.get(target, ()):
            if getattr(candidate, name) != getattr(record, name):
                fields[name] = getattr(candidate, name)

        stamp = STATUS_TIMESTAMPS.get(target)
        if stamp and getattr(record, stamp) is None:
            fields[stamp] = now
        if "response" in fields and record.response_date is None:
            fields["response_date"] = now

        if target in STATUS_STAGES:
            fields["stage"] = STATUS_STAGES[target]
        elif target not in STAGE_PRESERVING_STATUSES:
            fields["stage"] = None

        if target in (Status.VOIDED, Status.SUPERSEDED):
            fields["exclude_from_cost_tracking"] = True
        if target == Status.SUPERSEDED:
            fields["cost_tracking_transferred_to"] = candidate.superseded_by
        return fields

    async def _persist(
        self,
        rfi_id: str,
        fields: dict[str, Any],
        expected_status: Status,
        expected_stage: Any = ANY_STAGE,
    ) -> RfiRecord:
        try:
            return await self._repository.update_rfi(
                rfi_id, fields, expected_status=expected_status, expected_stage=expected_stage
            )
        except RfiFlowError:
            raise
        except Exception as exc:
            raise PersistenceError(f"Failed to update RFI: {exc}") from exc

    def _enqueue_activity(self, entry: ActivityEntry) -> None:
        activity_log = self.activity_log
        self.outbox.enqueue(
            OutboxTask("activity", entry.rfi_id or "", lambda: activity_log.append(entry))
        )

    def _enqueue_notification(
        self,
        kind: NotificationKind,
        record: RfiRecord,
        from_status: str,
        actor_id: str,
        reason: Optional[str],
        message: str,
    ) -> None:
        notifier = self._notifier
        if notifier is None:
            return
        label = record.rfi_number or record.id
        self.outbox.enqueue(
            OutboxTask(
                "notification",
                record.id,
                lambda: notifier.notify(
                    kind,
                    record.id,
                    from_status,
                    record.status.value,
                    actor_id,
                    reason,
                    f"RFI {label}: {message}",
                ),
            )
        )
