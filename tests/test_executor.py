"""Transition executor tests."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from rfiflow.models import RfiRecord
from rfiflow.notifications.inmemory import InMemoryNotifier
from rfiflow.persistence import InMemoryRfiRepository
from rfiflow.states import ActionKind, NotificationKind, RejectionType, Stage, Status
from rfiflow.workflow.executor import TransitionExecutor
from rfiflow.workflow.transitions import DEFAULT_STATUS_TABLE

NOW = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)
DUE = NOW + timedelta(days=7)

COMPLETE_FIELDS = dict(
    due_date=DUE,
    assigned_to="u-22",
    rejection_type=RejectionType.CLIENT_REJECTED,
    rejection_reason="Outside contract scope",
    voided_reason="Created in error",
    superseded_by="rfi-2",
)


class FailingAuditRepository(InMemoryRfiRepository):
    async def insert_audit(self, entry):
        raise RuntimeError("audit table locked")


class FailingNotifier(InMemoryNotifier):
    async def publish(self, topic, notification):
        raise ConnectionError("broker unreachable")


def _executor(repo=None, notifier=None):
    repo = repo or InMemoryRfiRepository()
    return TransitionExecutor(repo, notifier or InMemoryNotifier(), clock=lambda: NOW)


async def _seed(repo, **fields) -> RfiRecord:
    return await repo.create_rfi(RfiRecord(rfi_number="RFI-001", subject="Beam size", **fields))


@pytest.mark.asyncio
async def test_illegal_transitions_leave_record_untouched():
    repo = InMemoryRfiRepository()
    executor = _executor(repo)
    for source in Status:
        for target in Status:
            if DEFAULT_STATUS_TABLE.is_legal(source, target):
                continue
            record = await _seed(repo, status=source, **COMPLETE_FIELDS)
            result = await executor.execute(record.id, target, "u-1")

            assert not result.ok
            assert result.error_type == "illegal_transition"
            assert result.errors == [f"illegal transition from {source.value} to {target.value}"]
            assert (await repo.get_rfi(record.id)) == record
            assert await repo.list_audit(record.id) == []
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_every_legal_transition_succeeds_with_complete_fields():
    repo = InMemoryRfiRepository()
    executor = _executor(repo)
    for entry in DEFAULT_STATUS_TABLE:
        record = await _seed(repo, status=entry.from_state, **COMPLETE_FIELDS)
        result = await executor.execute(record.id, entry.to_state, "u-1")
        assert result.ok, result.errors
        assert result.record.status == entry.to_state
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_missing_required_fields_block_transition():
    repo = InMemoryRfiRepository()
    executor = _executor(repo)
    record = await _seed(repo, status=Status.SENT)

    result = await executor.execute(record.id, Status.REJECTED, "u-1")
    assert not result.ok
    assert result.error_type == "validation_failed"
    assert result.errors == ["Rejection Type is required", "Rejection Reason is required"]
    assert (await repo.get_rfi(record.id)).status == Status.SENT

    result = await executor.execute(
        record.id,
        Status.REJECTED,
        "u-1",
        {"rejection_type": "client_rejected", "rejection_reason": "Not our scope"},
    )
    assert result.ok
    assert result.record.rejection_type == RejectionType.CLIENT_REJECTED
    assert result.record.rejection_reason == "Not our scope"
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_send_requires_due_date_and_assignee():
    repo = InMemoryRfiRepository()
    executor = _executor(repo)
    record = await _seed(repo, status=Status.ACTIVE)

    result = await executor.execute(record.id, Status.SENT, "u-1")
    assert result.errors == [
        "Due date is required before sending RFI",
        "RFI must be assigned before sending",
    ]

    result = await executor.execute(record.id, Status.SENT, "u-1", {"assigned_to": "u-22"})
    assert result.errors == ["Due date is required before sending RFI"]
    assert (await repo.get_rfi(record.id)).assigned_to is None

    result = await executor.execute(
        record.id, Status.SENT, "u-1", {"assigned_to": "u-22", "due_date": DUE.isoformat()}
    )
    assert result.ok
    assert result.record.due_date == DUE
    assert result.record.assigned_to == "u-22"
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_extra_does_not_override_existing_values():
    repo = InMemoryRfiRepository()
    executor = _executor(repo)
    record = await _seed(repo, status=Status.ACTIVE, due_date=DUE, assigned_to="u-22")

    result = await executor.execute(record.id, Status.SENT, "u-1", {"assigned_to": "u-99"})
    assert result.ok
    assert result.record.assigned_to == "u-22"
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_invalid_extra_value_is_a_validation_failure():
    repo = InMemoryRfiRepository()
    executor = _executor(repo)
    record = await _seed(repo, status=Status.ACTIVE, assigned_to="u-22")

    result = await executor.execute(record.id, Status.SENT, "u-1", {"due_date": "next tuesday"})
    assert not result.ok
    assert result.error_type == "validation_failed"
    assert any(e.startswith("due_date") for e in result.errors)
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_sending_sets_only_date_sent():
    repo = InMemoryRfiRepository()
    executor = _executor(repo)
    activated = NOW - timedelta(days=2)
    record = await _seed(
        repo, status=Status.ACTIVE, date_activated=activated, due_date=DUE, assigned_to="u-22"
    )

    result = await executor.execute(record.id, Status.SENT, "u-1")
    assert result.ok
    updated = result.record
    assert updated.date_sent == NOW
    assert updated.updated_at == NOW
    assert updated.date_activated == activated
    assert updated.date_responded is None
    assert updated.date_closed is None
    assert updated.stage == Stage.AWAITING_RESPONSE
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_response_and_close_timestamps():
    repo = InMemoryRfiRepository()
    executor = _executor(repo)
    record = await _seed(repo, status=Status.SENT, stage=Stage.AWAITING_RESPONSE)

    result = await executor.execute(
        record.id, Status.RESPONDED, "u-1", {"response": "Use W12x26"}
    )
    assert result.ok
    assert result.record.date_responded == NOW
    assert result.record.response == "Use W12x26"
    assert result.record.response_date == NOW
    assert result.record.stage == Stage.RESPONSE_RECEIVED

    result = await executor.execute(record.id, Status.CLOSED, "u-1")
    assert result.ok
    assert result.record.date_closed == NOW
    assert result.record.stage == Stage.RESPONSE_RECEIVED
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_reopen_keeps_first_lifecycle_timestamps():
    repo = InMemoryRfiRepository()
    first_activation = NOW - timedelta(days=30)
    record = await _seed(
        repo,
        status=Status.CLOSED,
        date_activated=first_activation,
        date_closed=NOW - timedelta(days=1),
        stage=Stage.WORK_COMPLETED,
    )
    executor = _executor(repo)

    result = await executor.execute(record.id, Status.ACTIVE, "u-1", {"reason": "New info"})
    assert result.ok
    assert result.record.date_activated == first_activation
    assert result.record.stage is None
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_void_and_supersede_cost_tracking():
    repo = InMemoryRfiRepository()
    executor = _executor(repo)

    voided = await _seed(repo, status=Status.DRAFT)
    result = await executor.execute(voided.id, Status.VOIDED, "u-1", {"voided_reason": "Duplicate"})
    assert result.ok
    assert result.record.exclude_from_cost_tracking is True
    assert result.record.voided_reason == "Duplicate"

    superseded = await _seed(repo, status=Status.ACTIVE)
    result = await executor.execute(
        superseded.id, Status.SUPERSEDED, "u-1", {"superseded_by": "rfi-7"}
    )
    assert result.ok
    assert result.record.exclude_from_cost_tracking is True
    assert result.record.cost_tracking_transferred_to == "rfi-7"
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_success_records_audit_activity_and_notification():
    repo = InMemoryRfiRepository()
    notifier = InMemoryNotifier()
    executor = _executor(repo, notifier)
    record = await _seed(repo, status=Status.SENT)

    result = await executor.execute(
        record.id, Status.RESPONDED, "u-5", {"response": "ok", "reason": "client replied"}
    )
    assert result.ok

    audit = await repo.list_audit(record.id)
    assert len(audit) == 1
    assert audit[0].action_kind == ActionKind.STATUS_TRANSITION
    assert (audit[0].from_state, audit[0].to_state) == ("sent", "responded")
    assert audit[0].actor_id == "u-5"
    assert audit[0].detail == "client replied"
    assert audit[0].timestamp == NOW

    await executor.outbox.join()
    activity = await repo.list_activity(record.id)
    assert activity[0].activity_type == "status_changed"
    assert activity[0].message == "Status changed from sent to responded"

    assert len(notifier.sent) == 1
    notification = notifier.sent[0]
    assert notification.kind == NotificationKind.RESPONSE_RECEIVED
    assert notification.rfi_id == record.id
    assert notification.reason == "client replied"
    assert "RFI-001" in notification.message
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_overdue_sends_reminder_notification():
    repo = InMemoryRfiRepository()
    notifier = InMemoryNotifier()
    executor = _executor(repo, notifier)
    record = await _seed(repo, status=Status.SENT)

    await executor.execute(record.id, Status.OVERDUE, "system:overdue-sweeper")
    await executor.outbox.close()
    assert [n.kind for n in notifier.sent] == [NotificationKind.OVERDUE_REMINDER]


@pytest.mark.asyncio
async def test_audit_failure_does_not_fail_transition(caplog):
    repo = FailingAuditRepository()
    executor = _executor(repo)
    record = await _seed(repo, status=Status.DRAFT)

    with caplog.at_level(logging.WARNING):
        result = await executor.execute(record.id, Status.ACTIVE, "u-1")
    assert result.ok
    assert (await repo.get_rfi(record.id)).status == Status.ACTIVE
    assert "audit table locked" in caplog.text
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_transition(caplog):
    repo = InMemoryRfiRepository()
    executor = _executor(repo, FailingNotifier())
    record = await _seed(repo, status=Status.DRAFT)

    with caplog.at_level(logging.WARNING):
        result = await executor.execute(record.id, Status.ACTIVE, "u-1")
        await executor.outbox.join()
    assert result.ok
    assert (await repo.get_rfi(record.id)).status == Status.ACTIVE
    assert executor.outbox.failed == 1
    assert "broker unreachable" in caplog.text
    assert len(await repo.list_audit(record.id)) == 1
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_unknown_rfi():
    executor = _executor()
    result = await executor.execute("missing", Status.ACTIVE, "u-1")
    assert not result.ok
    assert result.error_type == "not_found"


@pytest.mark.asyncio
async def test_stage_changes():
    repo = InMemoryRfiRepository()
    executor = _executor(repo)
    record = await _seed(repo, status=Status.RESPONDED, stage=Stage.RESPONSE_RECEIVED)

    result = await executor.change_stage(record.id, Stage.FIELD_WORK_IN_PROGRESS, "u-3")
    assert result.ok
    assert result.record.stage == Stage.FIELD_WORK_IN_PROGRESS
    assert result.record.work_started_at == NOW
    assert result.record.status == Status.RESPONDED

    result = await executor.change_stage(record.id, Stage.AWAITING_RESPONSE, "u-3")
    assert result.error_type == "illegal_transition"

    result = await executor.change_stage(record.id, Stage.WORK_COMPLETED, "u-3")
    assert result.ok
    assert result.record.work_completed_at == NOW

    audit = await repo.list_audit(record.id)
    assert [(a.action_kind, a.to_state) for a in audit] == [
        (ActionKind.STAGE_TRANSITION, "field_work_in_progress"),
        (ActionKind.STAGE_TRANSITION, "work_completed"),
    ]
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_stage_change_refused_outside_client_statuses():
    repo = InMemoryRfiRepository()
    executor = _executor(repo)
    record = await _seed(repo, status=Status.CLOSED, stage=Stage.RESPONSE_RECEIVED)

    result = await executor.change_stage(record.id, Stage.FIELD_WORK_IN_PROGRESS, "u-3")
    assert result.error_type == "validation_failed"
    assert result.errors == ["Stage changes are not allowed while RFI is closed"]


@pytest.mark.asyncio
async def test_update_fields_recomputes_total_and_refuses_protected():
    repo = InMemoryRfiRepository()
    executor = _executor(repo)
    record = await _seed(repo, status=Status.ACTIVE, labor_costs=100.0)

    result = await executor.update_fields(
        record.id, {"material_costs": 25.5, "subcontractor_costs": 10}, "u-1"
    )
    assert result.ok
    assert result.record.total_cost == 135.5

    result = await executor.update_fields(record.id, {"status": "closed", "bogus": 1}, "u-1")
    assert not result.ok
    assert result.errors == ["status cannot be changed directly", "Unknown field bogus"]
    assert (await repo.get_rfi(record.id)).status == Status.ACTIVE

    audit = await repo.list_audit(record.id)
    assert len(audit) == 1
    assert audit[0].action_kind == ActionKind.GENERIC_UPDATE
    assert audit[0].detail == "Updated fields: material_costs, subcontractor_costs"
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_create_forces_draft():
    repo = InMemoryRfiRepository()
    executor = _executor(repo)

    result = await executor.create({"subject": "New", "labor_costs": 40}, "u-1")
    assert result.ok
    assert result.record.status == Status.DRAFT
    assert result.record.created_by == "u-1"
    assert result.record.total_cost == 40

    refused = await executor.create({"subject": "New", "status": "sent"}, "u-1")
    assert refused.error_type == "validation_failed"

    await executor.outbox.join()
    activity = await repo.list_activity(result.record.id)
    assert [a.activity_type for a in activity] == ["rfi_created"]
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_available_transitions():
    repo = InMemoryRfiRepository()
    executor = _executor(repo)
    record = await _seed(repo, status=Status.SENT, stage=Stage.AWAITING_RESPONSE)

    data = await executor.available_transitions(record.id)
    assert data["current_status"] == "sent"
    assert data["workflow_state"]["label"] == "Sent"
    assert [t["to"] for t in data["available_transitions"]] == [
        "responded", "active", "returned", "rejected", "superseded", "overdue",
    ]
    assert [t["to"] for t in data["available_stage_transitions"]] == [
        "response_received", "late_overdue",
    ]


@pytest.mark.asyncio
async def test_unknown_target_names_are_illegal_transitions():
    repo = InMemoryRfiRepository()
    executor = _executor(repo)
    record = await _seed(repo, status=Status.SENT, stage=Stage.AWAITING_RESPONSE)

    result = await executor.execute(record.id, "shipped", "u-1")
    assert not result.ok
    assert result.error_type == "illegal_transition"
    assert result.errors == ["illegal transition from sent to shipped"]

    result = await executor.change_stage(record.id, "teleported", "u-1")
    assert result.error_type == "illegal_transition"
    assert result.errors == ["illegal transition from awaiting_response to teleported"]

    stored = await repo.get_rfi(record.id)
    assert stored.status == Status.SENT
    assert stored.stage == Stage.AWAITING_RESPONSE
    assert await repo.list_audit(record.id) == []
