"""Caller-facing handler tests."""

import sqlite3
from datetime import datetime, timezone

import pytest

from rfiflow import api
from rfiflow.errors import ConcurrentUpdateError
from rfiflow.models import RfiRecord
from rfiflow.persistence import InMemoryRfiRepository
from rfiflow.states import Stage, Status
from rfiflow.workflow.executor import TransitionExecutor

NOW = datetime(2026, 10, 18, tzinfo=timezone.utc)


class ConflictOnceRepository(InMemoryRfiRepository):
    """Raises a conflict on the first conditional update only."""

    def __init__(self):
        super().__init__()
        self.conflicts = 0

    async def update_rfi(self, rfi_id, fields, expected_status=None, **conditions):
        if expected_status is not None and self.conflicts == 0:
            self.conflicts += 1
            raise ConcurrentUpdateError(rfi_id, Status(expected_status).value)
        return await super().update_rfi(rfi_id, fields, expected_status, **conditions)


class LockedStoreRepository(InMemoryRfiRepository):
    """Every admin-path call fails the way a locked database file does."""

    async def get_rfi(self, rfi_id):
        raise sqlite3.OperationalError("database is locked")

    async def clear_audit(self, rfi_id=None):
        raise sqlite3.OperationalError("database is locked")


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch):
    async def instant(attempt, base=0.1):
        return None

    monkeypatch.setattr(api, "schedule_retry", instant)


@pytest.mark.asyncio
async def test_change_status_success_shape():
    repo = InMemoryRfiRepository()
    executor = TransitionExecutor(repo, clock=lambda: NOW)
    record = await repo.create_rfi(RfiRecord(subject="s"))

    response = await api.change_status(
        executor, {"rfi_id": record.id, "target_status": "active", "actor_id": "u-1"}
    )
    assert response["success"] is True
    assert response["data"]["status"] == "active"
    assert response["data"]["date_activated"].startswith("2026-10-18")
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_change_status_failure_shape():
    repo = InMemoryRfiRepository()
    executor = TransitionExecutor(repo)
    record = await repo.create_rfi(RfiRecord(status=Status.ACTIVE))

    response = await api.change_status(
        executor, {"rfi_id": record.id, "target_status": "sent", "actor_id": "u-1"}
    )
    assert response == {
        "success": False,
        "error": "Transition validation failed: Due date is required before sending RFI, "
        "RFI must be assigned before sending",
        "errors": [
            "Due date is required before sending RFI",
            "RFI must be assigned before sending",
        ],
        "error_type": "validation_failed",
    }


@pytest.mark.asyncio
async def test_change_status_rejects_malformed_payload():
    executor = TransitionExecutor(InMemoryRfiRepository())
    response = await api.change_status(executor, {"rfi_id": "x", "target_status": "shipped"})
    assert response["success"] is False
    assert response["error_type"] == "bad_request"
    assert any(e.startswith("target_status") for e in response["errors"])
    assert any(e.startswith("actor_id") for e in response["errors"])


@pytest.mark.asyncio
async def test_concurrent_update_not_retried_by_default():
    repo = ConflictOnceRepository()
    executor = TransitionExecutor(repo)
    record = await repo.create_rfi(RfiRecord())

    payload = {"rfi_id": record.id, "target_status": "active", "actor_id": "u-1"}
    response = await api.change_status(executor, payload)
    assert response["success"] is False
    assert response["error_type"] == "concurrent_update"

    repo.conflicts = 0
    response = await api.change_status(executor, payload, retries=2)
    assert response["success"] is True
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_get_transitions_and_stage_change():
    repo = InMemoryRfiRepository()
    executor = TransitionExecutor(repo)
    record = await repo.create_rfi(RfiRecord(status=Status.SENT, stage=Stage.AWAITING_RESPONSE))

    response = await api.get_transitions(executor, record.id)
    assert response["success"] is True
    assert response["data"]["current_stage"] == "awaiting_response"

    missing = await api.get_transitions(executor, "nope")
    assert missing["error_type"] == "not_found"

    response = await api.change_stage(
        executor,
        {"rfi_id": record.id, "target_stage": "late_overdue", "actor_id": "u-1"},
    )
    assert response["success"] is True
    assert response["data"]["stage"] == "late_overdue"
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_create_update_delete_and_clear():
    repo = InMemoryRfiRepository()
    executor = TransitionExecutor(repo)

    created = await api.create_rfi(executor, {"subject": "Slab edge"}, "u-1")
    rfi_id = created["data"]["id"]

    updated = await api.update_rfi(
        executor, {"rfi_id": rfi_id, "actor_id": "u-1", "fields": {"labor_costs": 12}}
    )
    assert updated["data"]["total_cost"] == 12

    await api.change_status(executor, {"rfi_id": rfi_id, "target_status": "active", "actor_id": "u-1"})
    await executor.outbox.join()

    deleted = await api.delete_rfi(executor, rfi_id, "admin")
    assert deleted == {"success": True, "data": {"id": rfi_id}}
    assert await repo.get_rfi(rfi_id) is None
    assert len(await repo.list_audit(rfi_id)) == 2

    again = await api.delete_rfi(executor, rfi_id, "admin")
    assert again["error_type"] == "not_found"

    cleared = await api.clear_audit(executor, "admin", rfi_id)
    assert cleared == {"success": True, "data": {"cleared": 2}}

    activity = await repo.list_activity(rfi_id)
    assert [a.activity_type for a in activity] == [
        "audit_cleared",
        "rfi_deleted",
        "status_changed",
        "rfi_updated",
        "rfi_created",
    ]
    await executor.outbox.close()


@pytest.mark.asyncio
async def test_delete_and_clear_report_store_errors():
    executor = TransitionExecutor(LockedStoreRepository())

    deleted = await api.delete_rfi(executor, "rfi-1", "admin")
    assert deleted["success"] is False
    assert deleted["error_type"] == "persistence_error"
    assert deleted["error"] == "Failed to delete RFI: database is locked"

    cleared = await api.clear_audit(executor, "admin", "rfi-1")
    assert cleared["success"] is False
    assert cleared["error_type"] == "persistence_error"
    assert cleared["errors"] == ["Failed to clear audit trail: database is locked"]
