"""In-memory implementation of the RFI repository."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Dict, Optional

from ..errors import ConcurrentUpdateError, PersistenceError, RfiNotFoundError
from ..models import ActivityEntry, AuditEntry, RfiRecord
from ..states import Status
from .repository import ANY_STAGE, RfiRepository, stage_value


class InMemoryRfiRepository(RfiRepository):
    """Store RFIs and their audit trail in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._records: Dict[str, RfiRecord] = {}
        self._audit: list[AuditEntry] = []
        self._activity: list[ActivityEntry] = []
        self._sequence = 0
        self._activity_id = 0
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    async def create_rfi(self, record: RfiRecord) -> RfiRecord:
        async with self._lock:
            if record.id in self._records:
                raise PersistenceError(f"RFI '{record.id}' already exists")
            self._records[record.id] = record.model_copy(deep=True)
        return record.model_copy(deep=True)

    async def get_rfi(self, rfi_id: str) -> RfiRecord | None:
        record = self._records.get(rfi_id)
        return record.model_copy(deep=True) if record else None

    async def list_rfis(
        self,
        status: Optional[Status] = None,
        due_before: Optional[datetime] = None,
    ) -> list[RfiRecord]:
        records = []
        for record in self._records.values():
            if status is not None and record.status != status:
                continue
            if due_before is not None and (
                record.due_date is None or record.due_date >= due_before
            ):
                continue
            records.append(record.model_copy(deep=True))
        return records

    async def update_rfi(
        self,
        rfi_id: str,
        fields: dict[str, Any],
        expected_status: Optional[Status] = None,
        expected_stage: Any = ANY_STAGE,
    ) -> RfiRecord:
        async with self._lock:
            current = self._records.get(rfi_id)
            if current is None:
                raise RfiNotFoundError(rfi_id)
            if expected_status is not None and current.status != expected_status:
                raise ConcurrentUpdateError(rfi_id, Status(expected_status).value)
            if expected_stage is not ANY_STAGE and current.stage != expected_stage:
                raise ConcurrentUpdateError(rfi_id, stage_value(expected_stage), "stage")
            updated = current.merged(fields)
            self._records[rfi_id] = updated
        return updated.model_copy(deep=True)

    async def delete_rfi(self, rfi_id: str) -> bool:
        async with self._lock:
            return self._records.pop(rfi_id, None) is not None

    # ------------------------------------------------------------------
    async def insert_audit(self, entry: AuditEntry) -> AuditEntry:
        async with self._lock:
            self._sequence += 1
            stored = entry.model_copy(update={"sequence": self._sequence})
            self._audit.append(stored)
        return stored

    async def list_audit(self, rfi_id: str) -> list[AuditEntry]:
        entries = [e for e in self._audit if e.rfi_id == rfi_id]
        return sorted(entries, key=lambda e: (e.timestamp, e.sequence or 0))

    async def clear_audit(self, rfi_id: str | None = None) -> int:
        async with self._lock:
            before = len(self._audit)
            if rfi_id is None:
                self._audit = []
            else:
                self._audit = [e for e in self._audit if e.rfi_id != rfi_id]
            return before - len(self._audit)

    async def insert_activity(self, entry: ActivityEntry) -> ActivityEntry:
        async with self._lock:
            self._activity_id += 1
            stored = entry.model_copy(update={"id": self._activity_id})
            self._activity.append(stored)
        return stored

    async def list_activity(
        self, rfi_id: str | None = None, limit: int | None = None
    ) -> list[ActivityEntry]:
        entries = [
            e for e in reversed(self._activity) if rfi_id is None or e.rfi_id == rfi_id
        ]
        return entries[:limit] if limit is not None else entries
