"""Repository abstraction for RFI records and their audit trail."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol

from ..models import ActivityEntry, AuditEntry, RfiRecord
from ..states import Stage, Status

# Default for ``expected_stage``: the write does not depend on the stored stage.
ANY_STAGE: Any = object()


def stage_value(stage: Optional[Stage | str]) -> Optional[str]:
    return Stage(stage).value if stage is not None else None


class RfiRepository(Protocol):
    """Protocol for RFI persistence backends."""

    async def create_rfi(self, record: RfiRecord) -> RfiRecord:
        """Persist a new record."""

    async def get_rfi(self, rfi_id: str) -> RfiRecord | None:
        """Retrieve the record by id."""

    async def list_rfis(
        self,
        status: Optional[Status] = None,
        due_before: Optional[datetime] = None,
    ) -> list[RfiRecord]:
        """Return records, optionally filtered by status and ``due_date < due_before``."""

    async def update_rfi(
        self,
        rfi_id: str,
        fields: dict[str, Any],
        expected_status: Optional[Status] = None,
        expected_stage: Any = ANY_STAGE,
    ) -> RfiRecord:
        """Merge ``fields`` into the record.

        When ``expected_status`` is given the write only happens while the
        stored status still equals it; ``expected_stage`` (``None`` included)
        conditions the write on the stored stage the same way. A mismatch
        raises ``ConcurrentUpdateError``. Raises ``RfiNotFoundError`` for
        unknown ids.
        """

    async def delete_rfi(self, rfi_id: str) -> bool:
        """Remove the record. Audit and activity rows are kept."""

    async def insert_audit(self, entry: AuditEntry) -> AuditEntry:
        """Append an audit entry and return it with its sequence number."""

    async def list_audit(self, rfi_id: str) -> list[AuditEntry]:
        """Audit entries for ``rfi_id`` ordered by timestamp, then sequence."""

    async def clear_audit(self, rfi_id: str | None = None) -> int:
        """Delete audit entries for one RFI, or all of them. Returns the count."""

    async def insert_activity(self, entry: ActivityEntry) -> ActivityEntry:
        """Append an activity feed entry."""

    async def list_activity(
        self, rfi_id: str | None = None, limit: int | None = None
    ) -> list[ActivityEntry]:
        """Activity entries, newest first."""
