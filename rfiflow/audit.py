"""Audit trail and activity feed services.

The audit trail is the compliance record of every transition and field
update. The activity feed is the broader "what happened" stream shown to
users. Appends to both are best effort: a failed write is logged and
reported as ``False`` but never raised to the command that caused it.
"""

from __future__ import annotations

import logging
from typing import Optional

from .models import ActivityEntry, AuditEntry
from .persistence.repository import RfiRepository

logger = logging.getLogger(__name__)


class AuditLog:
    """Append-only compliance trail keyed by RFI id."""

    def __init__(self, repository: RfiRepository, activity: Optional["ActivityLog"] = None):
        self._repository = repository
        self._activity = activity or ActivityLog(repository)

    async def append(self, entry: AuditEntry) -> bool:
        try:
            await self._repository.insert_audit(entry)
        except Exception as e:
            logger.warning(
                f"Failed to write audit entry {entry.action_kind.value} "
                f"for rfi_id={entry.rfi_id}: {e}"
            )
            return False
        return True

    async def list_for(self, rfi_id: str) -> list[AuditEntry]:
        return await self._repository.list_audit(rfi_id)

    async def clear(self, actor_id: str, rfi_id: Optional[str] = None) -> int:
        """Administrative bulk clear, recorded in the activity feed."""
        count = await self._repository.clear_audit(rfi_id)
        scope = f"rfi_id={rfi_id}" if rfi_id else "all RFIs"
        logger.warning(f"Audit trail cleared for {scope} by {actor_id}: {count} entries")
        await self._activity.append(
            ActivityEntry(
                rfi_id=rfi_id,
                actor_id=actor_id,
                activity_type="audit_cleared",
                message=f"Audit trail cleared for {scope} ({count} entries)",
                details={"count": count, "scope": rfi_id or "all"},
            )
        )
        return count


class ActivityLog:
    """General activity feed."""

    def __init__(self, repository: RfiRepository):
        self._repository = repository

    async def append(self, entry: ActivityEntry) -> bool:
        try:
            await self._repository.insert_activity(entry)
        except Exception as e:
            logger.warning(
                f"Failed to log activity {entry.activity_type} for rfi_id={entry.rfi_id}: {e}"
            )
            return False
        return True

    async def recent(
        self, rfi_id: Optional[str] = None, limit: Optional[int] = None
    ) -> list[ActivityEntry]:
        return await self._repository.list_activity(rfi_id, limit)
