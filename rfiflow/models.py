"""Data models for RFI records, audit trail and notifications."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import RfiFlowError
from .states import ActionKind, NotificationKind, RejectionType, Stage, Status


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes so comparisons never mix the two."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


COST_FIELDS = (
    "labor_costs",
    "material_costs",
    "equipment_costs",
    "subcontractor_costs",
)
LIFECYCLE_TIMESTAMPS = (
    "date_activated",
    "date_sent",
    "date_responded",
    "date_closed",
)


class RfiRecord(BaseModel):
    """Persisted RFI as seen by the workflow engine."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    rfi_number: Optional[str] = None
    project_id: Optional[str] = None
    subject: str = ""
    description: str = ""
    priority: str = "medium"
    created_by: Optional[str] = None

    status: Status = Status.DRAFT
    stage: Optional[Stage] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    date_activated: Optional[datetime] = None
    date_sent: Optional[datetime] = None
    date_responded: Optional[datetime] = None
    date_closed: Optional[datetime] = None
    work_started_at: Optional[datetime] = None
    work_completed_at: Optional[datetime] = None

    due_date: Optional[datetime] = None
    assigned_to: Optional[str] = None
    rejection_type: Optional[RejectionType] = None
    rejection_reason: Optional[str] = None
    voided_reason: Optional[str] = None
    superseded_by: Optional[str] = None

    response: Optional[str] = None
    response_date: Optional[datetime] = None

    manhours: Optional[float] = None
    labor_costs: Optional[float] = None
    material_costs: Optional[float] = None
    equipment_costs: Optional[float] = None
    subcontractor_costs: Optional[float] = None
    total_cost: float = 0.0
    exclude_from_cost_tracking: bool = False
    cost_tracking_transferred_to: Optional[str] = None

    @field_validator(
        "created_at",
        "updated_at",
        "date_activated",
        "date_sent",
        "date_responded",
        "date_closed",
        "work_started_at",
        "work_completed_at",
        "due_date",
        "response_date",
    )
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _derive_total_cost(self) -> "RfiRecord":
        # Derived on every validation so each store merge recomputes it.
        self.total_cost = float(sum(getattr(self, name) or 0 for name in COST_FIELDS))
        return self

    def merged(self, fields: dict[str, Any]) -> "RfiRecord":
        """Return a validated copy with ``fields`` applied."""
        data = self.model_dump()
        data.update(fields)
        return RfiRecord.model_validate(data)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "RfiRecord":
        return cls.model_validate_json(data)


class AuditEntry(BaseModel):
    """Immutable record of one transition or field update."""

    model_config = ConfigDict(frozen=True)

    rfi_id: str
    actor_id: str
    action_kind: ActionKind
    from_state: Optional[str] = None
    to_state: Optional[str] = None
    detail: str = ""
    timestamp: datetime = Field(default_factory=utcnow)
    sequence: Optional[int] = None

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class ActivityEntry(BaseModel):
    """General activity feed item (what happened, by whom)."""

    model_config = ConfigDict(frozen=True)

    rfi_id: Optional[str] = None
    actor_id: str
    activity_type: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    id: Optional[int] = None

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class Notification(BaseModel):
    """Envelope published to the notification transport."""

    notification_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: NotificationKind
    rfi_id: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    actor_id: str
    reason: Optional[str] = None
    message: str = ""
    timestamp: datetime = Field(default_factory=utcnow)

    def to_json(self) -> str:
        """Serialize notification to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "Notification":
        """Deserialize notification from JSON."""
        return cls.model_validate_json(data)


class TransitionResult(BaseModel):
    """Outcome of an executor command."""

    ok: bool
    record: Optional[RfiRecord] = None
    error: Optional[str] = None
    errors: list[str] = Field(default_factory=list)
    error_type: Optional[str] = None

    @classmethod
    def success(cls, record: RfiRecord) -> "TransitionResult":
        return cls(ok=True, record=record)

    @classmethod
    def failure(cls, exc: RfiFlowError) -> "TransitionResult":
        return cls(
            ok=False,
            error=exc.message,
            errors=exc.errors,
            error_type=exc.error_type,
        )

    def to_response(self) -> dict[str, Any]:
        """Shape used by the caller-facing API: ``{success, errors?, data?}``."""
        if self.ok:
            return {
                "success": True,
                "data": self.record.model_dump(mode="json") if self.record else None,
            }
        return {
            "success": False,
            "error": self.error,
            "errors": list(self.errors),
            "error_type": self.error_type,
        }
