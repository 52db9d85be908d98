"""Status, stage and rejection identifiers persisted with every RFI.

Values are stored verbatim in the record and audit tables and must stay
stable.
"""

from __future__ import annotations

from enum import Enum


class Status(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    SENT = "sent"
    RESPONDED = "responded"
    CLOSED = "closed"
    OVERDUE = "overdue"
    VOIDED = "voided"
    REVISED = "revised"
    RETURNED = "returned"
    REJECTED = "rejected"
    SUPERSEDED = "superseded"


class Stage(str, Enum):
    SENT_TO_CLIENT = "sent_to_client"
    AWAITING_RESPONSE = "awaiting_response"
    RESPONSE_RECEIVED = "response_received"
    FIELD_WORK_IN_PROGRESS = "field_work_in_progress"
    WORK_COMPLETED = "work_completed"
    LATE_OVERDUE = "late_overdue"


class RejectionType(str, Enum):
    INTERNAL_REVIEW = "internal_review"
    CLIENT_REJECTED = "client_rejected"
    CLIENT_REJECTED_NOT_IN_SCOPE = "client_rejected_not_in_scope"


class StatusCategory(str, Enum):
    ACTIVE = "active"
    TRANSITIONAL = "transitional"
    TERMINAL = "terminal"


class ActionKind(str, Enum):
    STATUS_TRANSITION = "status_transition"
    STAGE_TRANSITION = "stage_transition"
    GENERIC_UPDATE = "generic_update"


class NotificationKind(str, Enum):
    STATUS_CHANGED = "status_changed"
    RESPONSE_RECEIVED = "response_received"
    OVERDUE_REMINDER = "overdue_reminder"


__all__ = [
    "ActionKind",
    "NotificationKind",
    "RejectionType",
    "Stage",
    "Status",
    "StatusCategory",
]
