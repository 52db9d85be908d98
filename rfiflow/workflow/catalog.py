"""Display metadata for every status and stage.

The catalog is pure lookup. It is frozen at construction and rejects a
mapping that does not cover every member, so ``describe`` is total over
``Status`` and ``Stage``.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Union

from ..states import Stage, Status, StatusCategory


@dataclass(frozen=True)
class StateMetadata:
    value: str
    label: str
    description: str
    color: str
    bg_color: str
    icon: str
    category: Optional[StatusCategory] = None


class StateCatalog:
    """Immutable label/description lookup for statuses and stages."""

    def __init__(
        self,
        statuses: Mapping[Status, StateMetadata],
        stages: Mapping[Stage, StateMetadata],
    ) -> None:
        missing = [s.value for s in Status if s not in statuses]
        missing += [s.value for s in Stage if s not in stages]
        if missing:
            raise ValueError(f"catalog missing metadata for: {', '.join(missing)}")
        self._statuses = MappingProxyType(dict(statuses))
        self._stages = MappingProxyType(dict(stages))

    def describe(self, value: Union[Status, Stage]) -> StateMetadata:
        if isinstance(value, Status):
            return self._statuses[value]
        if isinstance(value, Stage):
            return self._stages[value]
        raise TypeError(f"cannot describe {value!r}: expected Status or Stage")

    def describe_status(self, status: Status) -> StateMetadata:
        if not isinstance(status, Status):
            raise TypeError(f"expected Status, got {status!r}")
        return self._statuses[status]

    def describe_stage(self, stage: Stage) -> StateMetadata:
        if not isinstance(stage, Stage):
            raise TypeError(f"expected Stage, got {stage!r}")
        return self._stages[stage]

    @property
    def statuses(self) -> Mapping[Status, StateMetadata]:
        return self._statuses

    @property
    def stages(self) -> Mapping[Stage, StateMetadata]:
        return self._stages


_ACTIVE = StatusCategory.ACTIVE
_TRANSITIONAL = StatusCategory.TRANSITIONAL
_TERMINAL = StatusCategory.TERMINAL

STATUS_METADATA: dict[Status, StateMetadata] = {
    Status.DRAFT: StateMetadata(
        "draft", "Draft", "RFI is being created and edited",
        "text-gray-600", "bg-gray-100", "pencil", _TRANSITIONAL,
    ),
    Status.ACTIVE: StateMetadata(
        "active", "Active", "RFI is finalized and ready to send",
        "text-blue-600", "bg-blue-100", "check-circle", _ACTIVE,
    ),
    Status.SENT: StateMetadata(
        "sent", "Sent", "RFI has been sent to client",
        "text-purple-600", "bg-purple-100", "paper-airplane", _ACTIVE,
    ),
    Status.RESPONDED: StateMetadata(
        "responded", "Responded", "Client has responded to the RFI",
        "text-green-600", "bg-green-100", "chat-bubble-left-right", _ACTIVE,
    ),
    Status.CLOSED: StateMetadata(
        "closed", "Closed", "RFI is complete and closed",
        "text-gray-600", "bg-gray-100", "archive-box", _TERMINAL,
    ),
    Status.OVERDUE: StateMetadata(
        "overdue", "Overdue", "RFI response is past due date",
        "text-red-600", "bg-red-100", "exclamation-triangle", _ACTIVE,
    ),
    Status.VOIDED: StateMetadata(
        "voided", "Voided", "RFI was created in error and voided",
        "text-gray-500", "bg-gray-50", "x-circle", _TERMINAL,
    ),
    Status.REVISED: StateMetadata(
        "revised", "Revised", "RFI has been revised with a new version",
        "text-indigo-600", "bg-indigo-100", "document-duplicate", _TERMINAL,
    ),
    Status.RETURNED: StateMetadata(
        "returned", "Returned", "Client requested clarification or changes",
        "text-yellow-600", "bg-yellow-100", "arrow-uturn-left", _TRANSITIONAL,
    ),
    Status.REJECTED: StateMetadata(
        "rejected", "Rejected", "RFI was rejected as invalid or out of scope",
        "text-red-700", "bg-red-50", "hand-raised", _TERMINAL,
    ),
    Status.SUPERSEDED: StateMetadata(
        "superseded", "Superseded", "RFI has been replaced by another RFI",
        "text-purple-500", "bg-purple-50", "arrow-right-circle", _TERMINAL,
    ),
}

STAGE_METADATA: dict[Stage, StateMetadata] = {
    Stage.SENT_TO_CLIENT: StateMetadata(
        "sent_to_client", "Sent to Client", "RFI has been delivered to the client",
        "text-purple-600", "bg-purple-100", "paper-airplane",
    ),
    Stage.AWAITING_RESPONSE: StateMetadata(
        "awaiting_response", "Awaiting Response", "Waiting for the client to respond",
        "text-blue-600", "bg-blue-100", "clock",
    ),
    Stage.RESPONSE_RECEIVED: StateMetadata(
        "response_received", "Response Received", "Client response has been received",
        "text-green-600", "bg-green-100", "chat-bubble-left-right",
    ),
    Stage.FIELD_WORK_IN_PROGRESS: StateMetadata(
        "field_work_in_progress", "Field Work", "Field work is in progress",
        "text-orange-600", "bg-orange-100", "wrench-screwdriver",
    ),
    Stage.WORK_COMPLETED: StateMetadata(
        "work_completed", "Completed", "Field work has been completed",
        "text-green-700", "bg-green-50", "check-badge",
    ),
    Stage.LATE_OVERDUE: StateMetadata(
        "late_overdue", "Late/Overdue", "Client response is late",
        "text-red-600", "bg-red-100", "exclamation-triangle",
    ),
}

DEFAULT_CATALOG = StateCatalog(STATUS_METADATA, STAGE_METADATA)


def describe(value: Union[Status, Stage]) -> StateMetadata:
    """Describe ``value`` using the default catalog."""
    return DEFAULT_CATALOG.describe(value)
