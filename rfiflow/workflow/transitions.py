"""Transition tables for RFI statuses and stages.

A table is built once from an ordered list of entries and is read-only
afterwards. Lookups go through a mapping keyed by ``(from, to)``; the
per-source index keeps declaration order because it drives the list of
available actions shown to users.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Generic, Hashable, Iterable, Optional, TypeVar

from ..errors import DuplicateTransitionError
from ..models import RfiRecord
from ..states import Stage, Status

StateT = TypeVar("StateT", bound=Hashable)


@dataclass(frozen=True)
class RequiredField:
    """Typed accessor for a field a transition requires to be filled in."""

    name: str
    label: str
    accessor: Callable[[RfiRecord], Any]

    def value(self, record: RfiRecord) -> Any:
        return self.accessor(record)

    def is_missing(self, record: RfiRecord) -> bool:
        value = self.accessor(record)
        if value is None:
            return True
        if isinstance(value, str) and not value.strip():
            return True
        return False


VOIDED_REASON = RequiredField("voided_reason", "Voided Reason", lambda r: r.voided_reason)
REJECTION_TYPE = RequiredField("rejection_type", "Rejection Type", lambda r: r.rejection_type)
REJECTION_REASON = RequiredField(
    "rejection_reason", "Rejection Reason", lambda r: r.rejection_reason
)
SUPERSEDED_BY = RequiredField("superseded_by", "Superseded By", lambda r: r.superseded_by)


@dataclass(frozen=True)
class TransitionEntry(Generic[StateT]):
    from_state: Optional[StateT]
    to_state: StateT
    label: str
    description: str = ""
    icon: str = ""
    color: str = ""
    validation_fields: tuple[RequiredField, ...] = ()

    @property
    def requires_validation(self) -> bool:
        return bool(self.validation_fields)

    @property
    def key(self) -> tuple[Optional[StateT], StateT]:
        return (self.from_state, self.to_state)

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": _value(self.from_state),
            "to": _value(self.to_state),
            "label": self.label,
            "description": self.description,
            "icon": self.icon,
            "color": self.color,
            "requires_validation": self.requires_validation,
            "validation_fields": [f.name for f in self.validation_fields],
        }


def _value(state: Any) -> Any:
    return getattr(state, "value", state)


class TransitionTable(Generic[StateT]):
    """Authoritative set of legal edges between states."""

    def __init__(self, entries: Iterable[TransitionEntry[StateT]]) -> None:
        ordered: list[TransitionEntry[StateT]] = []
        by_key: dict[tuple[Optional[StateT], StateT], TransitionEntry[StateT]] = {}
        by_source: dict[Optional[StateT], list[TransitionEntry[StateT]]] = {}
        for entry in entries:
            if entry.key in by_key:
                raise DuplicateTransitionError(entry.from_state, entry.to_state)
            by_key[entry.key] = entry
            by_source.setdefault(entry.from_state, []).append(entry)
            ordered.append(entry)
        self._entries = tuple(ordered)
        self._by_key = MappingProxyType(by_key)
        self._by_source = MappingProxyType(
            {source: tuple(items) for source, items in by_source.items()}
        )

    def __iter__(self):
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def transitions_from(self, state: Optional[StateT]) -> tuple[TransitionEntry[StateT], ...]:
        """Every entry leaving ``state`` in declaration order."""
        return self._by_source.get(state, ())

    def is_legal(self, from_state: Optional[StateT], to_state: StateT) -> bool:
        return (from_state, to_state) in self._by_key

    def lookup(
        self, from_state: Optional[StateT], to_state: StateT
    ) -> Optional[TransitionEntry[StateT]]:
        return self._by_key.get((from_state, to_state))


def _edge(
    from_state: Status,
    to_state: Status,
    label: str,
    description: str,
    icon: str,
    color: str,
    *fields: RequiredField,
) -> TransitionEntry[Status]:
    return TransitionEntry(from_state, to_state, label, description, icon, color, fields)


DEFAULT_STATUS_TRANSITIONS: tuple[TransitionEntry[Status], ...] = (
    _edge(Status.DRAFT, Status.ACTIVE, "Activate RFI",
          "Finalize the RFI so it can be sent", "check-circle", "bg-blue-600"),
    _edge(Status.ACTIVE, Status.SENT, "Send to Client",
          "Send the RFI to the client for response", "paper-airplane", "bg-purple-600"),
    _edge(Status.SENT, Status.RESPONDED, "Mark as Responded",
          "Mark the RFI as responded by client", "chat-bubble-left-right", "bg-green-600"),
    _edge(Status.RESPONDED, Status.CLOSED, "Close RFI",
          "Close the RFI as complete", "archive-box", "bg-gray-600"),
    _edge(Status.ACTIVE, Status.DRAFT, "Back to Draft",
          "Return RFI to draft for further editing", "arrow-left", "bg-gray-500"),
    _edge(Status.SENT, Status.ACTIVE, "Recall RFI",
          "Recall the RFI back to active status", "arrow-left", "bg-gray-500"),
    _edge(Status.CLOSED, Status.ACTIVE, "Reopen RFI",
          "Reopen the closed RFI", "arrow-path", "bg-orange-600"),
    _edge(Status.DRAFT, Status.VOIDED, "Void RFI",
          "Mark RFI as void (created in error)", "x-circle", "bg-gray-500",
          VOIDED_REASON),
    _edge(Status.ACTIVE, Status.VOIDED, "Void RFI",
          "Mark RFI as void (created in error)", "x-circle", "bg-gray-500",
          VOIDED_REASON),
    _edge(Status.DRAFT, Status.REVISED, "Create Revision",
          "Create a new version of this RFI", "document-duplicate", "bg-indigo-600"),
    _edge(Status.ACTIVE, Status.REVISED, "Create Revision",
          "Create a new version of this RFI", "document-duplicate", "bg-indigo-600"),
    _edge(Status.SENT, Status.RETURNED, "Mark as Returned",
          "Client returned for clarification", "arrow-uturn-left", "bg-yellow-600"),
    _edge(Status.SENT, Status.REJECTED, "Mark as Rejected",
          "Client rejected the RFI", "hand-raised", "bg-red-600",
          REJECTION_TYPE, REJECTION_REASON),
    _edge(Status.ACTIVE, Status.SUPERSEDED, "Mark as Superseded",
          "Replace with another RFI", "arrow-right-circle", "bg-purple-600",
          SUPERSEDED_BY),
    _edge(Status.SENT, Status.SUPERSEDED, "Mark as Superseded",
          "Replace with another RFI", "arrow-right-circle", "bg-purple-600",
          SUPERSEDED_BY),
    _edge(Status.RETURNED, Status.ACTIVE, "Address Return",
          "Address client feedback and reactivate", "arrow-right", "bg-blue-600"),
    _edge(Status.RETURNED, Status.REVISED, "Create Revision",
          "Create new version addressing feedback", "document-duplicate", "bg-indigo-600"),
    _edge(Status.SENT, Status.OVERDUE, "Mark as Overdue",
          "Response is past the due date", "exclamation-triangle", "bg-red-600"),
    _edge(Status.OVERDUE, Status.RESPONDED, "Mark as Responded",
          "Client responded after the due date", "chat-bubble-left-right", "bg-green-600"),
    _edge(Status.OVERDUE, Status.CLOSED, "Close RFI",
          "Close the overdue RFI", "archive-box", "bg-gray-600"),
)

DEFAULT_STAGE_TRANSITIONS: tuple[TransitionEntry[Stage], ...] = (
    TransitionEntry(Stage.SENT_TO_CLIENT, Stage.AWAITING_RESPONSE, "Await Response"),
    TransitionEntry(Stage.SENT_TO_CLIENT, Stage.RESPONSE_RECEIVED, "Mark Response Received"),
    TransitionEntry(Stage.AWAITING_RESPONSE, Stage.RESPONSE_RECEIVED, "Mark Response Received"),
    TransitionEntry(Stage.AWAITING_RESPONSE, Stage.LATE_OVERDUE, "Mark Late/Overdue"),
    TransitionEntry(Stage.LATE_OVERDUE, Stage.RESPONSE_RECEIVED, "Mark Response Received"),
    TransitionEntry(Stage.RESPONSE_RECEIVED, Stage.FIELD_WORK_IN_PROGRESS, "Start Field Work"),
    TransitionEntry(Stage.FIELD_WORK_IN_PROGRESS, Stage.WORK_COMPLETED, "Mark Work Completed"),
)

DEFAULT_STATUS_TABLE: TransitionTable[Status] = TransitionTable(DEFAULT_STATUS_TRANSITIONS)
DEFAULT_STAGE_TABLE: TransitionTable[Stage] = TransitionTable(DEFAULT_STAGE_TRANSITIONS)
