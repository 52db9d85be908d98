"""Transition table tests."""

import pytest

from rfiflow.errors import DuplicateTransitionError
from rfiflow.models import RfiRecord
from rfiflow.states import Stage, Status
from rfiflow.workflow.transitions import (
    DEFAULT_STAGE_TABLE,
    DEFAULT_STATUS_TABLE,
    REJECTION_REASON,
    REJECTION_TYPE,
    SUPERSEDED_BY,
    VOIDED_REASON,
    TransitionEntry,
    TransitionTable,
)

EXPECTED_EDGES = {
    (Status.DRAFT, Status.ACTIVE),
    (Status.ACTIVE, Status.SENT),
    (Status.SENT, Status.RESPONDED),
    (Status.RESPONDED, Status.CLOSED),
    (Status.ACTIVE, Status.DRAFT),
    (Status.SENT, Status.ACTIVE),
    (Status.CLOSED, Status.ACTIVE),
    (Status.DRAFT, Status.VOIDED),
    (Status.ACTIVE, Status.VOIDED),
    (Status.DRAFT, Status.REVISED),
    (Status.ACTIVE, Status.REVISED),
    (Status.SENT, Status.RETURNED),
    (Status.SENT, Status.REJECTED),
    (Status.ACTIVE, Status.SUPERSEDED),
    (Status.SENT, Status.SUPERSEDED),
    (Status.RETURNED, Status.ACTIVE),
    (Status.RETURNED, Status.REVISED),
    (Status.SENT, Status.OVERDUE),
    (Status.OVERDUE, Status.RESPONDED),
    (Status.OVERDUE, Status.CLOSED),
}


def test_default_table_edges():
    assert {entry.key for entry in DEFAULT_STATUS_TABLE} == EXPECTED_EDGES
    assert len(DEFAULT_STATUS_TABLE) == len(EXPECTED_EDGES)


def test_is_legal_matches_table_for_every_pair():
    for source in Status:
        for target in Status:
            expected = (source, target) in EXPECTED_EDGES
            assert DEFAULT_STATUS_TABLE.is_legal(source, target) is expected


def test_terminal_statuses_have_no_outgoing_edges():
    for status in (Status.VOIDED, Status.REVISED, Status.REJECTED, Status.SUPERSEDED):
        assert DEFAULT_STATUS_TABLE.transitions_from(status) == ()


def test_transitions_from_keeps_declaration_order():
    targets = [entry.to_state for entry in DEFAULT_STATUS_TABLE.transitions_from(Status.SENT)]
    assert targets == [
        Status.RESPONDED,
        Status.ACTIVE,
        Status.RETURNED,
        Status.REJECTED,
        Status.SUPERSEDED,
        Status.OVERDUE,
    ]


def test_validation_fields_on_entries():
    assert DEFAULT_STATUS_TABLE.lookup(Status.DRAFT, Status.VOIDED).validation_fields == (
        VOIDED_REASON,
    )
    rejected = DEFAULT_STATUS_TABLE.lookup(Status.SENT, Status.REJECTED)
    assert rejected.validation_fields == (REJECTION_TYPE, REJECTION_REASON)
    assert rejected.requires_validation
    superseded = DEFAULT_STATUS_TABLE.lookup(Status.ACTIVE, Status.SUPERSEDED)
    assert superseded.validation_fields == (SUPERSEDED_BY,)
    assert not DEFAULT_STATUS_TABLE.lookup(Status.DRAFT, Status.ACTIVE).requires_validation


def test_lookup_missing_pair_returns_none():
    assert DEFAULT_STATUS_TABLE.lookup(Status.CLOSED, Status.SENT) is None


def test_duplicate_pair_rejected_at_construction():
    entries = [
        TransitionEntry(Status.DRAFT, Status.ACTIVE, "Activate"),
        TransitionEntry(Status.DRAFT, Status.ACTIVE, "Activate again"),
    ]
    with pytest.raises(DuplicateTransitionError):
        TransitionTable(entries)


def test_required_field_treats_blank_text_as_missing():
    record = RfiRecord(voided_reason="   ")
    assert VOIDED_REASON.is_missing(record)
    assert not VOIDED_REASON.is_missing(record.model_copy(update={"voided_reason": "dup"}))


def test_entry_to_dict():
    data = DEFAULT_STATUS_TABLE.lookup(Status.SENT, Status.REJECTED).to_dict()
    assert data["from"] == "sent"
    assert data["to"] == "rejected"
    assert data["label"] == "Mark as Rejected"
    assert data["validation_fields"] == ["rejection_type", "rejection_reason"]


def test_stage_table_edges():
    assert DEFAULT_STAGE_TABLE.is_legal(Stage.AWAITING_RESPONSE, Stage.LATE_OVERDUE)
    assert DEFAULT_STAGE_TABLE.is_legal(Stage.FIELD_WORK_IN_PROGRESS, Stage.WORK_COMPLETED)
    assert not DEFAULT_STAGE_TABLE.is_legal(Stage.WORK_COMPLETED, Stage.AWAITING_RESPONSE)
    assert not DEFAULT_STAGE_TABLE.is_legal(None, Stage.AWAITING_RESPONSE)
    assert len(DEFAULT_STAGE_TABLE) == 7
