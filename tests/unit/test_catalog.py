"""State catalog tests."""

import pytest

from rfiflow.states import Stage, Status, StatusCategory
from rfiflow.workflow.catalog import (
    DEFAULT_CATALOG,
    STAGE_METADATA,
    STATUS_METADATA,
    StateCatalog,
    describe,
)


def test_every_status_and_stage_is_described():
    for status in Status:
        meta = DEFAULT_CATALOG.describe(status)
        assert meta.value == status.value
        assert meta.label
        assert meta.category is not None
    for stage in Stage:
        meta = DEFAULT_CATALOG.describe(stage)
        assert meta.value == stage.value
        assert meta.label


def test_describe_status_metadata():
    meta = describe(Status.SENT)
    assert meta.label == "Sent"
    assert meta.description == "RFI has been sent to client"
    assert meta.icon == "paper-airplane"
    assert meta.category == StatusCategory.ACTIVE


def test_terminal_statuses():
    terminal = {
        status
        for status, meta in DEFAULT_CATALOG.statuses.items()
        if meta.category == StatusCategory.TERMINAL
    }
    assert {Status.CLOSED, Status.VOIDED, Status.REVISED, Status.SUPERSEDED} <= terminal
    assert Status.SENT not in terminal


def test_describe_rejects_other_kinds():
    with pytest.raises(TypeError):
        DEFAULT_CATALOG.describe("sent")
    with pytest.raises(TypeError):
        DEFAULT_CATALOG.describe_status(Stage.AWAITING_RESPONSE)
    with pytest.raises(TypeError):
        DEFAULT_CATALOG.describe_stage(Status.SENT)


def test_catalog_requires_full_coverage():
    partial = dict(STATUS_METADATA)
    partial.pop(Status.OVERDUE)
    with pytest.raises(ValueError) as exc:
        StateCatalog(partial, STAGE_METADATA)
    assert "overdue" in str(exc.value)


def test_catalog_is_read_only():
    with pytest.raises(TypeError):
        DEFAULT_CATALOG.statuses[Status.DRAFT] = STATUS_METADATA[Status.ACTIVE]
