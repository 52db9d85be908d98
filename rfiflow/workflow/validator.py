"""Transition validation.

Validation never mutates state and reports business-rule failures as data;
only an unreachable record store raises.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from ..errors import RfiFlowError, RfiNotFoundError, ValidationUnavailableError
from ..models import RfiRecord
from ..persistence.repository import RfiRepository
from ..states import Stage, Status
from .transitions import (
    DEFAULT_STAGE_TABLE,
    DEFAULT_STATUS_TABLE,
    TransitionEntry,
    TransitionTable,
)

# Stages only carry meaning while the RFI is out with the client.
STAGED_STATUSES = frozenset({Status.SENT, Status.OVERDUE, Status.RESPONDED})


class ValidationResult(BaseModel):
    valid: bool
    legal: bool = True
    errors: list[str] = Field(default_factory=list)

    @classmethod
    def illegal(cls, from_state: object, to_state: object) -> "ValidationResult":
        return cls(
            valid=False,
            legal=False,
            errors=[f"illegal transition from {_label(from_state)} to {_label(to_state)}"],
        )


def _label(state: object) -> str:
    return str(getattr(state, "value", state))


class TransitionValidator:
    """Checks legality and field completeness of a requested move."""

    def __init__(
        self,
        table: TransitionTable[Status] = DEFAULT_STATUS_TABLE,
        stage_table: TransitionTable[Stage] = DEFAULT_STAGE_TABLE,
    ) -> None:
        self.table = table
        self.stage_table = stage_table

    def validate(self, record: RfiRecord, target_status: Status) -> ValidationResult:
        entry = self.table.lookup(record.status, target_status)
        if entry is None:
            return ValidationResult.illegal(record.status, target_status)

        errors = self._missing_fields(record, entry)

        if target_status == Status.SENT:
            if record.due_date is None:
                errors.append("Due date is required before sending RFI")
            if record.assigned_to is None or not record.assigned_to.strip():
                errors.append("RFI must be assigned before sending")

        return ValidationResult(valid=not errors, errors=errors)

    def validate_stage(self, record: RfiRecord, target_stage: Stage) -> ValidationResult:
        entry = self.stage_table.lookup(record.stage, target_stage)
        if entry is None:
            return ValidationResult.illegal(record.stage, target_stage)
        errors = self._missing_fields(record, entry)
        if record.status not in STAGED_STATUSES:
            errors.append(
                f"Stage changes are not allowed while RFI is {record.status.value}"
            )
        return ValidationResult(valid=not errors, errors=errors)

    async def validate_by_id(
        self,
        repository: RfiRepository,
        rfi_id: str,
        target_status: Status,
        record: Optional[RfiRecord] = None,
    ) -> ValidationResult:
        """Fetch the record (unless supplied) and validate it."""
        if record is None:
            record = await fetch_for_validation(repository, rfi_id)
        return self.validate(record, target_status)

    @staticmethod
    def _missing_fields(record: RfiRecord, entry: TransitionEntry) -> list[str]:
        if not entry.requires_validation:
            return []
        return [
            f"{field.label} is required"
            for field in entry.validation_fields
            if field.is_missing(record)
        ]


async def fetch_for_validation(repository: RfiRepository, rfi_id: str) -> RfiRecord:
    """Load ``rfi_id`` or raise the matching workflow error."""
    try:
        record = await repository.get_rfi(rfi_id)
    except RfiFlowError:
        raise
    except Exception as exc:
        raise ValidationUnavailableError(rfi_id, str(exc)) from exc
    if record is None:
        raise RfiNotFoundError(rfi_id)
    return record
