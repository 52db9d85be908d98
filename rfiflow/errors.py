"""Error taxonomy for the RFI workflow engine."""

from __future__ import annotations

from typing import Iterable


class RfiFlowError(Exception):
    """Base exception for workflow command failures."""

    def __init__(self, message: str, error_type: str = "rfiflow_error"):
        self.message = message
        self.error_type = error_type
        super().__init__(message)

    @property
    def errors(self) -> list[str]:
        return [self.message]


class IllegalTransitionError(RfiFlowError):
    """Raised when no table entry exists for the requested move."""

    def __init__(self, from_state: str | None, to_state: str):
        super().__init__(
            f"illegal transition from {from_state} to {to_state}",
            "illegal_transition",
        )
        self.from_state = from_state
        self.to_state = to_state


class ValidationFailedError(RfiFlowError):
    """Raised when a legal transition is blocked by missing data."""

    def __init__(self, errors: Iterable[str]):
        self._errors = list(errors)
        super().__init__(
            f"Transition validation failed: {', '.join(self._errors)}",
            "validation_failed",
        )

    @property
    def errors(self) -> list[str]:
        return list(self._errors)


class RfiNotFoundError(RfiFlowError):
    """Raised when an RFI id does not resolve to a record."""

    def __init__(self, rfi_id: str):
        super().__init__(f"RFI '{rfi_id}' not found", "not_found")
        self.rfi_id = rfi_id


class PersistenceError(RfiFlowError):
    """Raised when the record store rejects or fails an update."""

    def __init__(self, message: str, error_type: str = "persistence_error"):
        super().__init__(message, error_type)


class ConcurrentUpdateError(PersistenceError):
    """Raised when a conditional update finds the status or stage already moved."""

    def __init__(self, rfi_id: str, expected_status: str | None, field: str = "status"):
        super().__init__(
            f"RFI '{rfi_id}' is no longer in {field} {expected_status}",
            "concurrent_update",
        )
        self.rfi_id = rfi_id
        self.expected_status = expected_status


class ValidationUnavailableError(RfiFlowError):
    """Raised when the record needed for validation cannot be fetched."""

    def __init__(self, rfi_id: str, reason: str):
        super().__init__(
            f"Validation unavailable for RFI '{rfi_id}': {reason}",
            "validation_unavailable",
        )
        self.rfi_id = rfi_id


class DuplicateTransitionError(ValueError):
    """Raised at table construction when an ordered pair appears twice."""

    def __init__(self, from_state: object, to_state: object):
        super().__init__(f"duplicate transition {from_state} -> {to_state}")
        self.from_state = from_state
        self.to_state = to_state


__all__ = [
    "ConcurrentUpdateError",
    "DuplicateTransitionError",
    "IllegalTransitionError",
    "PersistenceError",
    "RfiFlowError",
    "RfiNotFoundError",
    "ValidationFailedError",
    "ValidationUnavailableError",
]
