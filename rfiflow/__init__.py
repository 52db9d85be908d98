"""rfiflow: Lifecycle workflow engine for construction RFIs."""

from .errors import (
    ConcurrentUpdateError,
    IllegalTransitionError,
    PersistenceError,
    RfiFlowError,
    RfiNotFoundError,
    ValidationFailedError,
    ValidationUnavailableError,
)
from .models import ActivityEntry, AuditEntry, Notification, RfiRecord, TransitionResult
from .notifications import get_notifier
from .persistence import get_repository
from .states import Stage, Status
from .workflow import OverdueSweeper, TransitionExecutor, build_executor

__version__ = "0.1.0"
__all__ = [
    "ActivityEntry",
    "AuditEntry",
    "ConcurrentUpdateError",
    "IllegalTransitionError",
    "Notification",
    "OverdueSweeper",
    "PersistenceError",
    "RfiFlowError",
    "RfiNotFoundError",
    "RfiRecord",
    "Stage",
    "Status",
    "TransitionExecutor",
    "TransitionResult",
    "ValidationFailedError",
    "ValidationUnavailableError",
    "build_executor",
    "get_notifier",
    "get_repository",
]
