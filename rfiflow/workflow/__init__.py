"""Workflow engine: transition tables, validation, execution and sweeping."""

from __future__ import annotations

from typing import Optional

from ..config import RfiFlowConfig
from ..notifications.base import NotificationTransport
from ..persistence import get_repository
from ..persistence.repository import RfiRepository
from .catalog import DEFAULT_CATALOG, StateCatalog, StateMetadata, describe
from .executor import TransitionExecutor
from .outbox import Outbox, OutboxTask
from .sweeper import OverdueSweeper
from .transitions import (
    DEFAULT_STAGE_TABLE,
    DEFAULT_STATUS_TABLE,
    RequiredField,
    TransitionEntry,
    TransitionTable,
)
from .validator import TransitionValidator, ValidationResult, fetch_for_validation


def build_executor(
    repository: Optional[RfiRepository] = None,
    notifier: Optional[NotificationTransport] = None,
    config: Optional[RfiFlowConfig] = None,
) -> TransitionExecutor:
    """Wire an executor to the configured repository."""
    if repository is None:
        repository = get_repository(config=config)
    return TransitionExecutor(repository, notifier)


__all__ = [
    "DEFAULT_CATALOG",
    "DEFAULT_STAGE_TABLE",
    "DEFAULT_STATUS_TABLE",
    "Outbox",
    "OutboxTask",
    "OverdueSweeper",
    "RequiredField",
    "StateCatalog",
    "StateMetadata",
    "TransitionEntry",
    "TransitionExecutor",
    "TransitionTable",
    "TransitionValidator",
    "ValidationResult",
    "build_executor",
    "describe",
    "fetch_for_validation",
]
