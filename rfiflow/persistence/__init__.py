"""Persistence layer for RFI records, audit trail and activity feed."""

from __future__ import annotations

from typing import Optional

from ..config import RfiFlowConfig, load_config
from .inmemory import InMemoryRfiRepository
from .repository import ANY_STAGE, RfiRepository
from .sqlite import SQLiteRfiRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresRfiRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresRfiRepository = None  # type: ignore

_repository_instance: RfiRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[RfiFlowConfig] = None
) -> RfiRepository:
    """Factory function to obtain an RFI repository.

    The backend is selected from ``database_url``, which can be provided
    explicitly, via ``RFIFLOW_DATABASE_URL`` / ``DATABASE_URL``, or from
    loaded configuration. When no database is configured, an in-memory
    repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = database_url or config.database_url

    if not database_url:
        _repository_instance = InMemoryRfiRepository()
        return _repository_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteRfiRepository(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresRfiRepository is None:
            raise RuntimeError("Postgres support not available")
        _repository_instance = PostgresRfiRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "ANY_STAGE",
    "RfiRepository",
    "InMemoryRfiRepository",
    "SQLiteRfiRepository",
    "PostgresRfiRepository",
    "get_repository",
]
