"""Persistence layer for stepwise workflows and executions."""

from __future__ import annotations

import os
from typing import Optional

from ..config import StepwiseConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .postgres import PostgresWorkflowRepository
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository

# Process-wide repository and the database URL it was built for.
_repository_instance: WorkflowRepository | None = None
_repository_url: str | None = None


def resolve_database_url(
    database_url: Optional[str] = None, config: Optional[StepwiseConfig] = None
) -> Optional[str]:
    """Pick the database URL: explicit argument, then environment, then config."""
    if database_url:
        return database_url
    config = config or load_config()
    return (
        os.getenv("STEPWISE_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )


def _build_repository(database_url: Optional[str]) -> WorkflowRepository:
    if not database_url:
        return InMemoryWorkflowRepository()
    if database_url.startswith("sqlite://"):
        return SQLiteWorkflowRepository(database_url.replace("sqlite://", "", 1))
    if database_url.startswith(("postgres://", "postgresql://")):
        return PostgresWorkflowRepository(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[StepwiseConfig] = None
) -> WorkflowRepository:
    """Return the shared workflow repository.

    Without arguments the current repository is returned, or one is built
    from ``STEPWISE_DATABASE_URL``, ``DATABASE_URL`` or the loaded config.
    With ``database_url`` or ``config`` the URL is resolved first; the
    current repository is kept when it was built for the same URL and
    replaced otherwise. No URL means an in-memory repository.

    Raises:
        ValueError: The URL names a backend other than sqlite or postgres.
    """

    global _repository_instance, _repository_url
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    url = resolve_database_url(database_url, config)
    if _repository_instance is not None and url == _repository_url:
        return _repository_instance

    _repository_instance = _build_repository(url)
    _repository_url = url
    return _repository_instance


__all__ = [
    "WorkflowRepository",
    "InMemoryWorkflowRepository",
    "SQLiteWorkflowRepository",
    "PostgresWorkflowRepository",
    "get_repository",
    "resolve_database_url",
]
