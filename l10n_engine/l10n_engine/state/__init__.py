"""Persistence layer: ORM tables, engines and repositories."""

from l10n_engine.state.database import (
    dispose_engine,
    get_engine,
    get_session_factory,
    is_sqlite,
    session_scope,
)
from l10n_engine.state.repository import (
    BlobExtractionRepository,
    BlobRepository,
    CommitRepository,
    KeyRepository,
    ProjectRepository,
    TranslationRepository,
    WorkerRepository,
)
from l10n_engine.state.sqlite_adapter import create_local_tables, get_local_engine

__all__ = [
    "BlobExtractionRepository",
    "BlobRepository",
    "CommitRepository",
    "KeyRepository",
    "ProjectRepository",
    "TranslationRepository",
    "WorkerRepository",
    "create_local_tables",
    "dispose_engine",
    "get_engine",
    "get_local_engine",
    "get_session_factory",
    "is_sqlite",
    "session_scope",
]
