"""Domain models for the localization engine."""

from l10n_engine.models.commit import (
    CommitCreate,
    CommitStats,
    CommitValidationError,
    ImportOptions,
)
from l10n_engine.models.project import ProjectConfig

__all__ = [
    "CommitCreate",
    "CommitStats",
    "CommitValidationError",
    "ImportOptions",
    "ProjectConfig",
]
