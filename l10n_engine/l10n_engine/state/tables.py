"""SQLAlchemy 2.0 ORM table definitions for the localization state store.

All tables use the modern ``Mapped`` / ``mapped_column`` declaration style
introduced in SQLAlchemy 2.0.  The ``Base`` declarative base is exported for
use by the repository layer and :func:`create_local_tables`.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    PrimaryKeyConstraint,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from l10n_engine.models.commit import MESSAGE_MAX_LENGTH

# Cross-dialect JSON type: uses JSONB on PostgreSQL, falls back to plain JSON
# (stored as TEXT) on SQLite.
_JsonType = JSONB().with_variant(JSON(), "sqlite")


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator):
    """Timezone-aware ``DateTime`` that stays aware on SQLite.

    SQLite stores datetimes as naive strings; values read back are coerced
    to UTC.  Aware values are normalised to UTC before they are written.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # type: ignore[override]
        if value is not None and value.tzinfo is not None:
            return value.astimezone(UTC)
        return value

    def process_result_value(self, value, dialect):  # type: ignore[override]
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for all state tables."""


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ProjectTable(Base):
    """A tracked repository together with its extraction configuration."""

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    repository_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    base_locale: Mapped[str] = mapped_column(String(32), nullable=False, default="en")
    targeted_locales: Mapped[list[str]] = mapped_column(_JsonType, nullable=False, default=list)
    required_locales: Mapped[list[str]] = mapped_column(_JsonType, nullable=False, default=list)
    skip_imports: Mapped[list[str]] = mapped_column(_JsonType, nullable=False, default=list)
    skip_paths: Mapped[list[str]] = mapped_column(_JsonType, nullable=False, default=list)
    only_paths: Mapped[list[str]] = mapped_column(_JsonType, nullable=False, default=list)
    skip_importer_paths: Mapped[dict[str, Any]] = mapped_column(_JsonType, nullable=False, default=dict)
    only_importer_paths: Mapped[dict[str, Any]] = mapped_column(_JsonType, nullable=False, default=dict)
    key_exclusions: Mapped[list[str]] = mapped_column(_JsonType, nullable=False, default=list)
    key_inclusions: Mapped[list[str]] = mapped_column(_JsonType, nullable=False, default=list)
    cache_manifest_formats: Mapped[list[str]] = mapped_column(_JsonType, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)


# ---------------------------------------------------------------------------
# Commits
# ---------------------------------------------------------------------------


class CommitTable(Base):
    """A point in a project's history subject to localization review.

    ``loading`` mirrors whether the ``commit_workers`` set for this
    revision is non-empty; ``ready`` and the counters are written only by
    the stats recalculator.
    """

    __tablename__ = "commits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    revision: Mapped[str] = mapped_column(String(40), nullable=False)
    message: Mapped[str] = mapped_column(String(MESSAGE_MAX_LENGTH), nullable=False)
    committed_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    priority: Mapped[int | None] = mapped_column(Integer, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    loading: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ready: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    strings_total: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    translations_total: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    translations_done: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    translations_new: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    translations_pending: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    words_new: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    words_pending: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("project_id", "revision", name="uq_commits_project_revision"),
        CheckConstraint(
            "priority IS NULL OR (priority >= 0 AND priority <= 3)",
            name="ck_commits_priority",
        ),
        Index("ix_commits_project", "project_id"),
        Index("ix_commits_revision", "revision"),
    )


# ---------------------------------------------------------------------------
# Blobs
# ---------------------------------------------------------------------------


class BlobTable(Base):
    """Content-addressed record of a unique blob within a project."""

    __tablename__ = "blobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    sha: Mapped[str] = mapped_column(String(40), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("project_id", "sha", name="uq_blobs_project_sha"),)


class BlobExtractionTable(Base):
    """Marker recording that an extractor already scanned a blob.

    ``key_ids`` lists the keys the scan produced so that later commits
    sharing the blob can be associated with them without re-extracting.
    """

    __tablename__ = "blob_extractions"

    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    importer: Mapped[str] = mapped_column(String(64), nullable=False)
    blob_sha: Mapped[str] = mapped_column(String(40), nullable=False)
    key_ids: Mapped[list[int]] = mapped_column(_JsonType, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)

    __table_args__ = (PrimaryKeyConstraint("project_id", "importer", "blob_sha"),)


# ---------------------------------------------------------------------------
# Keys and translations
# ---------------------------------------------------------------------------


class KeyTable(Base):
    """A translatable string identifier scoped to a project."""

    __tablename__ = "keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    key: Mapped[str] = mapped_column(String(1024), nullable=False)
    original_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    source_copy: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    importer: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("project_id", "key", name="uq_keys_project_key"),)


class CommitKeyTable(Base):
    """Many-to-many association between commits and the keys found in them."""

    __tablename__ = "commit_keys"

    commit_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("commits.id", ondelete="CASCADE"), nullable=False
    )
    key_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("keys.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        PrimaryKeyConstraint("commit_id", "key_id"),
        Index("ix_commit_keys_key", "key_id"),
    )


class TranslationTable(Base):
    """Per-locale copy and review state for a key.

    ``approved`` is tri-state: ``NULL`` means not yet reviewed.
    """

    __tablename__ = "translations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("keys.id", ondelete="CASCADE"), nullable=False
    )
    source_locale: Mapped[str] = mapped_column(String(32), nullable=False)
    locale: Mapped[str] = mapped_column(String(32), nullable=False)
    source_copy: Mapped[str | None] = mapped_column(Text, nullable=True)
    copy: Mapped[str | None] = mapped_column(Text, nullable=True)
    translated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    approved: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    words_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("key_id", "locale", name="uq_translations_key_locale"),
        Index("ix_translations_locale", "locale"),
    )


# ---------------------------------------------------------------------------
# Worker registry
# ---------------------------------------------------------------------------


class CommitWorkerTable(Base):
    """Outstanding extraction job tokens for a commit.

    Rows are keyed by commit id rather than the bare revision so that two
    projects tracking the same history never share a worker set.
    """

    __tablename__ = "commit_workers"

    commit_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("commits.id", ondelete="CASCADE"), nullable=False
    )
    job_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)

    __table_args__ = (PrimaryKeyConstraint("commit_id", "job_id"),)
