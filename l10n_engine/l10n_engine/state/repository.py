"""Repository classes providing CRUD access to the localization state store.

Each repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  All writes call ``session.flush()``
so that generated defaults are populated; the caller is responsible for calling
``session.commit()`` (or relying on ``session_scope``).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime
from typing import Any

from sqlalchemy import and_, case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from l10n_engine.models.commit import CommitStats
from l10n_engine.state.tables import (
    BlobExtractionTable,
    BlobTable,
    CommitKeyTable,
    CommitTable,
    CommitWorkerTable,
    KeyTable,
    ProjectTable,
    TranslationTable,
)

logger = logging.getLogger(__name__)


def words_in(copy: str | None) -> int:
    """Return the number of whitespace-separated words in *copy*."""
    return len(copy.split()) if copy else 0


async def _dialect_upsert(
    session: AsyncSession,
    table: Any,
    values: dict[str, Any],
    index_elements: list[str],
    update_columns: list[str],
) -> Any:
    """Dialect-aware upsert: PostgreSQL ``ON CONFLICT DO UPDATE`` or SQLite equivalent.

    Parameters
    ----------
    session:
        The active async session.
    table:
        The SQLAlchemy table class to upsert into.
    values:
        Column-value mapping for the row to insert.
    index_elements:
        Column names forming the unique constraint for conflict detection.
    update_columns:
        Column names to update when a conflict occurs.
    """
    bind = session.get_bind()
    dialect_name = getattr(getattr(bind, "dialect", None), "name", "")

    stmt: Any
    if "postgresql" in str(dialect_name):
        from sqlalchemy.dialects.postgresql import insert as _pg_insert

        stmt = _pg_insert(table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=index_elements,
            set_={col: getattr(stmt.excluded, col) for col in update_columns},
        )
    else:
        from sqlalchemy.dialects.sqlite import insert as _sqlite_insert

        stmt = _sqlite_insert(table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=index_elements,
            set_={col: values[col] for col in update_columns},
        )
    return await session.execute(stmt)


async def _dialect_upsert_nothing(
    session: AsyncSession,
    table: Any,
    values: dict[str, Any],
    index_elements: list[str],
) -> Any:
    """Dialect-aware insert with ``ON CONFLICT DO NOTHING``.

    ``result.rowcount`` is 1 when the row was inserted and 0 when it
    already existed.
    """
    bind = session.get_bind()
    dialect_name = getattr(getattr(bind, "dialect", None), "name", "")

    stmt: Any
    if "postgresql" in str(dialect_name):
        from sqlalchemy.dialects.postgresql import insert as _pg_insert

        stmt = _pg_insert(table).values(**values)
    else:
        from sqlalchemy.dialects.sqlite import insert as _sqlite_insert

        stmt = _sqlite_insert(table).values(**values)
    stmt = stmt.on_conflict_do_nothing(index_elements=index_elements)
    return await session.execute(stmt)


# ---------------------------------------------------------------------------
# ProjectRepository
# ---------------------------------------------------------------------------


class ProjectRepository:
    """CRUD operations for the ``projects`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        name: str,
        repository_path: str,
        *,
        base_locale: str = "en",
        targeted_locales: list[str] | None = None,
        required_locales: list[str] | None = None,
        **settings: Any,
    ) -> ProjectTable:
        """Insert a new project.

        ``settings`` may carry any of the JSON configuration columns
        (``skip_imports``, ``skip_paths``, ``cache_manifest_formats`` ...).

        Raises
        ------
        ValueError
            If a project with the same name already exists, or a required locale
            is not targeted.
        """
        targeted = list(targeted_locales or [base_locale])
        missing = set(required_locales or ()) - set(targeted)
        if missing:
            raise ValueError(f"Required locales must also be targeted: {sorted(missing)}")
        row = ProjectTable(
            name=name,
            repository_path=repository_path,
            base_locale=base_locale,
            targeted_locales=targeted,
            required_locales=list(required_locales if required_locales is not None else targeted),
            skip_imports=list(settings.pop("skip_imports", [])),
            skip_paths=list(settings.pop("skip_paths", [])),
            only_paths=list(settings.pop("only_paths", [])),
            skip_importer_paths=dict(settings.pop("skip_importer_paths", {})),
            only_importer_paths=dict(settings.pop("only_importer_paths", {})),
            key_exclusions=list(settings.pop("key_exclusions", [])),
            key_inclusions=list(settings.pop("key_inclusions", [])),
            cache_manifest_formats=list(settings.pop("cache_manifest_formats", [])),
        )
        if settings:
            raise TypeError(f"Unknown project settings: {sorted(settings)}")
        try:
            self._session.add(row)
            await self._session.flush()
        except IntegrityError:
            await self._session.rollback()
            raise ValueError(f"Project '{name}' already exists") from None
        return row

    async def get(self, project_id: int) -> ProjectTable | None:
        """Fetch a project by primary key."""
        return await self._session.get(ProjectTable, project_id)

    async def get_by_name(self, name: str) -> ProjectTable | None:
        stmt = select(ProjectTable).where(ProjectTable.name == name)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_all(self) -> list[ProjectTable]:
        """Return all projects ordered by name."""
        result = await self._session.execute(select(ProjectTable).order_by(ProjectTable.name))
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# CommitRepository
# ---------------------------------------------------------------------------


class CommitRepository:
    """CRUD operations for the ``commits`` and ``commit_keys`` tables."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        project_id: int,
        revision: str,
        message: str,
        committed_at: datetime,
        *,
        priority: int | None = None,
        due_date: date | None = None,
        description: str | None = None,
    ) -> CommitTable:
        """Insert a new commit.

        Raises
        ------
        ValueError
            If the project already has a commit with this revision.
        """
        row = CommitTable(
            project_id=project_id,
            revision=revision,
            message=message,
            committed_at=committed_at,
            priority=priority,
            due_date=due_date,
            description=description,
        )
        try:
            self._session.add(row)
            await self._session.flush()
        except IntegrityError:
            await self._session.rollback()
            raise ValueError(f"Revision {revision} already exists in project {project_id}") from None
        return row

    async def get(self, commit_id: int) -> CommitTable | None:
        """Fetch a commit by primary key, refreshing any cached state."""
        stmt = select(CommitTable).where(CommitTable.id == commit_id).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_update(self, commit_id: int) -> CommitTable | None:
        """Fetch a commit and lock its row until the transaction ends.

        Uses ``SELECT ... FOR UPDATE`` on PostgreSQL; SQLite ignores the
        clause and relies on its single-writer lock instead.
        """
        stmt = (
            select(CommitTable)
            .where(CommitTable.id == commit_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_revision(self, project_id: int, revision: str) -> CommitTable | None:
        """Fetch a commit by full revision, or by unique abbreviated prefix."""
        stmt = select(CommitTable).where(
            CommitTable.project_id == project_id,
            CommitTable.revision.startswith(revision.lower(), autoescape=True),
        )
        result = await self._session.execute(stmt.limit(2))
        rows = list(result.scalars().all())
        return rows[0] if len(rows) == 1 else None

    async def list_for_project(self, project_id: int) -> list[CommitTable]:
        """Return the project's commits, newest first."""
        stmt = (
            select(CommitTable)
            .where(CommitTable.project_id == project_id)
            .order_by(CommitTable.committed_at.desc(), CommitTable.id.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_ids_for_project(self, project_id: int) -> list[int]:
        stmt = select(CommitTable.id).where(CommitTable.project_id == project_id).order_by(CommitTable.id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def set_loading(self, commit_id: int, loading: bool) -> None:
        """Write the ``loading`` flag without touching any other column."""
        stmt = update(CommitTable).where(CommitTable.id == commit_id).values(loading=loading)
        await self._session.execute(stmt)
        await self._session.flush()

    async def save_stats(self, commit_id: int, stats: CommitStats) -> None:
        """Persist the counters and ``ready`` flag computed by the recalculator."""
        stmt = (
            update(CommitTable)
            .where(CommitTable.id == commit_id)
            .values(
                ready=stats.ready,
                strings_total=stats.strings_total,
                translations_total=stats.translations_total,
                translations_done=stats.translations_done,
                translations_new=stats.translations_new,
                translations_pending=stats.translations_pending,
                words_new=stats.words_new,
                words_pending=stats.words_pending,
            )
        )
        await self._session.execute(stmt)
        await self._session.flush()

    # -- key associations ---------------------------------------------------

    async def clear_keys(self, commit_id: int) -> int:
        """Remove every key association of *commit_id*."""
        stmt = delete(CommitKeyTable).where(CommitKeyTable.commit_id == commit_id)
        result = await self._session.execute(stmt)
        await self._session.flush()
        return result.rowcount  # type: ignore[attr-defined, return-value]

    async def add_keys(self, commit_id: int, key_ids: Iterable[int]) -> None:
        """Associate keys with *commit_id*; existing associations are kept."""
        for key_id in sorted(set(key_ids)):
            await _dialect_upsert_nothing(
                self._session,
                CommitKeyTable,
                values={"commit_id": commit_id, "key_id": key_id},
                index_elements=["commit_id", "key_id"],
            )
        await self._session.flush()

    async def key_ids(self, commit_id: int) -> list[int]:
        stmt = select(CommitKeyTable.key_id).where(CommitKeyTable.commit_id == commit_id).order_by(CommitKeyTable.key_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def ids_for_key(self, key_id: int) -> list[int]:
        """Return the ids of every commit the key was found in."""
        stmt = select(CommitKeyTable.commit_id).where(CommitKeyTable.key_id == key_id).order_by(CommitKeyTable.commit_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    # -- aggregates ---------------------------------------------------------

    async def compute_stats(self, commit_id: int, required_locales: list[str]) -> CommitStats:
        """Aggregate translation state for *commit_id* over *required_locales*.

        Base translations (``locale == source_locale``) are excluded.  A
        commit without any required translation is ready.
        """
        strings_total = await self._session.scalar(
            select(func.count()).select_from(CommitKeyTable).where(CommitKeyTable.commit_id == commit_id)
        )

        t = TranslationTable
        is_new = t.translated.is_(False)
        is_pending = and_(t.translated.is_(True), t.approved.is_not(True))
        stmt = (
            select(
                func.count(),
                func.coalesce(func.sum(case((t.approved.is_(True), 1), else_=0)), 0),
                func.coalesce(func.sum(case((is_new, 1), else_=0)), 0),
                func.coalesce(func.sum(case((is_pending, 1), else_=0)), 0),
                func.coalesce(func.sum(case((is_new, t.words_count), else_=0)), 0),
                func.coalesce(func.sum(case((is_pending, t.words_count), else_=0)), 0),
            )
            .select_from(t)
            .join(CommitKeyTable, CommitKeyTable.key_id == t.key_id)
            .where(
                CommitKeyTable.commit_id == commit_id,
                t.locale.in_(required_locales),
                t.locale != t.source_locale,
            )
        )
        total, done, new, pending, words_new, words_pending = (await self._session.execute(stmt)).one()
        return CommitStats(
            strings_total=strings_total or 0,
            translations_total=total,
            translations_done=done,
            translations_new=new,
            translations_pending=pending,
            words_new=words_new,
            words_pending=words_pending,
            ready=(total - done) == 0,
        )

    async def count_translations(
        self,
        commit_id: int,
        locale: str,
        *,
        untranslated: bool = False,
        unapproved: bool = False,
        exclude_base: bool = True,
    ) -> int:
        """Count translations of *commit_id*'s keys in *locale* matching the filters."""
        t = TranslationTable
        stmt = (
            select(func.count())
            .select_from(t)
            .join(CommitKeyTable, CommitKeyTable.key_id == t.key_id)
            .where(CommitKeyTable.commit_id == commit_id, t.locale == locale)
        )
        if exclude_base:
            stmt = stmt.where(t.locale != t.source_locale)
        if untranslated:
            stmt = stmt.where(t.translated.is_(False))
        if unapproved:
            stmt = stmt.where(t.approved.is_not(True))
        return (await self._session.scalar(stmt)) or 0


# ---------------------------------------------------------------------------
# BlobRepository
# ---------------------------------------------------------------------------


class BlobRepository:
    """Content-addressed blob records, unique per ``(project, sha)``."""

    def __init__(self, session: AsyncSession, project_id: int) -> None:
        self._session = session
        self._project_id = project_id

    async def find_or_create(self, sha: str) -> BlobTable:
        """Return the blob record for *sha*, creating it if needed.

        The insert uses ``ON CONFLICT DO NOTHING`` followed by a re-select,
        so concurrent discoverers of the same blob converge on one row.
        """
        await _dialect_upsert_nothing(
            self._session,
            BlobTable,
            values={"project_id": self._project_id, "sha": sha},
            index_elements=["project_id", "sha"],
        )
        row = await self.get(sha)
        if row is None:  # pragma: no cover - the insert above guarantees a row
            raise RuntimeError(f"Blob {sha} vanished after insert")
        return row

    async def get(self, sha: str) -> BlobTable | None:
        stmt = select(BlobTable).where(BlobTable.project_id == self._project_id, BlobTable.sha == sha)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def count(self) -> int:
        stmt = select(func.count()).select_from(BlobTable).where(BlobTable.project_id == self._project_id)
        return (await self._session.scalar(stmt)) or 0


# ---------------------------------------------------------------------------
# BlobExtractionRepository
# ---------------------------------------------------------------------------


class BlobExtractionRepository:
    """Markers recording which extractor already scanned which blob."""

    def __init__(self, session: AsyncSession, project_id: int) -> None:
        self._session = session
        self._project_id = project_id

    async def get(self, importer: str, blob_sha: str) -> list[int] | None:
        """Return the key ids recorded for the scan, or ``None`` if never scanned."""
        stmt = select(BlobExtractionTable.key_ids).where(
            BlobExtractionTable.project_id == self._project_id,
            BlobExtractionTable.importer == importer,
            BlobExtractionTable.blob_sha == blob_sha,
        )
        result = await self._session.execute(stmt)
        key_ids = result.scalar_one_or_none()
        return None if key_ids is None else list(key_ids)

    async def record(self, importer: str, blob_sha: str, key_ids: Iterable[int]) -> None:
        ids = sorted(set(key_ids))
        await _dialect_upsert(
            self._session,
            BlobExtractionTable,
            values={
                "project_id": self._project_id,
                "importer": importer,
                "blob_sha": blob_sha,
                "key_ids": ids,
            },
            index_elements=["project_id", "importer", "blob_sha"],
            update_columns=["key_ids"],
        )
        await self._session.flush()

    async def delete(self, importer: str, blob_sha: str) -> bool:
        stmt = delete(BlobExtractionTable).where(
            BlobExtractionTable.project_id == self._project_id,
            BlobExtractionTable.importer == importer,
            BlobExtractionTable.blob_sha == blob_sha,
        )
        result = await self._session.execute(stmt)
        await self._session.flush()
        return (result.rowcount or 0) > 0  # type: ignore[attr-defined]


# ---------------------------------------------------------------------------
# KeyRepository
# ---------------------------------------------------------------------------


class KeyRepository:
    """Project-scoped translatable keys."""

    def __init__(self, session: AsyncSession, project_id: int) -> None:
        self._session = session
        self._project_id = project_id

    async def upsert(
        self,
        key: str,
        source_copy: str,
        *,
        source_path: str | None = None,
        importer: str | None = None,
    ) -> tuple[KeyTable, bool]:
        """Find or create *key*, updating its base copy.

        Returns the row and whether its source copy changed (always
        ``False`` for a newly created key).
        """
        inserted = await _dialect_upsert_nothing(
            self._session,
            KeyTable,
            values={
                "project_id": self._project_id,
                "key": key,
                "original_key": key,
                "source_copy": source_copy,
                "source_path": source_path,
                "importer": importer,
            },
            index_elements=["project_id", "key"],
        )
        row = await self.get(key)
        if row is None:  # pragma: no cover
            raise RuntimeError(f"Key {key!r} vanished after insert")
        if (inserted.rowcount or 0) > 0 or row.source_copy == source_copy:  # type: ignore[attr-defined]
            return row, False

        row.source_copy = source_copy
        row.source_path = source_path
        row.importer = importer
        await self._session.flush()
        return row, True

    async def get(self, key: str) -> KeyTable | None:
        stmt = (
            select(KeyTable)
            .where(KeyTable.project_id == self._project_id, KeyTable.key == key)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, key_id: int) -> KeyTable | None:
        return await self._session.get(KeyTable, key_id)


# ---------------------------------------------------------------------------
# TranslationRepository
# ---------------------------------------------------------------------------


class TranslationRepository:
    """Per-locale translations of keys."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def ensure(
        self,
        key_id: int,
        locale: str,
        source_locale: str,
        source_copy: str,
        *,
        source_changed: bool = False,
    ) -> TranslationTable:
        """Create the translation if missing, or refresh its source copy.

        The base translation (``locale == source_locale``) is created
        translated and approved with the source copy.  Other locales start
        untranslated; when the source copy changed, their review state is
        reset so they are pending review again.
        """
        is_base = locale == source_locale
        await _dialect_upsert_nothing(
            self._session,
            TranslationTable,
            values={
                "key_id": key_id,
                "locale": locale,
                "source_locale": source_locale,
                "source_copy": source_copy,
                "copy": source_copy if is_base else None,
                "translated": is_base,
                "approved": True if is_base else None,
                "words_count": words_in(source_copy),
            },
            index_elements=["key_id", "locale"],
        )
        row = await self.get(key_id, locale)
        if row is None:  # pragma: no cover
            raise RuntimeError(f"Translation {key_id}/{locale} vanished after insert")

        if source_changed and row.source_copy != source_copy:
            row.source_copy = source_copy
            row.words_count = words_in(source_copy)
            if is_base:
                row.copy = source_copy
            else:
                row.approved = None
            await self._session.flush()
        return row

    async def get(self, key_id: int, locale: str) -> TranslationTable | None:
        stmt = (
            select(TranslationTable)
            .where(TranslationTable.key_id == key_id, TranslationTable.locale == locale)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def update(
        self,
        key_id: int,
        locale: str,
        *,
        copy: str | None = None,
        approved: bool | None = None,
    ) -> TranslationTable:
        """Record translator or reviewer input.

        Setting *copy* marks the translation translated and resets review;
        setting *approved* records the review outcome.

        Raises
        ------
        LookupError
            If the translation does not exist.
        ValueError
            If approval is requested for an untranslated translation.
        """
        row = await self.get(key_id, locale)
        if row is None:
            raise LookupError(f"No {locale} translation for key {key_id}")
        if copy is not None:
            row.copy = copy
            row.translated = True
            row.approved = None
        if approved is not None:
            if not row.translated:
                raise ValueError("cannot be set when translation is pending")
            row.approved = approved
        await self._session.flush()
        return row

    async def manifest_for_commit(self, commit_id: int, locales: list[str]) -> dict[str, dict[str, str]]:
        """Return ``{locale: {key: copy}}`` of approved translations under the commit."""
        stmt = (
            select(TranslationTable.locale, KeyTable.key, TranslationTable.copy)
            .join(KeyTable, KeyTable.id == TranslationTable.key_id)
            .join(CommitKeyTable, CommitKeyTable.key_id == TranslationTable.key_id)
            .where(
                CommitKeyTable.commit_id == commit_id,
                TranslationTable.locale.in_(locales),
                TranslationTable.approved.is_(True),
            )
            .order_by(TranslationTable.locale, KeyTable.key)
        )
        manifest: dict[str, dict[str, str]] = {locale: {} for locale in locales}
        for locale, key, copy in (await self._session.execute(stmt)).all():
            manifest[locale][key] = copy or ""
        return manifest


# ---------------------------------------------------------------------------
# WorkerRepository
# ---------------------------------------------------------------------------


class WorkerRepository:
    """Rows of the ``commit_workers`` set.

    The rows only mean something together with the ``loading`` flag; use
    :class:`~l10n_engine.importing.worker_registry.WorkerRegistry` rather
    than calling this directly.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, commit_id: int, job_id: str) -> bool:
        """Insert the token; return ``False`` if it was already present."""
        result = await _dialect_upsert_nothing(
            self._session,
            CommitWorkerTable,
            values={"commit_id": commit_id, "job_id": job_id},
            index_elements=["commit_id", "job_id"],
        )
        await self._session.flush()
        return (result.rowcount or 0) > 0  # type: ignore[attr-defined]

    async def remove(self, commit_id: int, job_id: str) -> bool:
        """Delete the token; return ``False`` if it was not present."""
        stmt = delete(CommitWorkerTable).where(
            CommitWorkerTable.commit_id == commit_id,
            CommitWorkerTable.job_id == job_id,
        )
        result = await self._session.execute(stmt)
        await self._session.flush()
        return (result.rowcount or 0) > 0  # type: ignore[attr-defined]

    async def clear(self, commit_id: int) -> int:
        stmt = delete(CommitWorkerTable).where(CommitWorkerTable.commit_id == commit_id)
        result = await self._session.execute(stmt)
        await self._session.flush()
        return result.rowcount  # type: ignore[attr-defined, return-value]

    async def count(self, commit_id: int) -> int:
        stmt = select(func.count()).select_from(CommitWorkerTable).where(CommitWorkerTable.commit_id == commit_id)
        return (await self._session.scalar(stmt)) or 0

    async def list_jobs(self, commit_id: int) -> list[str]:
        stmt = (
            select(CommitWorkerTable.job_id)
            .where(CommitWorkerTable.commit_id == commit_id)
            .order_by(CommitWorkerTable.job_id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
