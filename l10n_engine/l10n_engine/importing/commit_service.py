"""Commit lifecycle: creation, string import and readiness queries.

:class:`CommitService` wires the import pipeline together::

    create_commit -> import_strings -> TreeWalker -> ExtractionDispatcher
        -> WorkerRegistry.add_worker -> JobQueue -> BlobImporter
        -> WorkerRegistry.remove_worker -> CascadeTrigger.after_loading

Every background step opens its own session from the shared factory.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from functools import partial
from pathlib import Path

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from l10n_engine.config import Settings
from l10n_engine.exporters.base import BaseExporter, default_exporters
from l10n_engine.exporters.cache import ManifestCache
from l10n_engine.extractors.registry import ExtractorRegistry, default_registry
from l10n_engine.git.git_client import GitClientError
from l10n_engine.git.source_tree import (
    GitSourceTreeProvider,
    ProviderFactory,
    SourceTreeProvider,
    resolve_with_fetch,
)
from l10n_engine.importing.blob_importer import BlobImporter
from l10n_engine.importing.cascade import CascadeTrigger
from l10n_engine.importing.dispatcher import ExtractionDispatcher
from l10n_engine.importing.jobs import JobQueue
from l10n_engine.importing.recalculator import CommitStatsRecalculator
from l10n_engine.importing.tree_walker import TreeWalker
from l10n_engine.importing.worker_registry import WorkerRegistry
from l10n_engine.models.commit import CommitCreate, CommitStats, CommitValidationError, ImportOptions
from l10n_engine.models.project import ProjectConfig
from l10n_engine.state.database import session_scope
from l10n_engine.state.repository import CommitRepository, ProjectRepository, TranslationRepository
from l10n_engine.state.tables import CommitTable

logger = logging.getLogger(__name__)


class CommitNotFoundError(Exception):
    """Raised when a commit's revision cannot be resolved in its repository."""

    def __init__(self, revision: str, repository_path: str) -> None:
        self.revision = revision
        self.repository_path = repository_path
        super().__init__(f"Revision {revision} not found in {repository_path}")


class CommitService:
    """Entry point for everything that happens to a commit.

    Parameters
    ----------
    session_factory:
        Factory shared by every step of the pipeline.
    settings:
        Engine settings; loaded from the environment when omitted.
    providers:
        Maps a repository path to its source tree provider.  Defaults to
        :class:`GitSourceTreeProvider`.
    extractors:
        Extractor registry; defaults to the built-in extractors.
    exporters:
        Manifest exporters keyed by ident; defaults to the built-in set.
    jobs:
        Background job queue; one is created when omitted.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        *,
        providers: ProviderFactory | None = None,
        extractors: ExtractorRegistry | None = None,
        exporters: dict[str, BaseExporter] | None = None,
        jobs: JobQueue | None = None,
    ) -> None:
        settings = settings or Settings()
        self._session_factory = session_factory
        self._message_max_length = settings.message_max_length
        self._provider_factory: ProviderFactory = providers or GitSourceTreeProvider
        self._providers: dict[str, SourceTreeProvider] = {}

        self.jobs = jobs or JobQueue(settings.max_concurrent_jobs)
        self.cache = ManifestCache(settings.cache_dir)
        self.extractors = extractors or default_registry()
        self.exporters = exporters if exporters is not None else default_exporters()

        self.recalculator = CommitStatsRecalculator(session_factory)
        self.cascade = CascadeTrigger(session_factory, self.recalculator, self.jobs, self.cache, self.exporters)
        self.registry = WorkerRegistry(session_factory, on_drained=self.cascade.after_loading)
        self.importer = BlobImporter(session_factory, self.provider, self.extractors, self.registry)
        self.dispatcher = ExtractionDispatcher(
            session_factory, self.extractors, self.importer, self.registry, self.jobs
        )
        self.walker = TreeWalker(session_factory, self.dispatcher)

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    def provider(self, repository_path: str) -> SourceTreeProvider:
        """Return the (cached) source tree provider for *repository_path*."""
        provider = self._providers.get(repository_path)
        if provider is None:
            provider = self._provider_factory(repository_path)
            self._providers[repository_path] = provider
        return provider

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_commit(
        self,
        project_id: int,
        revision: str,
        message: str | None = None,
        committed_at: datetime | None = None,
        *,
        priority: int | None = None,
        due_date: date | str | None = None,
        description: str | None = None,
        skip_import: bool = False,
    ) -> CommitTable:
        """Create a commit and, unless *skip_import*, schedule its import.

        The revision is resolved (fetching once if needed) to the full SHA.
        A missing message or commit time is loaded from the repository; a
        loaded message is truncated rather than rejected.

        Raises
        ------
        CommitValidationError
            If any attribute is invalid, the revision cannot be resolved, or
            the project already tracks it.  Nothing is persisted.
        """
        try:
            data = CommitCreate.model_validate(
                {
                    "revision": revision,
                    "message": message,
                    "committed_at": committed_at,
                    "priority": priority,
                    "due_date": due_date,
                    "description": description,
                },
                context={"message_max_length": self._message_max_length},
            )
        except ValidationError as exc:
            raise CommitValidationError.from_pydantic(exc) from exc

        async with session_scope(self._session_factory) as session:
            project_row = await ProjectRepository(session).get(project_id)
        if project_row is None:
            raise CommitValidationError({"project": f"{project_id} does not exist"})
        project = ProjectConfig.model_validate(project_row)

        try:
            info = await resolve_with_fetch(self.provider(project.repository_path), data.revision)
        except GitClientError as exc:
            raise CommitValidationError({"revision": f"could not be resolved: {exc}"}) from exc
        if info is None:
            raise CommitValidationError({"revision": "does not exist in the repository"})

        commit_message = data.message or info.message.strip()[: self._message_max_length]
        if not commit_message:
            raise CommitValidationError({"message": "can't be blank"})

        async with session_scope(self._session_factory) as session:
            commits = CommitRepository(session)
            if await commits.get_by_revision(project.id, info.sha) is not None:
                raise CommitValidationError({"revision": "has already been taken"})
            try:
                commit = await commits.create(
                    project.id,
                    info.sha,
                    commit_message,
                    data.committed_at or info.committed_at,
                    priority=data.priority,
                    due_date=data.due_date,
                    description=data.description,
                )
            except ValueError as exc:
                raise CommitValidationError({"revision": "has already been taken"}) from exc

        logger.info("Created commit %d (%s) in %s", commit.id, commit.revision[:10], project.name)
        if not skip_import:
            self.jobs.enqueue("import_strings", partial(self.import_strings, commit.id))
        return commit

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    async def import_strings(
        self,
        commit_id: int,
        locale: str | None = None,
        *,
        inline: bool = False,
        force: bool = False,
    ) -> list[str]:
        """Scan the commit's tree for translatable strings.

        Parameters
        ----------
        commit_id:
            Commit to import.
        locale:
            When given, the scan is incremental and copy is read as written
            in this locale; the commit's existing keys are kept.
        inline:
            Run every extraction unit in the caller's task and recalculate
            before returning.
        force:
            Re-extract blobs even if they were scanned before.

        Returns
        -------
        list[str]
            Ids of the scheduled extraction jobs (empty when inline).

        Raises
        ------
        CommitNotFoundError
            If the revision cannot be resolved; nothing has been cleared or
            scheduled.
        """
        options = ImportOptions(locale=locale, inline=inline, force=force)
        commit, project = await self._load(commit_id)

        provider = self.provider(project.repository_path)
        try:
            info = await resolve_with_fetch(provider, commit.revision)
        except GitClientError as exc:
            raise CommitNotFoundError(commit.revision, project.repository_path) from exc
        if info is None:
            raise CommitNotFoundError(commit.revision, project.repository_path)
        root = await asyncio.to_thread(provider.tree, info.sha)

        if options.locale is None:
            async with session_scope(self._session_factory) as session:
                cleared = await CommitRepository(session).clear_keys(commit_id)
            logger.debug("Cleared %d key association(s) of commit %d", cleared, commit_id)

        logger.info(
            "Importing commit %d (%s) locale=%s inline=%s force=%s",
            commit_id,
            commit.revision[:10],
            options.locale or project.base_locale,
            options.inline,
            options.force,
            extra={"revision": commit.revision, "project_id": project.id},
        )

        if options.inline:
            await self.walker.walk(root, commit_id, project, options)
            await self.cascade.after_loading(commit_id)
            return []

        walk_token = f"walk-{self.jobs.new_job_id()}"
        await self.registry.add_worker(commit_id, walk_token)
        try:
            return await self.walker.walk(root, commit_id, project, options)
        finally:
            await self.registry.remove_worker(commit_id, walk_token)

    # ------------------------------------------------------------------
    # Worker registry
    # ------------------------------------------------------------------

    async def add_worker(self, commit_id: int, job_id: str) -> None:
        await self.registry.add_worker(commit_id, job_id)

    async def remove_worker(self, commit_id: int, job_id: str) -> bool:
        """Deregister *job_id*; ``True`` when this emptied the set."""
        return await self.registry.remove_worker(commit_id, job_id)

    async def clear_workers(self, commit_id: int) -> bool:
        """Drop every outstanding job of *commit_id* and recalculate if it was loading."""
        return await self.registry.clear_workers(commit_id)

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    async def recalculate_ready(self, commit_id: int, *, force: bool = True) -> CommitStats:
        """Recalculate *commit_id* now, refreshing its manifest cache."""
        return await self.cascade.recalculate_ready(commit_id, force=force)

    async def update_translation(
        self,
        key_id: int,
        locale: str,
        *,
        copy: str | None = None,
        approved: bool | None = None,
    ) -> list[CommitStats]:
        """Record translator or reviewer input and recalculate affected commits.

        Raises
        ------
        LookupError
            If the translation does not exist.
        ValueError
            If approval is set on a translation that has no copy yet.
        """
        async with session_scope(self._session_factory) as session:
            await TranslationRepository(session).update(key_id, locale, copy=copy, approved=approved)
        return await self.cascade.translation_changed(key_id)

    async def is_localized(self, commit_id: int, locale: str) -> bool:
        """``True`` when every translation of the commit in *locale* is approved."""
        async with session_scope(self._session_factory) as session:
            pending = await CommitRepository(session).count_translations(
                commit_id, locale, unapproved=True, exclude_base=False
            )
        return pending == 0

    async def all_translations_entered_for_locale(self, commit_id: int, locale: str) -> bool:
        async with session_scope(self._session_factory) as session:
            missing = await CommitRepository(session).count_translations(commit_id, locale, untranslated=True)
        return missing == 0

    async def all_translations_approved_for_locale(self, commit_id: int, locale: str) -> bool:
        async with session_scope(self._session_factory) as session:
            pending = await CommitRepository(session).count_translations(commit_id, locale, unapproved=True)
        return pending == 0

    async def fraction_done(self, commit_id: int) -> float:
        """Approved share of required translations as of the last recalculation."""
        commit, _ = await self._load(commit_id)
        if commit.translations_total == 0:
            return 1.0
        return commit.translations_done / commit.translations_total

    async def get_commit(self, commit_id: int) -> CommitTable | None:
        async with session_scope(self._session_factory) as session:
            return await CommitRepository(session).get(commit_id)

    async def manifest_path(self, commit_id: int, ident: str) -> Path | None:
        """Return the cached manifest of *commit_id* in *ident*, if present."""
        exporter = self.exporters.get(ident)
        if exporter is None:
            raise KeyError(f"Unknown manifest format {ident!r}")
        path = self.cache.path(commit_id, exporter)
        return path if path.exists() else None

    async def drain(self) -> None:
        """Wait for every background job to finish."""
        await self.jobs.drain()

    async def _load(self, commit_id: int) -> tuple[CommitTable, ProjectConfig]:
        async with session_scope(self._session_factory) as session:
            commit = await CommitRepository(session).get(commit_id)
            if commit is None:
                raise LookupError(f"Commit {commit_id} not found")
            project = ProjectConfig.model_validate(await ProjectRepository(session).get(commit.project_id))
        return commit, project
