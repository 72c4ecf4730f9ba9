"""Cross-commit recalculation and manifest cache maintenance.

Extraction mutates keys and translations that are shared by every commit of
a project, so once one commit finishes loading all of its siblings are
recalculated too.  Readiness transitions invalidate the commit's cached
manifests and, when the commit became ready, schedule their regeneration.
"""

from __future__ import annotations

import logging
from functools import partial

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from l10n_engine.exporters.base import BaseExporter, default_exporters
from l10n_engine.exporters.cache import ManifestCache
from l10n_engine.importing.jobs import JobQueue
from l10n_engine.importing.recalculator import CommitStatsRecalculator, Recalculation
from l10n_engine.models.commit import CommitStats
from l10n_engine.models.project import ProjectConfig
from l10n_engine.state.database import session_scope
from l10n_engine.state.repository import CommitRepository, ProjectRepository, TranslationRepository

logger = logging.getLogger(__name__)


class CascadeTrigger:
    """Runs the work that follows a change to a commit's translation state.

    Parameters
    ----------
    session_factory:
        Factory for the sessions each step runs in.
    recalculator:
        Computes and persists commit stats.
    jobs:
        Queue used for sibling recalculation and manifest regeneration.
    cache:
        On-disk manifest cache.
    exporters:
        Exporters keyed by ident; defaults to the built-in set.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        recalculator: CommitStatsRecalculator,
        jobs: JobQueue,
        cache: ManifestCache,
        exporters: dict[str, BaseExporter] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._recalculator = recalculator
        self._jobs = jobs
        self._cache = cache
        self._exporters = exporters if exporters is not None else default_exporters()

    # ------------------------------------------------------------------
    # Recalculation
    # ------------------------------------------------------------------

    async def recalculate_ready(self, commit_id: int, *, force: bool = False) -> CommitStats:
        """Recalculate *commit_id* and refresh its manifest cache.

        The cache is touched when ``ready`` changed, or when *force* is set
        and the commit is ready.
        """
        result = await self._recalculator.recalculate(commit_id)
        self.compile_and_cache_or_clear(result, force=force and result.stats.ready)
        return result.stats

    async def after_loading(self, commit_id: int) -> list[str]:
        """Last-worker-out sequence for *commit_id*.

        Recalculates the commit in the caller's task, then schedules a
        recalculation of every other commit of the same project.  Returns the
        ids of the scheduled jobs.
        """
        # Forced: the key set can change while ready stays the same.
        await self.recalculate_ready(commit_id, force=True)
        return await self.schedule_siblings(commit_id)

    async def schedule_siblings(self, commit_id: int) -> list[str]:
        async with session_scope(self._session_factory) as session:
            commits = CommitRepository(session)
            commit = await commits.get(commit_id)
            if commit is None:
                raise LookupError(f"Commit {commit_id} not found")
            sibling_ids = [cid for cid in await commits.list_ids_for_project(commit.project_id) if cid != commit_id]

        job_ids = [
            self._jobs.enqueue("recalculate", partial(self.recalculate_ready, sibling_id))
            for sibling_id in sibling_ids
        ]
        if job_ids:
            logger.info("Scheduled recalculation of %d sibling commit(s) of commit %d", len(job_ids), commit_id)
        return job_ids

    async def translation_changed(self, key_id: int) -> list[CommitStats]:
        """Recalculate every commit that contains *key_id*."""
        async with session_scope(self._session_factory) as session:
            commit_ids = await CommitRepository(session).ids_for_key(key_id)
        return [await self.recalculate_ready(commit_id) for commit_id in commit_ids]

    # ------------------------------------------------------------------
    # Manifest cache
    # ------------------------------------------------------------------

    def compile_and_cache_or_clear(self, result: Recalculation, *, force: bool) -> list[str]:
        """Invalidate the commit's cached manifests; regenerate when ready.

        Does nothing unless ``ready`` changed or *force* is set.

        Returns the ids of the scheduled regeneration jobs.
        """
        if not (result.ready_changed or force):
            return []

        self._cache.clear(result.commit_id, self._exporters.values())
        if not result.stats.ready:
            return []

        job_ids = []
        for ident in result.project.cache_manifest_formats:
            exporter = self._exporters.get(ident)
            if exporter is None:
                logger.warning("Unknown manifest format %r in project %s", ident, result.project.name)
                continue
            job_ids.append(
                self._jobs.enqueue("precompile_manifest", partial(self.precompile_manifest, result.commit_id, ident))
            )
        return job_ids

    async def precompile_manifest(self, commit_id: int, ident: str) -> bool:
        """Render and cache the manifest of *commit_id* in format *ident*.

        Returns ``False`` without writing when the commit is no longer ready.
        """
        exporter = self._exporters[ident]
        async with session_scope(self._session_factory) as session:
            commit = await CommitRepository(session).get(commit_id)
            if commit is None or not commit.ready:
                logger.info("Commit %d is not ready; skipping %s manifest", commit_id, ident)
                return False
            project = ProjectConfig.model_validate(await ProjectRepository(session).get(commit.project_id))
            locales = [project.base_locale, *project.translation_locales()]
            manifest = await TranslationRepository(session).manifest_for_commit(commit_id, locales)

        self._cache.write(commit_id, exporter, exporter.render(manifest))
        return True
