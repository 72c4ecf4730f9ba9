"""Fan-out of one blob to every extractor that accepts it."""

from __future__ import annotations

import logging
from functools import partial

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from l10n_engine.extractors.base import ExtractionContext
from l10n_engine.extractors.registry import ExtractorRegistry
from l10n_engine.importing.blob_importer import BlobImporter
from l10n_engine.importing.jobs import JobQueue
from l10n_engine.importing.worker_registry import WorkerRegistry
from l10n_engine.models.commit import ImportOptions
from l10n_engine.models.project import ProjectConfig
from l10n_engine.state.database import session_scope
from l10n_engine.state.repository import BlobExtractionRepository

logger = logging.getLogger(__name__)


class ExtractionDispatcher:
    """Routes a blob to its extraction units.

    Every registered extractor not listed in the project's ``skip_imports``
    is offered the blob.  Accepted pairs run in the caller's task when the
    import is inline; otherwise each pair gets a job id that is registered
    with the worker registry before the job is enqueued.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        extractors: ExtractorRegistry,
        importer: BlobImporter,
        registry: WorkerRegistry,
        jobs: JobQueue,
    ) -> None:
        self._session_factory = session_factory
        self._extractors = extractors
        self._importer = importer
        self._registry = registry
        self._jobs = jobs

    async def dispatch(
        self,
        blob_sha: str,
        path: str,
        commit_id: int,
        project: ProjectConfig,
        options: ImportOptions,
    ) -> list[str]:
        """Dispatch *blob_sha* found at *path* and return the scheduled job ids."""
        job_ids: list[str] = []
        context = ExtractionContext(project=project, blob_sha=blob_sha, path=path, commit_id=commit_id)

        for extractor in self._extractors.get_all(exclude=project.skip_imports):
            if options.force:
                async with session_scope(self._session_factory) as session:
                    await BlobExtractionRepository(session, project.id).delete(extractor.ident, blob_sha)

            if extractor.skip(context, options.locale):
                logger.debug("%s skipping %s", extractor.ident, path, extra={"importer": extractor.ident, "path": path})
                continue

            if options.inline:
                await self._importer.perform(extractor.ident, project, blob_sha, path, commit_id, options.locale)
                continue

            job_id = self._jobs.new_job_id()
            await self._registry.add_worker(commit_id, job_id)
            self._jobs.enqueue(
                "blob_import",
                partial(
                    self._importer.perform,
                    extractor.ident,
                    project,
                    blob_sha,
                    path,
                    commit_id,
                    options.locale,
                    job_id=job_id,
                ),
                job_id=job_id,
            )
            job_ids.append(job_id)
        return job_ids
