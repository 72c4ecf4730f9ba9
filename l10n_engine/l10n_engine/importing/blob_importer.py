"""Extraction unit: one (blob, extractor) pair for one commit.

A unit reads the blob, hands it to the extractor, persists the keys and
translations it finds and associates them with the commit.  Units scheduled
in the background always deregister from the worker registry when they
finish, whatever the outcome, so a failing unit can never leave its commit
stuck in ``loading``.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from l10n_engine.extractors.base import ExtractedString, ExtractionContext, ExtractionError
from l10n_engine.extractors.registry import ExtractorRegistry
from l10n_engine.git.source_tree import ProviderFactory
from l10n_engine.importing.worker_registry import WorkerRegistry
from l10n_engine.models.project import ProjectConfig
from l10n_engine.state.database import session_scope
from l10n_engine.state.repository import (
    BlobExtractionRepository,
    CommitRepository,
    KeyRepository,
    TranslationRepository,
)

logger = logging.getLogger(__name__)


class BlobImporter:
    """Runs extraction units.

    Parameters
    ----------
    session_factory:
        Each unit runs in its own session from this factory.
    providers:
        Returns the source of blob content for a repository path.
    extractors:
        Registry the unit looks its extractor up in.
    registry:
        Worker registry that background units deregister from.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        providers: ProviderFactory,
        extractors: ExtractorRegistry,
        registry: WorkerRegistry,
    ) -> None:
        self._session_factory = session_factory
        self._providers = providers
        self._extractors = extractors
        self._registry = registry

    async def perform(
        self,
        importer: str,
        project: ProjectConfig,
        blob_sha: str,
        path: str,
        commit_id: int,
        locale: str | None = None,
        *,
        job_id: str | None = None,
    ) -> int:
        """Extract one blob for one commit and return the number of keys.

        Failures are logged and reported as zero keys; they never propagate
        to sibling units.  When *job_id* is given the unit removes itself
        from the worker registry before returning.
        """
        log_extra = {"job_id": job_id, "importer": importer, "path": path, "project_id": project.id}
        try:
            return await self._import(importer, project, blob_sha, path, commit_id, locale)
        except ExtractionError as exc:
            logger.warning("Could not extract %s with %s: %s", path, importer, exc, extra=log_extra)
            return 0
        except Exception:
            logger.exception("Extraction of %s with %s failed", path, importer, extra=log_extra)
            return 0
        finally:
            if job_id is not None:
                await self._registry.remove_worker(commit_id, job_id)

    async def _import(
        self,
        importer: str,
        project: ProjectConfig,
        blob_sha: str,
        path: str,
        commit_id: int,
        locale: str | None,
    ) -> int:
        extractor = self._extractors.get(importer)
        if extractor is None:
            raise ExtractionError(f"No extractor registered as {importer!r}")

        translating = locale is not None and locale != project.base_locale

        if not translating:
            async with session_scope(self._session_factory) as session:
                cached = await BlobExtractionRepository(session, project.id).get(importer, blob_sha)
            if cached is not None:
                logger.debug("%s already scanned %s; reusing %d key(s)", importer, blob_sha, len(cached))
                async with session_scope(self._session_factory) as session:
                    await CommitRepository(session).add_keys(commit_id, cached)
                return len(cached)

        provider = self._providers(project.repository_path)
        content = await asyncio.to_thread(provider.read_blob, blob_sha)
        context = ExtractionContext(project=project, blob_sha=blob_sha, path=path, commit_id=commit_id)
        strings = extractor.extract(context, content, locale)

        async with session_scope(self._session_factory) as session:
            if translating:
                return await self._import_locale(session, project, strings, locale, commit_id)
            key_ids = await self._import_base(session, project, strings, path, importer)
            await BlobExtractionRepository(session, project.id).record(importer, blob_sha, key_ids)
            await CommitRepository(session).add_keys(commit_id, key_ids)

        logger.info("Imported %d key(s) from %s with %s", len(key_ids), path, importer)
        return len(key_ids)

    async def _import_base(
        self,
        session: AsyncSession,
        project: ProjectConfig,
        strings: list[ExtractedString],
        path: str,
        importer: str,
    ) -> list[int]:
        keys = KeyRepository(session, project.id)
        translations = TranslationRepository(session)
        base = project.base_locale
        key_ids: list[int] = []
        for string in strings:
            if project.skip_key(string.key):
                continue
            key, changed = await keys.upsert(string.key, string.source_copy, source_path=path, importer=importer)
            await translations.ensure(key.id, base, base, string.source_copy, source_changed=changed)
            for locale in project.translation_locales():
                await translations.ensure(key.id, locale, base, string.source_copy, source_changed=changed)
            key_ids.append(key.id)
        return key_ids

    async def _import_locale(
        self,
        session: AsyncSession,
        project: ProjectConfig,
        strings: list[ExtractedString],
        locale: str,
        commit_id: int,
    ) -> int:
        """Store copy written in *locale* as translations of existing keys.

        Keys the base scan never produced are ignored; imported copy counts
        as translated and approved.
        """
        keys = KeyRepository(session, project.id)
        translations = TranslationRepository(session)
        key_ids: list[int] = []
        for string in strings:
            if project.skip_key(string.key):
                continue
            key = await keys.get(string.key)
            if key is None or await translations.get(key.id, locale) is None:
                logger.debug("No %s translation slot for key %r", locale, string.key)
                continue
            await translations.update(key.id, locale, copy=string.source_copy, approved=True)
            key_ids.append(key.id)
        await CommitRepository(session).add_keys(commit_id, key_ids)
        logger.info("Imported %d %s translation(s)", len(key_ids), locale)
        return len(key_ids)
