"""Unit tests for the tree walker and the extraction dispatcher."""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime

import pytest
import pytest_asyncio
from l10n_engine.extractors import default_registry
from l10n_engine.importing.dispatcher import ExtractionDispatcher
from l10n_engine.importing.jobs import JobQueue
from l10n_engine.importing.tree_walker import TreeWalker
from l10n_engine.importing.worker_registry import WorkerRegistry
from l10n_engine.models.commit import ImportOptions
from l10n_engine.state.database import session_scope
from l10n_engine.state.repository import BlobExtractionRepository, BlobRepository, CommitRepository

FILES = {
    "/README.md": b"readme",
    "/config/locales/en.yml": b"en:\n  greeting: Hello\n",
    "/config/locales/fr.yml": b"fr:\n  greeting: Bonjour\n",
    "/config/locales/views/en.yml": b"en:\n  title: Title\n",
    "/web/locales/en.json": b'{"save": "Save"}',
}


def blob_sha(content: bytes) -> str:
    return hashlib.sha1(content).hexdigest()


class RecordingImporter:
    """Stands in for :class:`BlobImporter`; records each perform call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str | None, str | None]] = []

    async def perform(self, importer, project, sha, path, commit_id, locale=None, *, job_id=None) -> int:
        self.calls.append((importer, path, locale, job_id))
        return 0


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def project(make_project):
    return await make_project()


@pytest_asyncio.fixture
async def commit_id(session_factory, project) -> int:
    async with session_scope(session_factory) as session:
        commit = await CommitRepository(session).create(
            project.id, "a" * 40, "Initial", datetime(2024, 1, 1, tzinfo=UTC)
        )
    return commit.id


@pytest.fixture
def tree(repo):
    return repo.tree(repo.add_commit(FILES))


@pytest.fixture
def importer() -> RecordingImporter:
    return RecordingImporter()


@pytest.fixture
def registry(session_factory) -> WorkerRegistry:
    return WorkerRegistry(session_factory)


@pytest.fixture
def jobs() -> JobQueue:
    return JobQueue()


@pytest.fixture
def walker(session_factory, importer, registry, jobs) -> TreeWalker:
    dispatcher = ExtractionDispatcher(session_factory, default_registry(), importer, registry, jobs)
    return TreeWalker(session_factory, dispatcher)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestTreeWalker:
    @pytest.mark.asyncio
    async def test_inline_walk_visits_base_files_depth_first(self, walker, tree, importer, project, commit_id):
        job_ids = await walker.walk(tree, commit_id, project, ImportOptions(inline=True))

        assert job_ids == []
        assert [(ident, path) for ident, path, _, _ in importer.calls] == [
            ("yaml", "/config/locales/en.yml"),
            ("yaml", "/config/locales/views/en.yml"),
            ("json", "/web/locales/en.json"),
        ]

    @pytest.mark.asyncio
    async def test_every_blob_is_recorded(self, walker, tree, session_factory, project, commit_id):
        await walker.walk(tree, commit_id, project, ImportOptions(inline=True))

        async with session_scope(session_factory) as session:
            assert await BlobRepository(session, project.id).count() == len(FILES)

    @pytest.mark.asyncio
    async def test_locale_walk_selects_locale_files(self, walker, tree, importer, project, commit_id):
        await walker.walk(tree, commit_id, project, ImportOptions(locale="fr", inline=True))

        assert [(ident, path, locale) for ident, path, locale, _ in importer.calls] == [
            ("yaml", "/config/locales/fr.yml", "fr"),
        ]

    @pytest.mark.asyncio
    async def test_background_walk_registers_workers(self, walker, tree, importer, registry, jobs, project, commit_id):
        job_ids = await walker.walk(tree, commit_id, project, ImportOptions())

        assert len(job_ids) == 3
        assert await registry.workers(commit_id) == sorted(job_ids)

        await jobs.drain()
        assert sorted(job_id for *_, job_id in importer.calls) == sorted(job_ids)


class TestExtractionDispatcher:
    @pytest.mark.asyncio
    async def test_skip_imports_excludes_extractor(
        self, session_factory, importer, registry, jobs, make_project, commit_id
    ):
        project = await make_project("ios", skip_imports=["yaml"])
        dispatcher = ExtractionDispatcher(session_factory, default_registry(), importer, registry, jobs)

        await dispatcher.dispatch("b" * 40, "/en.yml", commit_id, project, ImportOptions(inline=True))

        assert importer.calls == []

    @pytest.mark.asyncio
    async def test_skip_paths_respected(self, session_factory, importer, registry, jobs, make_project, commit_id):
        project = await make_project("ios", skip_paths=["/vendor"])
        dispatcher = ExtractionDispatcher(session_factory, default_registry(), importer, registry, jobs)

        await dispatcher.dispatch("b" * 40, "/vendor/en.yml", commit_id, project, ImportOptions(inline=True))

        assert importer.calls == []

    @pytest.mark.asyncio
    async def test_force_deletes_markers(self, session_factory, importer, registry, jobs, project, commit_id):
        sha = blob_sha(FILES["/README.md"])
        async with session_scope(session_factory) as session:
            await BlobExtractionRepository(session, project.id).record("yaml", sha, [1])
        dispatcher = ExtractionDispatcher(session_factory, default_registry(), importer, registry, jobs)

        # no extractor accepts README.md, but its markers are still dropped
        await dispatcher.dispatch(sha, "/README.md", commit_id, project, ImportOptions(inline=True, force=True))

        async with session_scope(session_factory) as session:
            assert await BlobExtractionRepository(session, project.id).get("yaml", sha) is None
