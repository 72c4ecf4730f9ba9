"""Shared fixtures for l10n_engine tests.

Tests run against a file-backed SQLite database in ``tmp_path`` so that
concurrent sessions each get their own connection, and against an in-memory
source repository instead of the ``git`` binary.
"""

from __future__ import annotations

import hashlib
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path

import pytest
import pytest_asyncio
from l10n_engine.config import Settings
from l10n_engine.git.git_client import CommitInfo
from l10n_engine.importing.commit_service import CommitService
from l10n_engine.importing.jobs import JobQueue
from l10n_engine.models.project import ProjectConfig
from l10n_engine.state.database import session_scope
from l10n_engine.state.repository import ProjectRepository
from l10n_engine.state.sqlite_adapter import create_local_tables, get_local_engine
from sqlalchemy.ext.asyncio import async_sessionmaker

# ---------------------------------------------------------------------------
# In-memory source repository
# ---------------------------------------------------------------------------


def blob_sha(content: bytes) -> str:
    return hashlib.sha1(content).hexdigest()


class FakeTree:
    """Directory node built from ``{"/path/to/file": content}``."""

    def __init__(self) -> None:
        self._blobs: dict[str, str] = {}
        self._trees: dict[str, FakeTree] = {}

    @classmethod
    def from_files(cls, files: dict[str, bytes]) -> FakeTree:
        root = cls()
        for path, content in files.items():
            *dirs, name = path.strip("/").split("/")
            node = root
            for part in dirs:
                node = node._trees.setdefault(part, cls())
            node._blobs[name] = blob_sha(content)
        return root

    def blobs(self) -> dict[str, str]:
        return dict(self._blobs)

    def trees(self) -> dict[str, FakeTree]:
        return dict(self._trees)


class FakeRepository:
    """Source tree provider holding commits in memory.

    Commits added with ``remote=True`` only become resolvable after
    :meth:`fetch`.
    """

    def __init__(self) -> None:
        self.commits: dict[str, tuple[CommitInfo, dict[str, bytes]]] = {}
        self.remote: dict[str, tuple[CommitInfo, dict[str, bytes]]] = {}
        self.blobs: dict[str, bytes] = {}
        self.fetches = 0
        self.reads: Counter[str] = Counter()

    def add_commit(
        self,
        files: dict[str, str | bytes],
        *,
        sha: str | None = None,
        message: str = "Update strings",
        remote: bool = False,
    ) -> str:
        encoded = {path: c.encode("utf-8") if isinstance(c, str) else c for path, c in files.items()}
        for content in encoded.values():
            self.blobs[blob_sha(content)] = content
        sha = (sha or blob_sha(repr(sorted(encoded.items())).encode())).ljust(40, "0")
        info = CommitInfo(sha=sha, message=message, committed_at=datetime(2024, 3, 1, 12, 0, tzinfo=UTC))
        (self.remote if remote else self.commits)[sha] = (info, encoded)
        return sha

    def resolve(self, revision: str) -> CommitInfo | None:
        matches = [info for sha, (info, _) in self.commits.items() if sha.startswith(revision.lower())]
        return matches[0] if len(matches) == 1 else None

    def fetch(self) -> None:
        self.fetches += 1
        self.commits.update(self.remote)
        self.remote.clear()

    def tree(self, sha: str) -> FakeTree:
        return FakeTree.from_files(self.commits[sha][1])

    def read_blob(self, sha: str) -> bytes:
        self.reads[sha] += 1
        return self.blobs[sha]


# ---------------------------------------------------------------------------
# Database and service fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path: Path):
    engine = get_local_engine(tmp_path / "state.db")
    await create_local_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def repo() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(cache_dir=tmp_path / "cache", max_concurrent_jobs=4)


@pytest_asyncio.fixture
async def service(session_factory, repo: FakeRepository, settings: Settings):
    svc = CommitService(
        session_factory,
        settings,
        providers=lambda _path: repo,
        jobs=JobQueue(settings.max_concurrent_jobs),
    )
    yield svc
    await svc.jobs.shutdown()


@pytest.fixture
def make_project(session_factory):
    """Create a project row and return its :class:`ProjectConfig`."""

    async def _make(name: str = "web", **kwargs) -> ProjectConfig:
        kwargs.setdefault("targeted_locales", ["en", "fr", "de"])
        kwargs.setdefault("required_locales", ["fr", "de"])
        async with session_scope(session_factory) as session:
            row = await ProjectRepository(session).create(name, f"/repos/{name}", **kwargs)
        return ProjectConfig.model_validate(row)

    return _make
