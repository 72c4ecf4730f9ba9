"""Source tree access used by the commit importer.

The importer only needs four things from source control: resolve a revision
to a tree, fetch remote updates, read a blob, and read commit metadata.
:class:`SourceTreeProvider` captures that surface so the orchestration code
stays independent of the ``git`` binary; :class:`GitSourceTreeProvider` is
the production implementation.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from l10n_engine.git import git_client
from l10n_engine.git.git_client import CommitInfo, ObjectType

logger = logging.getLogger(__name__)


class SourceTree(Protocol):
    """A directory node: named blobs and named sub-trees."""

    def blobs(self) -> dict[str, str]:
        """Return ``{name: blob_sha}`` for the files directly in this tree."""
        ...

    def trees(self) -> dict[str, SourceTree]:
        """Return ``{name: subtree}`` for the directories directly in this tree."""
        ...


class SourceTreeProvider(Protocol):
    """Structural interface for source control access."""

    def resolve(self, revision: str) -> CommitInfo | None:
        """Return commit metadata for *revision*, or ``None`` if unknown."""
        ...

    def fetch(self) -> None:
        """Pull remote updates so that newer revisions can be resolved."""
        ...

    def tree(self, sha: str) -> SourceTree:
        """Return the root tree of commit *sha*."""
        ...

    def read_blob(self, sha: str) -> bytes:
        """Return the raw bytes of blob *sha*."""
        ...


# Maps a repository path to the provider reading it.
ProviderFactory = Callable[[str], SourceTreeProvider]


class GitTree:
    """Lazily listed git tree; children are read on first access."""

    def __init__(self, repo_path: Path, tree_ish: str, timeout: int = git_client.DEFAULT_TIMEOUT) -> None:
        self._repo_path = repo_path
        self._tree_ish = tree_ish
        self._timeout = timeout
        self._blobs: dict[str, str] | None = None
        self._trees: dict[str, GitTree] | None = None

    def _load(self) -> None:
        blobs: dict[str, str] = {}
        trees: dict[str, GitTree] = {}
        for entry in git_client.list_tree(self._repo_path, self._tree_ish, timeout=self._timeout):
            if entry.object_type is ObjectType.BLOB:
                blobs[entry.name] = entry.sha
            elif entry.object_type is ObjectType.TREE:
                trees[entry.name] = GitTree(self._repo_path, entry.sha, self._timeout)
            # submodule gitlinks have no content in this repository
        self._blobs = blobs
        self._trees = trees

    def blobs(self) -> dict[str, str]:
        if self._blobs is None:
            self._load()
        return dict(self._blobs or {})

    def trees(self) -> dict[str, SourceTree]:
        if self._trees is None:
            self._load()
        return dict(self._trees or {})


class GitSourceTreeProvider:
    """:class:`SourceTreeProvider` backed by a local clone.

    Parameters
    ----------
    repo_path:
        Path of the clone.
    timeout:
        Seconds allowed for each local git command.
    fetch_timeout:
        Seconds allowed for ``git fetch``.
    """

    def __init__(
        self,
        repo_path: Path | str,
        *,
        timeout: int = git_client.DEFAULT_TIMEOUT,
        fetch_timeout: int = git_client.DEFAULT_FETCH_TIMEOUT,
    ) -> None:
        self._repo_path = Path(repo_path)
        self._timeout = timeout
        self._fetch_timeout = fetch_timeout

    @property
    def repo_path(self) -> Path:
        return self._repo_path

    def resolve(self, revision: str) -> CommitInfo | None:
        sha = git_client.resolve_commit(self._repo_path, revision, timeout=self._timeout)
        if sha is None:
            return None
        return git_client.get_commit_info(self._repo_path, sha, timeout=self._timeout)

    def fetch(self) -> None:
        git_client.fetch(self._repo_path, timeout=self._fetch_timeout)

    def tree(self, sha: str) -> SourceTree:
        return GitTree(self._repo_path, f"{sha}^{{tree}}", self._timeout)

    def read_blob(self, sha: str) -> bytes:
        return git_client.read_blob(self._repo_path, sha, timeout=self._timeout)


async def resolve_with_fetch(provider: SourceTreeProvider, revision: str) -> CommitInfo | None:
    """Resolve *revision*, fetching remote updates once if it is unknown.

    The provider is synchronous (it shells out to git), so the calls run in
    a worker thread to keep the event loop responsive.
    """
    info = await asyncio.to_thread(provider.resolve, revision)
    if info is not None:
        return info
    logger.info("Revision %s not found locally; fetching", revision)
    await asyncio.to_thread(provider.fetch)
    return await asyncio.to_thread(provider.resolve, revision)
