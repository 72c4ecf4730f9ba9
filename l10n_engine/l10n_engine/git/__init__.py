"""Git integration for reading commit trees and blobs."""

from __future__ import annotations

from l10n_engine.git.git_client import (
    CommitInfo,
    GitClientError,
    ObjectType,
    TreeEntry,
    fetch,
    get_commit_info,
    list_tree,
    read_blob,
    resolve_commit,
    validate_repo,
)
from l10n_engine.git.source_tree import (
    GitSourceTreeProvider,
    GitTree,
    ProviderFactory,
    SourceTree,
    SourceTreeProvider,
    resolve_with_fetch,
)

__all__ = [
    "CommitInfo",
    "GitClientError",
    "GitSourceTreeProvider",
    "GitTree",
    "ProviderFactory",
    "ObjectType",
    "SourceTree",
    "SourceTreeProvider",
    "TreeEntry",
    "fetch",
    "get_commit_info",
    "list_tree",
    "read_blob",
    "resolve_commit",
    "resolve_with_fetch",
    "validate_repo",
]
