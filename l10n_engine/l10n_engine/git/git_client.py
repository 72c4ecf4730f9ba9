"""Thin git client for reading commits, trees and blobs.

All interaction with the ``git`` binary is done through :func:`subprocess.run`
with explicit timeouts and structured error handling so that callers receive
:class:`GitClientError` exceptions with descriptive messages rather than raw
subprocess failures.
"""

from __future__ import annotations

import logging
import re
import subprocess
from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30  # seconds
DEFAULT_FETCH_TIMEOUT = 300  # seconds

# ---------------------------------------------------------------------------
# Git ref validation
# ---------------------------------------------------------------------------

# Matches hex SHAs (4-40 chars) and common ref patterns like branch names,
# tags, HEAD, HEAD~2, origin/main, etc.
_GIT_SHA_RE = re.compile(r"^[0-9a-fA-F]{4,40}$")
_GIT_REF_RE = re.compile(r"^[a-zA-Z0-9_./@~^{}\-]+$")


def _validate_git_ref(ref: str) -> None:
    """Validate a git ref or SHA to prevent command injection.

    Raises
    ------
    ValueError
        If *ref* is empty, starts with ``-`` or contains characters outside
        the safe ref alphabet.
    """
    if not ref:
        raise ValueError("Git ref cannot be empty")
    if ref.startswith("-"):
        raise ValueError(f"Invalid git ref: {ref!r}")
    if not (_GIT_SHA_RE.match(ref) or _GIT_REF_RE.match(ref)):
        raise ValueError(f"Invalid git ref: {ref!r}")


# ---------------------------------------------------------------------------
# Public types
# ---------------------------------------------------------------------------


class ObjectType(str, Enum):
    """Object kinds reported by ``git ls-tree``."""

    BLOB = "blob"
    TREE = "tree"
    COMMIT = "commit"  # submodule gitlink


class TreeEntry(BaseModel):
    """A single child of a git tree object."""

    mode: str
    object_type: ObjectType
    sha: str
    name: str


class CommitInfo(BaseModel):
    """Metadata of a resolved commit."""

    sha: str
    message: str
    committed_at: datetime


class GitClientError(Exception):
    """Raised when a git operation fails or the repository is invalid."""


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _run_git(
    cmd: list[str],
    repo_path: Path,
    *,
    timeout: int = DEFAULT_TIMEOUT,
    binary: bool = False,
) -> subprocess.CompletedProcess:
    """Execute a git command and return the completed process.

    Parameters
    ----------
    cmd:
        Command list (e.g. ``["git", "rev-parse", "HEAD"]``).
    repo_path:
        Working directory passed to the subprocess.
    timeout:
        Seconds before the process is killed.
    binary:
        When ``True``, stdout is returned as raw bytes (used for blobs).

    Raises
    ------
    GitClientError
        On non-zero exit, timeout, or if the process cannot be started.
    """
    try:
        return subprocess.run(
            cmd,
            cwd=repo_path,
            capture_output=True,
            text=not binary,
            check=True,
            timeout=timeout,
        )
    except subprocess.CalledProcessError as exc:
        stderr = exc.stderr or ""
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", errors="replace")
        raise GitClientError(
            f"git command failed: {' '.join(cmd)}\n" f"Exit code {exc.returncode}: {stderr.strip()}"
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise GitClientError(f"git command timed out after {timeout}s: {' '.join(cmd)}") from exc
    except FileNotFoundError as exc:
        raise GitClientError("git executable not found. Ensure git is installed and on PATH.") from exc


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_repo(repo_path: Path, *, timeout: int = DEFAULT_TIMEOUT) -> None:
    """Verify that *repo_path* is a git repository (bare or with a work tree).

    Raises
    ------
    GitClientError
        If the path does not exist or git does not recognise it.
    """
    if not repo_path.is_dir():
        raise GitClientError(f"Repository path does not exist: {repo_path}")
    _run_git(["git", "rev-parse", "--git-dir"], repo_path, timeout=timeout)


def resolve_commit(repo_path: Path, revision: str, *, timeout: int = DEFAULT_TIMEOUT) -> str | None:
    """Return the full SHA *revision* names, or ``None`` if it is unknown."""
    _validate_git_ref(revision)
    try:
        result = _run_git(
            ["git", "rev-parse", "--verify", "--quiet", f"{revision}^{{commit}}"],
            repo_path,
            timeout=timeout,
        )
    except GitClientError:
        return None
    sha = result.stdout.strip()
    return sha or None


def fetch(repo_path: Path, *, timeout: int = DEFAULT_FETCH_TIMEOUT) -> None:
    """Fetch all remotes so that newly pushed commits become resolvable."""
    logger.info("Fetching remote updates for %s", repo_path)
    _run_git(["git", "fetch", "--all", "--quiet"], repo_path, timeout=timeout)


def get_commit_info(repo_path: Path, sha: str, *, timeout: int = DEFAULT_TIMEOUT) -> CommitInfo:
    """Return the message and committer date of *sha*.

    Raises
    ------
    GitClientError
        If the commit does not exist or git fails.
    """
    _validate_git_ref(sha)
    result = _run_git(
        ["git", "log", "-1", "--format=%H%x00%cI%x00%B", sha],
        repo_path,
        timeout=timeout,
    )
    full_sha, committed_at, message = result.stdout.split("\x00", 2)
    return CommitInfo(
        sha=full_sha.strip(),
        message=message.strip(),
        committed_at=datetime.fromisoformat(committed_at.strip()),
    )


def list_tree(repo_path: Path, tree_ish: str, *, timeout: int = DEFAULT_TIMEOUT) -> list[TreeEntry]:
    """Return the direct children of *tree_ish* (a tree SHA or ``<rev>^{tree}``).

    Uses ``-z`` output so that file names containing tabs or newlines are
    reported verbatim.
    """
    _validate_git_ref(tree_ish)
    result = _run_git(["git", "ls-tree", "-z", tree_ish], repo_path, timeout=timeout)

    entries: list[TreeEntry] = []
    for record in result.stdout.split("\x00"):
        if not record:
            continue
        meta, _, name = record.partition("\t")
        parts = meta.split()
        if len(parts) != 3 or not name:
            logger.warning("Skipping unparseable ls-tree record: %r", record)
            continue
        mode, object_type, sha = parts
        try:
            kind = ObjectType(object_type)
        except ValueError:
            logger.warning("Skipping unknown object type %s for %s", object_type, name)
            continue
        entries.append(TreeEntry(mode=mode, object_type=kind, sha=sha, name=name))
    return entries


def read_blob(repo_path: Path, sha: str, *, timeout: int = DEFAULT_TIMEOUT) -> bytes:
    """Return the raw contents of blob *sha*.

    Raises
    ------
    GitClientError
        If the blob does not exist or git fails.
    """
    _validate_git_ref(sha)
    result = _run_git(["git", "cat-file", "blob", sha], repo_path, binary=True, timeout=timeout)
    return result.stdout
