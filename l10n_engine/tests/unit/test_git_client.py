"""Tests for the git client and the git-backed source tree provider.

Most tests drive a throwaway repository created with the real ``git``
binary; error handling is exercised by patching ``subprocess.run``.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from l10n_engine.git import git_client
from l10n_engine.git.git_client import GitClientError, ObjectType, _validate_git_ref
from l10n_engine.git.source_tree import GitSourceTreeProvider, resolve_with_fetch

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")

_GIT_ENV = {
    "GIT_AUTHOR_NAME": "Test",
    "GIT_AUTHOR_EMAIL": "test@example.com",
    "GIT_COMMITTER_NAME": "Test",
    "GIT_COMMITTER_EMAIL": "test@example.com",
    "GIT_COMMITTER_DATE": "2024-03-01T12:00:00+00:00",
    "GIT_AUTHOR_DATE": "2024-03-01T12:00:00+00:00",
}


def _git(repo: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True,
        env={**os.environ, **_GIT_ENV},
    )
    return result.stdout.strip()


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    repo = tmp_path / "repo"
    (repo / "config" / "locales").mkdir(parents=True)
    (repo / "config" / "locales" / "en.yml").write_text("en:\n  greeting: Hello\n", encoding="utf-8")
    (repo / "README.md").write_text("readme\n", encoding="utf-8")
    _git(repo, "init", "--quiet")
    _git(repo, "add", ".")
    _git(repo, "commit", "--quiet", "-m", "Add greeting\n\nLonger body.")
    return repo


# ---------------------------------------------------------------------------
# Ref validation
# ---------------------------------------------------------------------------


class TestValidateGitRef:
    @pytest.mark.parametrize("ref", ["abcd", "a" * 40, "HEAD", "HEAD~2", "origin/main", "abc^{tree}"])
    def test_accepts(self, ref: str):
        _validate_git_ref(ref)

    @pytest.mark.parametrize("ref", ["", "--upload-pack=evil", "-n", "main; rm -rf /", "a b"])
    def test_rejects(self, ref: str):
        with pytest.raises(ValueError):
            _validate_git_ref(ref)


# ---------------------------------------------------------------------------
# Real repository
# ---------------------------------------------------------------------------


@requires_git
class TestGitClient:
    def test_resolve_commit(self, git_repo: Path):
        head = _git(git_repo, "rev-parse", "HEAD")
        assert git_client.resolve_commit(git_repo, head[:8]) == head
        assert git_client.resolve_commit(git_repo, "0" * 40) is None

    def test_get_commit_info(self, git_repo: Path):
        head = _git(git_repo, "rev-parse", "HEAD")
        info = git_client.get_commit_info(git_repo, head)
        assert info.sha == head
        assert info.message == "Add greeting\n\nLonger body."
        assert info.committed_at.isoformat() == "2024-03-01T12:00:00+00:00"

    def test_list_tree_and_read_blob(self, git_repo: Path):
        entries = {e.name: e for e in git_client.list_tree(git_repo, "HEAD^{tree}")}
        assert entries["README.md"].object_type is ObjectType.BLOB
        assert entries["config"].object_type is ObjectType.TREE
        assert git_client.read_blob(git_repo, entries["README.md"].sha) == b"readme\n"

    def test_validate_repo(self, git_repo: Path, tmp_path: Path):
        git_client.validate_repo(git_repo)
        with pytest.raises(GitClientError, match="does not exist"):
            git_client.validate_repo(tmp_path / "missing")

    def test_provider_walks_nested_trees(self, git_repo: Path):
        provider = GitSourceTreeProvider(git_repo)
        info = provider.resolve("HEAD")
        root = provider.tree(info.sha)

        assert sorted(root.blobs()) == ["README.md"]
        locales = root.trees()["config"].trees()["locales"]
        sha = locales.blobs()["en.yml"]
        assert provider.read_blob(sha) == b"en:\n  greeting: Hello\n"


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


class TestRunGitFailures:
    def test_non_zero_exit_becomes_client_error(self, tmp_path: Path):
        failure = subprocess.CalledProcessError(128, ["git"], stderr="fatal: bad object")
        with patch("l10n_engine.git.git_client.subprocess.run", side_effect=failure):
            with pytest.raises(GitClientError, match="bad object"):
                git_client.read_blob(tmp_path, "a" * 40)

    def test_timeout_becomes_client_error(self, tmp_path: Path):
        timeout = subprocess.TimeoutExpired(["git"], 30)
        with patch("l10n_engine.git.git_client.subprocess.run", side_effect=timeout):
            with pytest.raises(GitClientError, match="timed out"):
                git_client.fetch(tmp_path)

    def test_missing_binary(self, tmp_path: Path):
        with patch("l10n_engine.git.git_client.subprocess.run", side_effect=FileNotFoundError()):
            with pytest.raises(GitClientError, match="not found"):
                git_client.list_tree(tmp_path, "HEAD")

    def test_unknown_revision_resolves_to_none(self, tmp_path: Path):
        failure = subprocess.CalledProcessError(1, ["git"], stderr="")
        with patch("l10n_engine.git.git_client.subprocess.run", side_effect=failure):
            assert git_client.resolve_commit(tmp_path, "abcd") is None

    def test_unparseable_ls_tree_records_are_skipped(self, tmp_path: Path):
        stdout = "100644 blob aaaa\tok.yml\x00garbage\x00160000 commit bbbb\tsub\x00"
        completed = MagicMock(stdout=stdout)
        with patch("l10n_engine.git.git_client.subprocess.run", return_value=completed):
            entries = git_client.list_tree(tmp_path, "HEAD")
        assert [(e.name, e.object_type) for e in entries] == [
            ("ok.yml", ObjectType.BLOB),
            ("sub", ObjectType.COMMIT),
        ]


class TestProviderTimeouts:
    def test_configured_timeouts_reach_git(self, tmp_path: Path):
        completed = MagicMock(stdout="100644 blob aaaa\ten.yml\x00")
        provider = GitSourceTreeProvider(tmp_path, timeout=7, fetch_timeout=90)
        with patch("l10n_engine.git.git_client.subprocess.run", return_value=completed) as run:
            provider.tree("a" * 40).blobs()
            provider.read_blob("a" * 40)
            provider.fetch()

        timeouts = [(call.args[0][1], call.kwargs["timeout"]) for call in run.call_args_list]
        assert timeouts == [("ls-tree", 7), ("cat-file", 7), ("fetch", 90)]

    def test_timeout_message_names_configured_limit(self, tmp_path: Path):
        timeout = subprocess.TimeoutExpired(["git"], 3)
        provider = GitSourceTreeProvider(tmp_path, timeout=3)
        with patch("l10n_engine.git.git_client.subprocess.run", side_effect=timeout):
            with pytest.raises(GitClientError, match="after 3s"):
                provider.read_blob("a" * 40)


class TestResolveWithFetch:
    def test_fetches_once_when_unknown(self):
        provider = MagicMock()
        provider.resolve.side_effect = [None, "found"]

        assert asyncio.run(resolve_with_fetch(provider, "abcd")) == "found"
        provider.fetch.assert_called_once_with()
        assert provider.resolve.call_count == 2

    def test_known_revision_skips_fetch(self):
        provider = MagicMock()
        provider.resolve.return_value = "found"

        assert asyncio.run(resolve_with_fetch(provider, "abcd")) == "found"
        provider.fetch.assert_not_called()
