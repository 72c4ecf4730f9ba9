"""Unit tests for the per-commit worker registry."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest
import pytest_asyncio
from l10n_engine.importing.worker_registry import WorkerRegistry
from l10n_engine.state.database import session_scope
from l10n_engine.state.repository import CommitRepository

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


class DrainRecorder:
    def __init__(self) -> None:
        self.calls: list[int] = []

    async def __call__(self, commit_id: int) -> None:
        self.calls.append(commit_id)


@pytest_asyncio.fixture
async def commit_id(session_factory, make_project) -> int:
    project = await make_project()
    async with session_scope(session_factory) as session:
        commit = await CommitRepository(session).create(
            project.id, "a" * 40, "Initial", datetime(2024, 1, 1, tzinfo=UTC)
        )
    return commit.id


@pytest.fixture
def drained() -> DrainRecorder:
    return DrainRecorder()


@pytest.fixture
def registry(session_factory, drained: DrainRecorder) -> WorkerRegistry:
    return WorkerRegistry(session_factory, on_drained=drained)


async def _loading(session_factory, commit_id: int) -> bool:
    async with session_scope(session_factory) as session:
        commit = await CommitRepository(session).get(commit_id)
    return commit.loading


# ---------------------------------------------------------------------------
# add / remove
# ---------------------------------------------------------------------------


class TestAddWorker:
    @pytest.mark.asyncio
    async def test_add_marks_loading(self, registry, session_factory, commit_id):
        await registry.add_worker(commit_id, "job-1")
        assert await _loading(session_factory, commit_id) is True
        assert await registry.workers(commit_id) == ["job-1"]

    @pytest.mark.asyncio
    async def test_duplicate_token_is_idempotent(self, registry, commit_id):
        await registry.add_worker(commit_id, "job-1")
        await registry.add_worker(commit_id, "job-1")
        assert await registry.worker_count(commit_id) == 1

    @pytest.mark.asyncio
    async def test_unknown_commit_raises(self, registry):
        with pytest.raises(LookupError):
            await registry.add_worker(9999, "job-1")


class TestRemoveWorker:
    @pytest.mark.asyncio
    async def test_last_removal_drains(self, registry, drained, session_factory, commit_id):
        await registry.add_worker(commit_id, "job-1")
        await registry.add_worker(commit_id, "job-2")

        assert await registry.remove_worker(commit_id, "job-1") is False
        assert await _loading(session_factory, commit_id) is True
        assert drained.calls == []

        assert await registry.remove_worker(commit_id, "job-2") is True
        assert await _loading(session_factory, commit_id) is False
        assert drained.calls == [commit_id]

    @pytest.mark.asyncio
    async def test_unknown_token_with_others_outstanding_changes_nothing(self, registry, drained, session_factory, commit_id):
        await registry.add_worker(commit_id, "job-1")
        assert await registry.remove_worker(commit_id, "nope") is False
        assert await registry.workers(commit_id) == ["job-1"]
        assert await _loading(session_factory, commit_id) is True
        assert drained.calls == []

    @pytest.mark.asyncio
    async def test_unknown_token_on_idle_commit_does_not_drain(self, registry, drained, commit_id):
        assert await registry.remove_worker(commit_id, "nope") is False
        assert drained.calls == []

    @pytest.mark.asyncio
    async def test_concurrent_removals_drain_exactly_once(self, registry, drained, session_factory, commit_id):
        tokens = [f"job-{i}" for i in range(12)]
        for token in tokens:
            await registry.add_worker(commit_id, token)

        results = await asyncio.gather(*(registry.remove_worker(commit_id, t) for t in tokens))

        assert sum(results) == 1
        assert drained.calls == [commit_id]
        assert await _loading(session_factory, commit_id) is False
        assert await registry.worker_count(commit_id) == 0

    @pytest.mark.asyncio
    async def test_commit_locks_are_released_when_idle(self, registry, commit_id):
        tokens = [f"job-{i}" for i in range(6)]
        await asyncio.gather(*(registry.add_worker(commit_id, t) for t in tokens))
        assert registry._locks == {}

        await asyncio.gather(*(registry.remove_worker(commit_id, t) for t in tokens))
        assert registry._locks == {}

        with pytest.raises(LookupError):
            await registry.add_worker(9999, "job-1")
        assert registry._locks == {}
        assert registry._lock_users == {}

    @pytest.mark.asyncio
    async def test_drain_then_refill_drains_again(self, registry, drained, commit_id):
        await registry.add_worker(commit_id, "job-1")
        await registry.remove_worker(commit_id, "job-1")
        await registry.add_worker(commit_id, "job-2")
        await registry.remove_worker(commit_id, "job-2")
        assert drained.calls == [commit_id, commit_id]

    @pytest.mark.asyncio
    async def test_missing_commit_returns_false(self, registry, drained):
        assert await registry.remove_worker(9999, "job-1") is False
        assert drained.calls == []


# ---------------------------------------------------------------------------
# clear
# ---------------------------------------------------------------------------


class TestClearWorkers:
    @pytest.mark.asyncio
    async def test_clear_while_loading_recalculates(self, registry, drained, session_factory, commit_id):
        await registry.add_worker(commit_id, "job-1")
        await registry.add_worker(commit_id, "job-2")

        assert await registry.clear_workers(commit_id) is True
        assert await registry.workers(commit_id) == []
        assert await _loading(session_factory, commit_id) is False
        assert drained.calls == [commit_id]

    @pytest.mark.asyncio
    async def test_clear_when_idle_does_not_recalculate(self, registry, drained, commit_id):
        assert await registry.clear_workers(commit_id) is False
        assert drained.calls == []

    @pytest.mark.asyncio
    async def test_late_removal_after_clear_is_harmless(self, registry, drained, commit_id):
        await registry.add_worker(commit_id, "job-1")
        await registry.clear_workers(commit_id)
        assert await registry.remove_worker(commit_id, "job-1") is False
        assert drained.calls == [commit_id]
