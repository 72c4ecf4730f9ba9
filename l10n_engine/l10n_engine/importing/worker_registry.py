"""Per-commit set of outstanding extraction jobs.

The set lives in the ``commit_workers`` table and is mirrored by the commit's
``loading`` flag; every mutation rewrites both in one transaction.  Mutations
for a commit are serialized by an in-process ``asyncio.Lock`` and, on
PostgreSQL, by a ``SELECT ... FOR UPDATE`` on the commit row, so exactly one
caller observes the transition from non-empty to empty.  That caller runs the
``on_drained`` callback once the transaction has committed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from l10n_engine.state.database import session_scope
from l10n_engine.state.repository import CommitRepository, WorkerRepository

logger = logging.getLogger(__name__)

DrainedCallback = Callable[[int], Awaitable[object]]


class WorkerRegistry:
    """Tracks outstanding job tokens per commit.

    Parameters
    ----------
    session_factory:
        Factory for the sessions each mutation runs in.
    on_drained:
        Coroutine called with the commit id after the last outstanding job
        of that commit has been removed (or the set was cleared while
        loading).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        on_drained: DrainedCallback | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._on_drained = on_drained
        # Locks exist only while some caller holds or awaits them.
        self._locks: dict[int, asyncio.Lock] = {}
        self._lock_users: dict[int, int] = {}

    @asynccontextmanager
    async def _locked(self, commit_id: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(commit_id, asyncio.Lock())
        self._lock_users[commit_id] = self._lock_users.get(commit_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[commit_id] -= 1
            if not self._lock_users[commit_id]:
                del self._lock_users[commit_id]
                del self._locks[commit_id]

    async def add_worker(self, commit_id: int, job_id: str) -> None:
        """Record *job_id* as outstanding and mark the commit loading.

        Adding a token that is already present is a no-op on the set.

        Raises
        ------
        LookupError
            If the commit does not exist.
        """
        async with self._locked(commit_id):
            async with session_scope(self._session_factory) as session:
                commits = CommitRepository(session)
                if await commits.get_for_update(commit_id) is None:
                    raise LookupError(f"Commit {commit_id} not found")
                added = await WorkerRepository(session).add(commit_id, job_id)
                await commits.set_loading(commit_id, True)
        if not added:
            logger.debug("Job %s already registered for commit %d", job_id, commit_id, extra={"job_id": job_id})

    async def remove_worker(self, commit_id: int, job_id: str) -> bool:
        """Remove *job_id* from the outstanding set.

        Returns ``True`` when this call emptied the set, in which case the
        ``on_drained`` callback has run.  Removing a token that is not in
        the set changes nothing.
        """
        async with self._locked(commit_id):
            async with session_scope(self._session_factory) as session:
                commits = CommitRepository(session)
                commit = await commits.get_for_update(commit_id)
                if commit is None:
                    logger.warning("Job %s finished for missing commit %d", job_id, commit_id, extra={"job_id": job_id})
                    return False
                workers = WorkerRepository(session)
                removed = await workers.remove(commit_id, job_id)
                remaining = await workers.count(commit_id)
                await commits.set_loading(commit_id, remaining > 0)
            drained = removed and remaining == 0

        if not removed:
            logger.warning(
                "Job %s was not registered for commit %d (%d outstanding)",
                job_id,
                commit_id,
                remaining,
                extra={"job_id": job_id},
            )
        if drained:
            logger.info("Commit %d finished loading", commit_id)
            await self._fire(commit_id)
        return drained

    async def clear_workers(self, commit_id: int) -> bool:
        """Empty the outstanding set and force ``loading`` off.

        Recovery path for jobs that died without deregistering.  If the
        commit was loading, the ``on_drained`` callback runs and ``True`` is
        returned.
        """
        async with self._locked(commit_id):
            async with session_scope(self._session_factory) as session:
                commits = CommitRepository(session)
                commit = await commits.get_for_update(commit_id)
                if commit is None:
                    raise LookupError(f"Commit {commit_id} not found")
                was_loading = commit.loading
                cleared = await WorkerRepository(session).clear(commit_id)
                await commits.set_loading(commit_id, False)

        logger.info("Cleared %d worker(s) from commit %d", cleared, commit_id)
        if was_loading:
            await self._fire(commit_id)
        return was_loading

    async def workers(self, commit_id: int) -> list[str]:
        """Return the outstanding job ids of *commit_id*."""
        async with session_scope(self._session_factory) as session:
            return await WorkerRepository(session).list_jobs(commit_id)

    async def worker_count(self, commit_id: int) -> int:
        async with session_scope(self._session_factory) as session:
            return await WorkerRepository(session).count(commit_id)

    async def _fire(self, commit_id: int) -> None:
        if self._on_drained is None:
            logger.debug("No drain callback registered; commit %d not recalculated", commit_id)
            return
        await self._on_drained(commit_id)
