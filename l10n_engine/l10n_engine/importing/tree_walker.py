"""Depth-first walk over a commit's source tree."""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from l10n_engine.git.source_tree import SourceTree
from l10n_engine.importing.dispatcher import ExtractionDispatcher
from l10n_engine.models.commit import ImportOptions
from l10n_engine.models.project import ProjectConfig
from l10n_engine.state.database import session_scope
from l10n_engine.state.repository import BlobRepository

logger = logging.getLogger(__name__)


class TreeWalker:
    """Visits every blob under a tree and hands it to the dispatcher.

    Paths are absolute within the repository (``/config/locales/en.yml``).
    An explicit stack replaces recursion so tree depth is unbounded.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: ExtractionDispatcher,
    ) -> None:
        self._session_factory = session_factory
        self._dispatcher = dispatcher

    async def walk(
        self,
        root: SourceTree,
        commit_id: int,
        project: ProjectConfig,
        options: ImportOptions,
    ) -> list[str]:
        """Walk *root* and return the ids of every job scheduled."""
        job_ids: list[str] = []
        blobs_seen = 0
        stack: list[tuple[str, SourceTree]] = [("", root)]

        while stack:
            prefix, node = stack.pop()
            blobs = await asyncio.to_thread(node.blobs)
            for name, sha in sorted(blobs.items()):
                path = f"{prefix}/{name}"
                async with session_scope(self._session_factory) as session:
                    await BlobRepository(session, project.id).find_or_create(sha)
                job_ids.extend(await self._dispatcher.dispatch(sha, path, commit_id, project, options))
                blobs_seen += 1

            subtrees = await asyncio.to_thread(node.trees)
            # pushed in reverse; sub-trees pop in name order
            for name, subtree in sorted(subtrees.items(), reverse=True):
                stack.append((f"{prefix}/{name}", subtree))

        logger.info(
            "Walked %d blob(s) for commit %d; scheduled %d job(s)",
            blobs_seen,
            commit_id,
            len(job_ids),
            extra={"project_id": project.id},
        )
        return job_ids
