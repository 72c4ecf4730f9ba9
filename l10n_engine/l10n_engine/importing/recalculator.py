"""Commit readiness recalculation."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from l10n_engine.models.commit import CommitStats
from l10n_engine.models.project import ProjectConfig
from l10n_engine.state.database import session_scope
from l10n_engine.state.repository import CommitRepository, ProjectRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recalculation:
    """Outcome of one recalculation: the new stats and the prior ``ready``."""

    commit_id: int
    project: ProjectConfig
    stats: CommitStats
    ready_was: bool

    @property
    def ready_changed(self) -> bool:
        return self.ready_was != self.stats.ready


class CommitStatsRecalculator:
    """Recomputes and persists a commit's counters and ``ready`` flag.

    The computation reads the translations of every key associated with the
    commit, restricted to the project's required locales and excluding base
    translations.  Running it twice without intervening changes writes the
    same values.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def recalculate(self, commit_id: int) -> Recalculation:
        """Recompute and persist the stats of *commit_id*.

        Raises
        ------
        LookupError
            If the commit does not exist.
        """
        async with session_scope(self._session_factory) as session:
            commits = CommitRepository(session)
            commit = await commits.get(commit_id)
            if commit is None:
                raise LookupError(f"Commit {commit_id} not found")
            project_row = await ProjectRepository(session).get(commit.project_id)
            project = ProjectConfig.model_validate(project_row)

            ready_was = commit.ready
            stats = await commits.compute_stats(commit_id, project.required_locales)
            await commits.save_stats(commit_id, stats)

        logger.info(
            "Recalculated commit %d: %d/%d translations done, ready=%s",
            commit_id,
            stats.translations_done,
            stats.translations_total,
            stats.ready,
            extra={"project_id": project.id},
        )
        return Recalculation(commit_id=commit_id, project=project, stats=stats, ready_was=ready_was)
