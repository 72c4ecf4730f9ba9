"""Commit import orchestration: tree walk, extraction fan-out and readiness."""

from l10n_engine.importing.blob_importer import BlobImporter
from l10n_engine.importing.cascade import CascadeTrigger
from l10n_engine.importing.commit_service import CommitNotFoundError, CommitService
from l10n_engine.importing.dispatcher import ExtractionDispatcher
from l10n_engine.importing.jobs import JobQueue
from l10n_engine.importing.recalculator import CommitStatsRecalculator, Recalculation
from l10n_engine.importing.tree_walker import TreeWalker
from l10n_engine.importing.worker_registry import WorkerRegistry

__all__ = [
    "BlobImporter",
    "CascadeTrigger",
    "CommitNotFoundError",
    "CommitService",
    "CommitStatsRecalculator",
    "ExtractionDispatcher",
    "JobQueue",
    "Recalculation",
    "TreeWalker",
    "WorkerRegistry",
]
