"""l10n CLI application -- Typer-based operator interface.

Provides commands for registering projects, creating commits, (re)importing
their strings, recording translations and inspecting readiness.  Human
readable output goes to *stderr* via Rich; ``--json`` switches to
machine-readable output on *stdout*.

Background extraction jobs run in-process, so every command waits for the
job queue to drain before exiting.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, TypeVar

import typer
from rich.console import Console

from l10n_engine.cli.display import (
    display_commit_list,
    display_commit_status,
    display_project_list,
    display_validation_errors,
)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="l10n",
    help="Localization commit import and readiness tracking.",
    no_args_is_help=True,
)
console = Console(stderr=True)

# Mutable global options populated by the Typer callback.
_json_output: bool = False


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output  # noqa: PLW0603
    _json_output = json_mode


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, sort_keys=True, default=str) + "\n")


def _commit_payload(commit: Any) -> dict[str, Any]:
    return {
        "id": commit.id,
        "project_id": commit.project_id,
        "revision": commit.revision,
        "message": commit.message,
        "committed_at": commit.committed_at,
        "priority": commit.priority,
        "due_date": commit.due_date,
        "description": commit.description,
        "loading": commit.loading,
        "ready": commit.ready,
        "strings_total": commit.strings_total,
        "translations_total": commit.translations_total,
        "translations_done": commit.translations_done,
        "translations_new": commit.translations_new,
        "translations_pending": commit.translations_pending,
        "words_new": commit.words_new,
        "words_pending": commit.words_pending,
    }


def _parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD string into a :class:`date`, raising on failure."""
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        console.print(f"[red]Invalid date '{value}': {exc}[/red]")
        raise typer.Exit(code=3) from exc


@asynccontextmanager
async def _open_service() -> AsyncIterator[Any]:
    """Yield a :class:`CommitService` bound to the configured database.

    Tables are created on SQLite so that a fresh checkout works without
    migrations.  Pending jobs are drained before the engine is disposed.
    """
    from l10n_engine.config import load_settings
    from l10n_engine.git.source_tree import GitSourceTreeProvider
    from l10n_engine.importing.commit_service import CommitService
    from l10n_engine.logging_config import configure_logging
    from l10n_engine.state.database import dispose_engine, get_engine, get_session_factory, is_sqlite
    from l10n_engine.state.sqlite_adapter import create_local_tables

    settings = load_settings()
    configure_logging(settings)

    engine = get_engine(settings.database_url, settings.database_pool_size, settings.database_max_overflow)
    try:
        if is_sqlite(engine):
            await create_local_tables(engine)
        service = CommitService(
            get_session_factory(engine),
            settings,
            providers=lambda path: GitSourceTreeProvider(
                settings.repos_root / path,
                timeout=settings.git_timeout_seconds,
                fetch_timeout=settings.git_fetch_timeout_seconds,
            ),
        )
        try:
            yield service
            await service.drain()
        finally:
            await service.jobs.shutdown()
    finally:
        await dispose_engine(engine)


def _run(work: Callable[[Any], Awaitable[T]]) -> T:
    """Run *work(service)* to completion, mapping domain errors to exit codes."""
    from l10n_engine.git.git_client import GitClientError
    from l10n_engine.importing.commit_service import CommitNotFoundError
    from l10n_engine.models.commit import CommitValidationError

    async def _main() -> T:
        async with _open_service() as service:
            return await work(service)

    try:
        return asyncio.run(_main())
    except CommitValidationError as exc:
        if _json_output:
            _emit_json({"errors": exc.errors})
        else:
            display_validation_errors(console, exc.errors)
        raise typer.Exit(code=1) from exc
    except (CommitNotFoundError, GitClientError) as exc:
        console.print(str(exc), style="red", markup=False)
        raise typer.Exit(code=1) from exc
    except (LookupError, ValueError) as exc:
        message = exc.args[0] if exc.args else str(exc)
        console.print(message, style="red", markup=False)
        raise typer.Exit(code=1) from exc


async def _resolve_commit(service: Any, project_name: str, revision: str) -> Any:
    """Return the commit of *project_name* whose revision starts with *revision*."""
    from l10n_engine.state.database import session_scope
    from l10n_engine.state.repository import CommitRepository, ProjectRepository

    async with session_scope(service.session_factory) as session:
        project = await ProjectRepository(session).get_by_name(project_name)
        if project is None:
            raise LookupError(f"Project {project_name!r} not found")
        commit = await CommitRepository(session).get_by_revision(project.id, revision)
        if commit is None:
            raise LookupError(f"No commit of {project_name} matches {revision!r}")
        return commit


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_db() -> None:
    """Create the state database tables (SQLite only)."""

    async def _work(service: Any) -> None:
        return None

    _run(_work)
    console.print("[green]Database ready.[/green]")


@app.command("create-project")
def create_project(
    name: str = typer.Argument(..., help="Unique project name."),
    repository_path: str = typer.Argument(..., help="Repository path, relative to L10N_REPOS_ROOT."),
    base_locale: str = typer.Option("en", "--base-locale", help="Locale the source copy is written in."),
    targeted: list[str] = typer.Option([], "--targeted", "-t", help="Targeted locale (repeatable)."),
    required: list[str] = typer.Option(
        [], "--required", "-r", help="Required locale (repeatable); defaults to all targeted."
    ),
    skip_import: list[str] = typer.Option([], "--skip-import", help="Extractor ident to disable (repeatable)."),
    skip_path: list[str] = typer.Option([], "--skip-path", help="Path prefix never scanned (repeatable)."),
    only_path: list[str] = typer.Option([], "--only-path", help="Restrict scanning to this prefix (repeatable)."),
    cache_format: list[str] = typer.Option(
        [], "--cache-format", help="Manifest format to precompile when ready (repeatable)."
    ),
) -> None:
    """Register a project and its locale settings."""
    from l10n_engine.models.project import ProjectConfig
    from l10n_engine.state.database import session_scope
    from l10n_engine.state.repository import ProjectRepository

    targeted_locales = list(dict.fromkeys([base_locale, *targeted]))

    async def _work(service: Any) -> Any:
        async with session_scope(service.session_factory) as session:
            row = await ProjectRepository(session).create(
                name,
                repository_path,
                base_locale=base_locale,
                targeted_locales=targeted_locales,
                required_locales=required or None,
                skip_imports=skip_import,
                skip_paths=skip_path,
                only_paths=only_path,
                cache_manifest_formats=cache_format,
            )
        return ProjectConfig.model_validate(row)

    project = _run(_work)
    if _json_output:
        _emit_json(project.model_dump())
    else:
        console.print(f"[green]Created project[/green] [bold]{project.name}[/bold] (id {project.id})")


@app.command("projects")
def list_projects() -> None:
    """List registered projects."""
    from l10n_engine.models.project import ProjectConfig
    from l10n_engine.state.database import session_scope
    from l10n_engine.state.repository import ProjectRepository

    async def _work(service: Any) -> list[Any]:
        async with session_scope(service.session_factory) as session:
            return await ProjectRepository(session).list_all()

    projects = _run(_work)
    if _json_output:
        _emit_json([ProjectConfig.model_validate(p).model_dump() for p in projects])
    else:
        display_project_list(console, projects)


# ---------------------------------------------------------------------------
# Commits
# ---------------------------------------------------------------------------


@app.command("create-commit")
def create_commit(
    project_name: str = typer.Argument(..., help="Project the commit belongs to."),
    revision: str = typer.Argument(..., help="Commit SHA (abbreviated or full)."),
    message: str | None = typer.Option(None, "--message", "-m", help="Override the commit message."),
    priority: int | None = typer.Option(None, "--priority", help="0 (highest) to 3 (lowest)."),
    due_date: str | None = typer.Option(None, "--due-date", help="Due date (YYYY-MM-DD)."),
    description: str | None = typer.Option(None, "--description", help="Free-form description."),
    skip_import: bool = typer.Option(False, "--skip-import", help="Create the commit without importing."),
) -> None:
    """Create a commit and import its strings."""
    from l10n_engine.models.commit import CommitValidationError
    from l10n_engine.state.database import session_scope
    from l10n_engine.state.repository import ProjectRepository

    due = _parse_date(due_date) if due_date else None

    async def _work(service: Any) -> Any:
        async with session_scope(service.session_factory) as session:
            project = await ProjectRepository(session).get_by_name(project_name)
        if project is None:
            raise CommitValidationError({"project": "does not exist"})
        commit = await service.create_commit(
            project.id,
            revision,
            message,
            priority=priority,
            due_date=due,
            description=description,
            skip_import=skip_import,
        )
        await service.drain()
        return await service.get_commit(commit.id)

    commit = _run(_work)
    if _json_output:
        _emit_json(_commit_payload(commit))
    else:
        console.print(f"[green]Created commit[/green] {commit.id} ({commit.revision[:12]})")
        display_commit_list(console, [commit])


@app.command("commits")
def list_commits(
    project_name: str = typer.Argument(..., help="Project whose commits to list."),
) -> None:
    """List a project's commits, newest first."""
    from l10n_engine.state.database import session_scope
    from l10n_engine.state.repository import CommitRepository, ProjectRepository

    async def _work(service: Any) -> list[Any]:
        async with session_scope(service.session_factory) as session:
            project = await ProjectRepository(session).get_by_name(project_name)
            if project is None:
                raise LookupError(f"Project {project_name!r} not found")
            return await CommitRepository(session).list_for_project(project.id)

    commits = _run(_work)
    if _json_output:
        _emit_json([_commit_payload(c) for c in commits])
    else:
        display_commit_list(console, commits)


@app.command("import")
def import_strings(
    project_name: str = typer.Argument(..., help="Project the commit belongs to."),
    revision: str = typer.Argument(..., help="Revision prefix of an existing commit."),
    locale: str | None = typer.Option(
        None, "--locale", "-l", help="Import copy written in this locale instead of the base locale."
    ),
    force: bool = typer.Option(False, "--force", help="Re-extract blobs that were already scanned."),
    inline: bool = typer.Option(False, "--inline", help="Extract in the foreground."),
) -> None:
    """(Re)import the strings of an existing commit."""

    async def _work(service: Any) -> tuple[Any, list[str]]:
        commit = await _resolve_commit(service, project_name, revision)
        job_ids = await service.import_strings(commit.id, locale, inline=inline, force=force)
        await service.drain()
        return await service.get_commit(commit.id), job_ids

    commit, job_ids = _run(_work)
    if _json_output:
        _emit_json({"commit": _commit_payload(commit), "jobs": job_ids})
    else:
        console.print(f"Imported commit {commit.id} with {len(job_ids)} background job(s)")
        display_commit_list(console, [commit])


@app.command("clear-workers")
def clear_workers(
    project_name: str = typer.Argument(..., help="Project the commit belongs to."),
    revision: str = typer.Argument(..., help="Revision prefix of an existing commit."),
) -> None:
    """Forget a commit's outstanding jobs and finish its loading phase."""

    async def _work(service: Any) -> bool:
        commit = await _resolve_commit(service, project_name, revision)
        return await service.clear_workers(commit.id)

    was_loading = _run(_work)
    if _json_output:
        _emit_json({"was_loading": was_loading})
    elif was_loading:
        console.print("[green]Workers cleared; commit recalculated.[/green]")
    else:
        console.print("[yellow]Commit was not loading.[/yellow]")


@app.command("recalculate")
def recalculate(
    project_name: str = typer.Argument(..., help="Project the commit belongs to."),
    revision: str = typer.Argument(..., help="Revision prefix of an existing commit."),
) -> None:
    """Recompute a commit's statistics and readiness."""

    async def _work(service: Any) -> Any:
        commit = await _resolve_commit(service, project_name, revision)
        return await service.recalculate_ready(commit.id)

    stats = _run(_work)
    if _json_output:
        _emit_json(stats.model_dump() | {"fraction_done": stats.fraction_done})
    else:
        state = "[green]ready[/green]" if stats.ready else "[yellow]not ready[/yellow]"
        console.print(f"Commit is {state} ({stats.fraction_done:.0%} approved)")


@app.command("translate")
def translate(
    project_name: str = typer.Argument(..., help="Project the key belongs to."),
    key: str = typer.Argument(..., help="Translation key."),
    locale: str = typer.Argument(..., help="Locale of the translation."),
    copy: str | None = typer.Option(None, "--copy", help="Translated copy."),
    approved: bool | None = typer.Option(None, "--approve/--reject", help="Reviewer decision."),
) -> None:
    """Record translator or reviewer input and recalculate affected commits."""
    from l10n_engine.state.database import session_scope
    from l10n_engine.state.repository import KeyRepository, ProjectRepository

    if copy is None and approved is None:
        console.print("[red]Pass --copy and/or --approve/--reject.[/red]")
        raise typer.Exit(code=3)

    async def _work(service: Any) -> list[Any]:
        async with session_scope(service.session_factory) as session:
            project = await ProjectRepository(session).get_by_name(project_name)
            if project is None:
                raise LookupError(f"Project {project_name!r} not found")
            row = await KeyRepository(session, project.id).get(key)
            if row is None:
                raise LookupError(f"Key {key!r} not found in {project_name}")
        return await service.update_translation(row.id, locale, copy=copy, approved=approved)

    results = _run(_work)
    if _json_output:
        _emit_json([stats.model_dump() for stats in results])
    else:
        ready = sum(1 for stats in results if stats.ready)
        console.print(f"Recalculated {len(results)} commit(s); {ready} ready")


@app.command("status")
def status(
    project_name: str = typer.Argument(..., help="Project the commit belongs to."),
    revision: str = typer.Argument(..., help="Revision prefix of an existing commit."),
) -> None:
    """Show a commit's readiness, statistics and cached manifests."""
    from l10n_engine.models.project import ProjectConfig
    from l10n_engine.state.database import session_scope
    from l10n_engine.state.repository import ProjectRepository

    async def _work(service: Any) -> tuple[Any, list[dict[str, Any]], dict[str, str | None]]:
        commit = await _resolve_commit(service, project_name, revision)
        async with session_scope(service.session_factory) as session:
            project = ProjectConfig.model_validate(await ProjectRepository(session).get(commit.project_id))

        locales = []
        for locale in project.targeted_locales:
            locales.append(
                {
                    "locale": locale,
                    "required": locale in project.required_locales,
                    "entered": await service.all_translations_entered_for_locale(commit.id, locale),
                    "approved": await service.all_translations_approved_for_locale(commit.id, locale),
                    "localized": await service.is_localized(commit.id, locale),
                }
            )

        manifests: dict[str, str | None] = {}
        for ident in project.cache_manifest_formats:
            path = await service.manifest_path(commit.id, ident)
            manifests[ident] = str(path) if path is not None else None
        return commit, locales, manifests

    commit, locales, manifests = _run(_work)
    if _json_output:
        _emit_json(_commit_payload(commit) | {"locales": locales, "manifests": manifests})
    else:
        display_commit_status(console, commit, locales, manifests)
