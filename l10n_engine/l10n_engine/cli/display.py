"""Rich output formatting for the l10n CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from l10n_engine.state.tables import CommitTable, ProjectTable


def _flag(value: bool) -> str:
    return "[green]yes[/green]" if value else "[red]no[/red]"


def _state(commit: CommitTable) -> str:
    if commit.loading:
        return "[yellow]LOADING[/yellow]"
    if commit.ready:
        return "[green]READY[/green]"
    return "[dim]TRANSLATING[/dim]"


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


def display_project_list(console: Console, projects: list[ProjectTable]) -> None:
    """Render a table of projects and their locale settings."""
    if not projects:
        console.print("[yellow]No projects found.[/yellow]")
        return

    table = Table(title=f"Projects ({len(projects)})")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Repository")
    table.add_column("Base")
    table.add_column("Required")
    table.add_column("Targeted")

    for project in projects:
        table.add_row(
            str(project.id),
            project.name,
            project.repository_path,
            project.base_locale,
            ", ".join(project.required_locales) or "-",
            ", ".join(project.targeted_locales) or "-",
        )

    console.print(table)


# ---------------------------------------------------------------------------
# Commits
# ---------------------------------------------------------------------------


def display_commit_list(console: Console, commits: list[CommitTable]) -> None:
    """Render a table of commits, newest first."""
    if not commits:
        console.print("[yellow]No commits found.[/yellow]")
        return

    table = Table(title=f"Commits ({len(commits)})")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Revision", max_width=12)
    table.add_column("State")
    table.add_column("Strings", justify="right")
    table.add_column("Done", justify="right")
    table.add_column("Message", max_width=48)

    for commit in commits:
        done = 1.0 if commit.translations_total == 0 else commit.translations_done / commit.translations_total
        table.add_row(
            str(commit.id),
            commit.revision[:12],
            _state(commit),
            str(commit.strings_total),
            f"{done:.0%}",
            commit.message.splitlines()[0] if commit.message else "",
        )

    console.print(table)


def display_commit_status(
    console: Console,
    commit: CommitTable,
    locales: list[dict[str, Any]],
    manifests: dict[str, str | None],
) -> None:
    """Render one commit's readiness, statistics and cached manifests.

    Parameters
    ----------
    console:
        Rich console to write to.
    commit:
        The commit row as last recalculated.
    locales:
        One mapping per targeted locale with ``locale``, ``required``,
        ``entered``, ``approved`` and ``localized`` entries.
    manifests:
        Cached manifest path per format, or ``None`` when not cached.
    """
    header = (
        f"[bold]Commit {commit.id}[/bold] {commit.revision}\n"
        f"State: {_state(commit)}   Priority: {commit.priority if commit.priority is not None else '-'}"
        f"   Due: {commit.due_date or '-'}\n"
        f"Committed: {commit.committed_at:%Y-%m-%d %H:%M} UTC"
    )
    console.print(Panel(header, title="Commit", expand=False))

    stats = Table(title="Statistics", show_header=False)
    stats.add_column("Metric", style="bold")
    stats.add_column("Value", justify="right")
    stats.add_row("Strings", str(commit.strings_total))
    stats.add_row("Required translations", str(commit.translations_total))
    stats.add_row("Approved", str(commit.translations_done))
    stats.add_row("Awaiting review", f"{commit.translations_pending} ({commit.words_pending} words)")
    stats.add_row("Untranslated", f"{commit.translations_new} ({commit.words_new} words)")
    console.print(stats)

    if locales:
        table = Table(title="Locales")
        table.add_column("Locale", style="bold")
        table.add_column("Required")
        table.add_column("Entered")
        table.add_column("Approved")
        table.add_column("Localized")
        for row in locales:
            table.add_row(
                row["locale"],
                _flag(row["required"]),
                _flag(row["entered"]),
                _flag(row["approved"]),
                _flag(row["localized"]),
            )
        console.print(table)

    for ident, path in sorted(manifests.items()):
        if path is None:
            console.print(f"  {ident}: [dim]not cached[/dim]")
        else:
            console.print(f"  {ident}: {path}")


def display_validation_errors(console: Console, errors: dict[str, str]) -> None:
    """Print one line per invalid field."""
    console.print("[red]Commit could not be created:[/red]")
    for field, reason in sorted(errors.items()):
        console.print(f"  [bold]{field}[/bold] {reason}")
