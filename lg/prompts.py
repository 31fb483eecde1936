"""Interactive prompts: repository, project and parent issue pickers, issue details."""

import os
import re
import sys
from datetime import date
from typing import TypeVar

import click
import httpx
import typer
from rich import print as rprint
from rich.table import Table

from lg.branch import VALID_BRANCH_PREFIXES
from lg.models import IssueDetails
from lg.providers.base import ProviderError
from lg.providers.github import GitHubProvider
from lg.providers.linear import LinearProvider

T = TypeVar("T")

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# GUI editors return immediately unless told to wait for the file to close
_WAIT_FLAG_EDITORS = {
    "code": "--wait",
    "code-insiders": "--wait",
    "cursor": "--wait",
    "cursor-insiders": "--wait",
    "subl": "-w",
    "sublime_text": "-w",
    "atom": "--wait",
}


def is_valid_date(value: str) -> bool:
    """True for a real calendar date written as YYYY-MM-DD."""
    if not _DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def resolve_editor_command(configured: str | None = None) -> str:
    base = (configured or os.environ.get("VISUAL") or os.environ.get("EDITOR") or "vim").strip()
    binary = base.split()[0] if base else "vim"
    wait_flag = _WAIT_FLAG_EDITORS.get(os.path.basename(binary))
    if wait_flag and not re.search(r"\s(--wait|-w)\b", base):
        return f"{base} {wait_flag}"
    return base


def choose(title: str, options: list[tuple[str, T]], allow_skip: bool = False) -> T | None:
    """Render a numbered table and return the value of the picked row (None for Skip)."""
    if not options:
        return None

    table = Table(title=title)
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Name")
    if allow_skip:
        table.add_row("0", "[dim]Skip[/dim]")
    for index, (label, _) in enumerate(options, start=1):
        table.add_row(str(index), label)
    rprint(table)

    low = 0 if allow_skip else 1
    while True:
        index = typer.prompt("Choice", type=int, default=low if allow_skip else None)
        if low <= index <= len(options):
            break
        rprint(f"[red]Enter a number between {low} and {len(options)}[/red]")

    if index == 0:
        return None
    return options[index - 1][1]


def choose_many(title: str, options: list[str]) -> list[str]:
    """Pick any number of options by comma-separated row numbers; blank picks none."""
    if not options:
        return []

    table = Table(title=title)
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Name")
    for index, label in enumerate(options, start=1):
        table.add_row(str(index), label)
    rprint(table)

    while True:
        raw = typer.prompt("Numbers, comma separated (blank for none)", default="", show_default=False)
        parts = [p.strip() for p in raw.split(",") if p.strip()]
        if all(p.isdigit() and 1 <= int(p) <= len(options) for p in parts):
            break
        rprint(f"[red]Use numbers between 1 and {len(options)}[/red]")

    picked: list[str] = []
    for part in parts:
        option = options[int(part) - 1]
        if option not in picked:
            picked.append(option)
    return picked


def select_repository(github: GitHubProvider) -> str:
    repos = github.list_repositories()
    if not repos:
        rprint("[red]No repositories found for the authenticated GitHub user.[/red]")
        raise typer.Exit(1)
    return choose("Repositories", [(r.full_name, r.full_name) for r in repos])  # type: ignore[return-value]


def select_project(github: GitHubProvider, repo: str) -> str | None:
    """Pick a GitHub project owned by the repo owner; returns its title or None."""
    owner = repo.split("/", 1)[0]
    try:
        projects = github.list_projects(owner)
    except (httpx.HTTPError, ProviderError) as exc:
        message = str(exc)
        if "scope" in message.lower():
            rprint("\n[red]❌ GitHub token is missing the scopes needed for projects.[/red]")
            rprint("   Required scope: read:project")
            rprint("   Run: gh auth refresh -s read:project\n")
        else:
            rprint("\n[red]❌ Failed to fetch GitHub projects.[/red]")
            rprint(f"   Error: {message}\n")
        if not typer.confirm("Continue without selecting a project?", default=True):
            rprint("Cancelled. Please fix the issue and try again.")
            raise typer.Exit(1)
        return None

    return choose("GitHub Projects", [(p.name, p.name) for p in projects], allow_skip=True)


def select_linear_project(linear: LinearProvider) -> str | None:
    projects = linear.list_projects()
    return choose("Linear Projects", [(p.name, p.id) for p in projects], allow_skip=True)


def select_parent_issue(github: GitHubProvider, repo: str) -> int:
    issues = github.list_open_issues(repo)
    if not issues:
        rprint(f"[red]No open issues in {repo} to use as a parent.[/red]")
        raise typer.Exit(1)
    options = [(f"#{i.number}: {i.title} [{i.state}]", i.number) for i in issues]
    return choose("Parent issue", options)  # type: ignore[return-value]


def select_commit_type() -> str:
    return choose("Commit type", [(p, p) for p in VALID_BRANCH_PREFIXES])  # type: ignore[return-value]


def prompt_branch_owner() -> str:
    while True:
        owner = typer.prompt("Branch username for naming (e.g., your GitHub login)").strip()
        if owner:
            return owner
        rprint("[red]Username is required[/red]")


def _prompt_description(editor: str | None) -> str:
    if not sys.stdin.isatty():
        return ""
    if not typer.confirm("Write a description in your editor?", default=False):
        return ""

    command = resolve_editor_command(editor)
    try:
        text = click.edit("", editor=command, extension=".md")
    except click.ClickException:
        rprint("\n[yellow]⚠️  Failed to open editor for issue description.[/yellow]")
        rprint(f"   Editor command: {command}")
        rprint('   Tip: set $EDITOR or $VISUAL to a terminal editor (e.g. "vim")')
        rprint('   or a GUI editor with wait flag (e.g. "code --wait").\n')
        return typer.prompt("Issue description (single line)", default="", show_default=False)
    return (text or "").rstrip()


def _prompt_date(label: str, required: bool) -> str | None:
    suffix = "required" if required else "optional"
    while True:
        value = typer.prompt(f"{label} (YYYY-MM-DD, {suffix})", default="", show_default=False).strip()
        if not value and not required:
            return None
        if not value:
            rprint(f"[red]{label} is required[/red]")
            continue
        if is_valid_date(value):
            return value
        rprint("[red]Invalid date format[/red]")


def prompt_issue_details(github: GitHubProvider, repo: str, editor: str | None = None) -> IssueDetails:
    rprint("📋 Fetching labels from GitHub...")
    label_choices = github.list_labels(repo)

    while True:
        title = typer.prompt("Issue title (required)").strip()
        if title:
            break
        rprint("[red]Title is required[/red]")

    description = _prompt_description(editor)
    start_date = _prompt_date("Start date", required=False)
    due_date = _prompt_date("Due date", required=True)
    labels = choose_many("GitHub labels", label_choices)

    return IssueDetails(
        title=title,
        description=description,
        start_date=start_date,
        due_date=due_date,
        labels=labels,
    )
