"""lg CLI commands."""

import logging
import stat
import subprocess
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import httpx
import typer
from rich import print as rprint
from rich.logging import RichHandler
from rich.table import Table

from lg import git, prompts
from lg.branch import (
    build_commit_message,
    extract_linear_issue_id,
    generate_branch_name,
    pr_title_from_commit,
    resolve_branch_prefix,
)
from lg.models import IssueDetails, IssueHandle, MetadataPatch, StepResult
from lg.providers.base import ProviderError
from lg.providers.github import GitHubProvider
from lg.providers.linear import LinearProvider
from lg.settings import CONFIG_PATH, LgSettings, find_env_file, get_settings
from lg.sync import reconcile_metadata

app = typer.Typer(
    help="lg: Linear + GitHub Integration CLI - Create GitHub issues with Linear sync",
    no_args_is_help=True,
)

# Written to .git/hooks/post-commit by install-hook.
HOOK_MARKER = "lg check-unpushed"
_POST_COMMIT_HOOK = f"""\
#!/bin/sh
# Installed by `lg install-hook`: warn about unpushed commits after each commit.
if command -v lg >/dev/null 2>&1; then
  {HOOK_MARKER}
fi
exit 0
"""

_STEP_LABELS = {
    "due_date": "Due date",
    "project": "Project",
    "labels": "Labels",
    "github_project": "GitHub project",
    "github_item": "Project item",
}


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False, rich_tracebacks=True)],
        force=True,
    )


# ---------------------------------------------------------------------------
# Provider factories
# ---------------------------------------------------------------------------


def get_linear(settings: LgSettings) -> LinearProvider:
    return LinearProvider(settings)


def get_github(settings: LgSettings) -> GitHubProvider:
    try:
        return GitHubProvider(settings)
    except RuntimeError as exc:
        rprint(f"[red]❌ {exc}[/red]")
        raise typer.Exit(1) from exc


@contextmanager
def _provider_errors() -> Iterator[None]:
    """Turn an API failure that escaped the per-step handling into exit 1."""
    try:
        yield
    except (ProviderError, httpx.HTTPError) as exc:
        rprint(f"[red]❌ Error: {exc}[/red]")
        raise typer.Exit(1) from exc


# ---------------------------------------------------------------------------
# Shared flow helpers
# ---------------------------------------------------------------------------


def _report(results: list[StepResult]) -> None:
    for result in results:
        label = _STEP_LABELS.get(result.step, result.step)
        if result.ok:
            rprint(f"   [green]✅[/green] {label}: {result.detail}")
        else:
            rprint(f"   [yellow]⚠️  {label} ({result.outcome.value}):[/yellow] {result.detail}")


def _ensure_pushed() -> None:
    unpushed = git.unpushed_commits()
    if not unpushed.has_unpushed:
        rprint("[green]✓[/green] No unpushed commits on current branch")
        return
    rprint("\n[yellow]⚠️  Warning: There are unpushed commits on the current branch.[/yellow]")
    rprint(f"   Found {unpushed.count} unpushed commit(s):")
    for commit in unpushed.commits:
        rprint(f"   - {commit}")
    rprint("\n   If you create a branch from this state, these commits will be included in PR body.")
    rprint("   Please push commits first:")
    rprint("     git push")
    rprint("\n   Then re-run this command.")
    raise typer.Exit(1)


def _add_to_project(github: GitHubProvider, repo: str, project_name: str, issue: IssueHandle, details: IssueDetails) -> None:
    owner = repo.split("/", 1)[0]
    try:
        project = github.find_project(owner, project_name)
        if project is None:
            rprint(f"[yellow]⚠️  GitHub project '{project_name}' not found. Add the issue manually.[/yellow]")
            return
        github.add_issue_to_project(project.id, issue.id)
        rprint(f"✅ Added to GitHub project: {project_name}")
    except (httpx.HTTPError, ProviderError) as exc:
        rprint(f"[yellow]⚠️  Could not add issue to project '{project_name}': {exc}[/yellow]")
        return

    if details.due_date or details.start_date:
        rprint("\n📅 Setting GitHub Project date fields...")
        _report(
            github.set_project_date_fields(
                owner,
                project_name,
                issue.id,
                due_date=details.due_date,
                start_date=details.start_date,
            )
        )


def _wait_for_linear(settings: LgSettings, linear: LinearProvider, issue: IssueHandle) -> str | None:
    rprint(f"\n⏳ Waiting for Linear sync (polling for up to {settings.sync_max_wait_ms / 1000:g}s)...")

    def on_retry(attempt: int, max_attempts: int, interval_ms: int) -> None:
        if attempt % settings.sync_progress_every == 0:
            rprint(
                f"   ⏳ Linear issue not found yet, retrying in {interval_ms}ms... ({attempt}/{max_attempts - 1})"
            )

    result = linear.wait_for_issue_by_github_url(
        issue.url,
        max_wait_ms=settings.sync_max_wait_ms,
        interval_ms=settings.sync_poll_interval_ms,
        on_retry=on_retry,
    )
    return result.issue_id


def _resolve_linear_project(linear: LinearProvider, github_project: str | None) -> str | None:
    """Linear project matching the GitHub project name; ask only when no GitHub project was picked."""
    if not github_project:
        try:
            return prompts.select_linear_project(linear)
        except (httpx.HTTPError, ProviderError) as exc:
            rprint(f"   [yellow]⚠️  Could not list Linear projects: {exc}[/yellow]")
            return None

    rprint(f'   Looking for Linear project matching "{github_project}"...')
    try:
        project_id = linear.find_project_by_name(github_project)
    except (httpx.HTTPError, ProviderError) as exc:
        rprint(f"   [yellow]⚠️  Linear project lookup failed: {exc}[/yellow]")
        return None
    if project_id:
        rprint(f"   [green]✅[/green] Found matching Linear project: {github_project}")
    else:
        rprint("   [yellow]⚠️  No matching Linear project found. You can set it manually.[/yellow]")
    return project_id


def _offer_branch(linear: LinearProvider, linear_issue_id: str, issue: IssueHandle, title: str, login: str | None) -> None:
    if not typer.confirm("Create git branch for this issue?", default=True):
        return

    try:
        identifier = linear.get_issue_identifier(linear_issue_id)
    except (httpx.HTTPError, ProviderError) as exc:
        rprint(f"[yellow]⚠️  Linear lookup failed: {exc}[/yellow]")
        identifier = None
    if not identifier:
        rprint("[yellow]⚠️  Could not get Linear issue identifier. Branch creation skipped.[/yellow]")
        rprint(f"   Linear issue ID: {linear_issue_id}")
        rprint(f"   GitHub issue #{issue.number}")
        return

    owner = login or prompts.prompt_branch_owner()
    branch_name = generate_branch_name(owner, identifier, title)
    result = git.create_branch(branch_name)
    if result.ok:
        rprint(f"[green]✅[/green] Branch created: {branch_name}")
        rprint(f"   Linear issue ID: {identifier}")
        rprint(f"   GitHub issue #{issue.number}")
    else:
        rprint(f"[yellow]⚠️  {result.detail}. Branch creation skipped.[/yellow]")


def _sync_linear(
    settings: LgSettings,
    linear: LinearProvider,
    issue: IssueHandle,
    details: IssueDetails,
    github_project: str | None,
    login: str | None,
) -> None:
    """Wait for the synced Linear issue, patch its metadata and offer a branch."""
    linear_issue_id = _wait_for_linear(settings, linear, issue)
    if not linear_issue_id:
        rprint("[yellow]⚠️  Linear issue not found yet. Metadata will be set by GitHub Actions.[/yellow]")
        return

    rprint("[green]✅[/green] Found Linear issue, updating metadata...")
    patch = MetadataPatch(
        due_date=details.due_date,
        project_id=_resolve_linear_project(linear, github_project),
        labels=details.labels,
    )
    if details.labels:
        rprint(f"   Setting labels: {', '.join(details.labels)}")

    results = reconcile_metadata(linear, linear_issue_id, patch)
    _report(results)
    if any(not r.ok for r in results):
        rprint("   [yellow]Finish the failed fields manually in Linear.[/yellow]")
    elif results:
        rprint("[green]✅[/green] Linear issue metadata updated!")
    rprint("   Status: Will be updated automatically via PR integration")

    _offer_branch(linear, linear_issue_id, issue, details.title, login)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("create-parent")
def create_parent() -> None:
    """Create a parent GitHub issue with Linear integration."""
    settings = get_settings()
    linear = get_linear(settings)

    rprint("📦 Fetching repositories...")
    github = get_github(settings)
    with _provider_errors():
        repo = prompts.select_repository(github)
        _ensure_pushed()

        details = prompts.prompt_issue_details(github, repo, settings.editor)
        github_project = prompts.select_project(github, repo)

        rprint("\n🚀 Creating GitHub issue...")
        login = github.get_current_username()
        issue = github.create_issue(
            repo,
            details.title,
            details.description,
            labels=details.labels,
            assignees=[login] if login else None,
        )
        rprint(f"[green]✅[/green] GitHub Issue #{issue.number} created: {issue.url}")

        if github_project:
            _add_to_project(github, repo, github_project, issue, details)

        _sync_linear(settings, linear, issue, details, github_project, login)

    rprint("\n💡 Next steps:")
    rprint("   Create sub-issues: lg create-sub")
    rprint(f"   Then select issue #{issue.number}")


@app.command("create-sub")
def create_sub() -> None:
    """Create a sub-issue linked to a parent issue."""
    settings = get_settings()
    linear = get_linear(settings)

    rprint("📦 Fetching repositories...")
    github = get_github(settings)
    with _provider_errors():
        repo = prompts.select_repository(github)
        _ensure_pushed()

        parent_number = prompts.select_parent_issue(github, repo)
        details = prompts.prompt_issue_details(github, repo, settings.editor)

        rprint("\n🚀 Creating GitHub sub-issue...")
        login = github.get_current_username()
        issue = github.create_issue(
            repo,
            details.title,
            details.description,
            labels=details.labels,
            assignees=[login] if login else None,
        )
        rprint(f"[green]✅[/green] GitHub Issue #{issue.number} created: {issue.url}")

        try:
            parent_id = github.get_issue_node_id(repo, parent_number)
            github.add_sub_issue(parent_id, issue.id)
            rprint(f"[green]✅[/green] Linked as sub-issue of #{parent_number}")
        except (httpx.HTTPError, ProviderError) as exc:
            rprint(f"[yellow]⚠️  Could not link to parent #{parent_number}: {exc}[/yellow]")
            rprint("   Link it manually from the parent issue on GitHub.")

        _sync_linear(settings, linear, issue, details, None, login)


app.command("parent", hidden=True)(create_parent)
app.command("sub", hidden=True)(create_sub)


@app.command("commit-first")
def commit_first() -> None:
    """Create the first (empty) commit of a branch from its name: "type: LEA-123 title"."""
    settings = get_settings()

    branch = git.current_branch()
    if not branch:
        rprint("[red]❌ Error: Not in a git repository or unable to get branch name[/red]")
        raise typer.Exit(1)

    linear_id = extract_linear_issue_id(branch)
    if not linear_id:
        rprint(f"[red]❌ Error: Could not extract Linear issue ID from branch name: {branch}[/red]")
        rprint("   Branch name should follow pattern: username/LEA-123-title")
        raise typer.Exit(1)

    prefix = resolve_branch_prefix(branch, settings.prefix_policy, settings.default_prefix)
    if prefix is None:
        prefix = prompts.select_commit_type()

    rprint(f"📋 Found Linear issue ID: {linear_id}")
    rprint(f"📋 Using commit type: {prefix}")

    linear = get_linear(settings)
    with _provider_errors():
        rprint("🔍 Fetching Linear issue title...")
        title = linear.get_issue_title(linear_id)
        if not title:
            rprint(f"[red]❌ Error: Linear issue {linear_id} not found[/red]")
            raise typer.Exit(1)

        rprint("🔍 Fetching GitHub issue number...")
        github_number = linear.get_github_issue_number(linear_id)
        if not github_number:
            rprint(f"[red]❌ Error: GitHub issue number not found for Linear issue {linear_id}[/red]")
            rprint("   Make sure the Linear issue is linked to a GitHub issue")
            raise typer.Exit(1)

    subject, body = build_commit_message(prefix, linear_id, title, github_number)
    rprint("\n📝 Commit message:")
    rprint(f"   {subject}")
    rprint(f"   {body}\n")

    result = git.commit_empty(subject, body)
    if not result.ok:
        rprint("[red]❌ Error: Failed to create commit[/red]")
        rprint(result.detail)
        raise typer.Exit(1)
    rprint("[green]✅[/green] Commit created successfully!")


def lgcmf() -> None:
    """Console script: `lgcmf` is `lg commit-first`."""
    typer.run(commit_first)


def _confirm_unpushed(count: int, where: str, commits: list[str], push_hint: list[str]) -> None:
    rprint(f"[yellow]⚠️  Warning: There are {count} unpushed commit(s) on {where}.[/yellow]")
    rprint("")
    for commit in commits:
        rprint(f"   {commit}")
    rprint("")
    rprint("If you create a PR now, these commits will be included in the PR body.")
    rprint("Consider pushing them first:")
    for line in push_hint:
        rprint(f"  {line}")
    rprint("")
    if not typer.confirm("Continue anyway?", default=False):
        rprint("Aborted.")
        raise typer.Exit(1)


@app.command(
    "pr-safe",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def pr_safe(
    ctx: typer.Context,
    draft: Annotated[bool, typer.Option("--draft", help="Open the PR as a draft")] = False,
    base_branch: Annotated[str | None, typer.Option("--base-branch", help="Base branch (default: main)")] = None,
) -> None:
    """Run `gh pr create --fill` after checking for unpushed commits. Extra args go to gh."""
    settings = get_settings(require_linear=False)
    base = base_branch or settings.base_branch

    branch = git.current_branch()
    if not branch:
        rprint("[red]❌ Error: Not in a git repository or on a detached HEAD[/red]")
        raise typer.Exit(1)

    if not git.remote_branch_exists(base):
        rprint(f"[yellow]⚠️  Warning: Base branch '{git.REMOTE}/{base}' does not exist on remote.[/yellow]")
        rprint("   Cannot check for unpushed commits. Proceeding anyway...")
    else:
        base_ahead = git.ahead_count(base)
        if base_ahead > 0:
            _confirm_unpushed(
                base_ahead,
                f"'{base}' branch",
                git.log_oneline(f"{git.REMOTE}/{base}..{base}"),
                [f"git checkout {base}", "git push"],
            )

    # The branch's own first commit (from commit-first) is expected to be unpushed
    if git.remote_branch_exists(branch):
        branch_ahead = git.ahead_count(branch, head="HEAD")
        if branch_ahead > 1:
            _confirm_unpushed(
                branch_ahead,
                f"branch '{branch}'",
                git.log_oneline(f"{git.REMOTE}/{branch}..HEAD"),
                ["git push"],
            )

    title = pr_title_from_commit(git.last_commit_subject(), branch)
    cmd = ["gh", "pr", "create", "--title", title, "--fill"]
    if draft:
        cmd.append("--draft")
    cmd.extend(ctx.args)
    try:
        result = subprocess.run(cmd, check=False)
    except FileNotFoundError as exc:
        rprint("[red]❌ gh CLI not found. Install it from https://cli.github.com and run: gh auth login[/red]")
        raise typer.Exit(1) from exc
    raise typer.Exit(result.returncode)


@app.command("check-unpushed")
def check_unpushed() -> None:
    """Warn when the current branch is ahead of its remote (used by the post-commit hook)."""
    unpushed = git.unpushed_commits()
    if not unpushed.has_unpushed:
        return
    rprint("")
    rprint(f"[yellow]⚠️  You have {unpushed.count} unpushed commit(s) on the '{unpushed.branch}' branch.[/yellow]")
    rprint("   If you're planning to create a PR, consider pushing them:")
    rprint("      git push")
    rprint("")


@app.command("install-hook")
def install_hook(
    force: Annotated[bool, typer.Option("--force", help="Overwrite an existing post-commit hook")] = False,
) -> None:
    """Install a post-commit hook that warns about unpushed commits."""
    git_dir = git.git_dir()
    if not git_dir:
        rprint("[red]❌ Error: Not in a git repository[/red]")
        raise typer.Exit(1)

    hook_path = Path(git_dir) / "hooks" / "post-commit"
    if hook_path.exists() and not force:
        if HOOK_MARKER in hook_path.read_text():
            rprint(f"[green]✓[/green] Hook already installed at {hook_path}")
        else:
            rprint(f"[yellow]A post-commit hook already exists at {hook_path}.[/yellow] Use --force to overwrite.")
        raise typer.Exit(0)

    hook_path.parent.mkdir(parents=True, exist_ok=True)
    hook_path.write_text(_POST_COMMIT_HOOK)
    hook_path.chmod(hook_path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    rprint(f"[green]✅[/green] Post-commit hook installed: {hook_path}")
    rprint("   The hook will now warn you about unpushed commits after each commit.")


@app.command("config-show")
def config_show() -> None:
    """Show resolved configuration (masks credentials)."""
    settings = get_settings(require_linear=False)

    def mask(val: str | None, prefix: str = "") -> str:
        if val is None:
            return "[dim](not set)[/dim]"
        if len(val) <= 5:
            return "***"
        return f"{prefix}...{val[-5:]}"

    env_file = find_env_file()

    table = Table(title="lg Configuration")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("config file", str(CONFIG_PATH) if CONFIG_PATH.exists() else "[dim](none)[/dim]")
    table.add_row(".env file", str(env_file) if env_file else "[dim](none)[/dim]")
    table.add_row(
        "linear_api_key",
        mask(
            settings.linear_api_key.get_secret_value() if settings.linear_api_key else None,
            prefix="lin_api_",
        ),
    )
    table.add_row(
        "github_token",
        mask(
            settings.github_token.get_secret_value() if settings.github_token else None,
            prefix="ghp_",
        ),
    )
    table.add_row("github_auth", settings.github_auth)
    table.add_row("sync_poll_interval_ms", str(settings.sync_poll_interval_ms))
    table.add_row("sync_max_wait_ms", str(settings.sync_max_wait_ms))
    table.add_row("project_item_retries", str(settings.project_item_retries))
    table.add_row("prefix_policy", settings.prefix_policy)
    table.add_row("default_prefix", settings.default_prefix)
    table.add_row("base_branch", settings.base_branch)
    table.add_row("editor", settings.editor or "[dim](from $VISUAL / $EDITOR)[/dim]")

    rprint(table)
