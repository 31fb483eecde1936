"""Thin git adapter. Every call passes an argument list; nothing goes through a shell."""

import logging
import subprocess

from lg.models import Outcome, StepResult, UnpushedCommits

log = logging.getLogger(__name__)

REMOTE = "origin"


def _git(*args: str) -> subprocess.CompletedProcess:
    log.debug("git %s", " ".join(args))
    return subprocess.run(["git", *args], capture_output=True, text=True)


def is_git_repo() -> bool:
    return git_dir() is not None


def current_branch() -> str | None:
    """Return the checked-out branch, or None outside a repo or on a detached HEAD."""
    result = _git("rev-parse", "--abbrev-ref", "HEAD")
    if result.returncode != 0:
        return None
    branch = result.stdout.strip()
    if not branch or branch == "HEAD":
        return None
    return branch


def remote_branch_exists(branch: str, remote: str = REMOTE) -> bool:
    return _git("rev-parse", "--verify", "--quiet", f"{remote}/{branch}").returncode == 0


def ahead_count(branch: str, head: str | None = None, remote: str = REMOTE) -> int:
    """Number of commits on head (default: branch) that are not on remote/branch."""
    result = _git("rev-list", "--count", f"{remote}/{branch}..{head or branch}")
    if result.returncode != 0:
        return 0
    try:
        return int(result.stdout.strip())
    except ValueError:
        return 0


def log_oneline(revision_range: str) -> list[str]:
    result = _git("log", revision_range, "--oneline")
    if result.returncode != 0:
        return []
    return [line for line in result.stdout.splitlines() if line.strip()]


def unpushed_commits(branch: str | None = None, remote: str = REMOTE) -> UnpushedCommits:
    """Commits on the branch (default: current) that its remote-tracking branch lacks.

    Outside a repo, on a detached HEAD, or for a branch never pushed, reports none.
    """
    if not is_git_repo():
        return UnpushedCommits()
    branch = branch or current_branch()
    if not branch or not remote_branch_exists(branch, remote):
        return UnpushedCommits(branch=branch)
    count = ahead_count(branch, remote=remote)
    if count == 0:
        return UnpushedCommits(branch=branch)
    return UnpushedCommits(
        branch=branch,
        count=count,
        commits=log_oneline(f"{remote}/{branch}..{branch}"),
    )


def branch_exists(name: str) -> bool:
    return _git("show-ref", "--verify", "--quiet", f"refs/heads/{name}").returncode == 0


def create_branch(name: str) -> StepResult:
    """Create and switch to a new branch."""
    if not is_git_repo():
        return StepResult(step="branch", outcome=Outcome.NOT_FOUND, detail="Not in a git repository")
    if branch_exists(name):
        return StepResult(step="branch", outcome=Outcome.NOT_FOUND, detail=f"Branch '{name}' already exists")
    result = _git("switch", "-c", name)
    if result.returncode != 0:
        return StepResult(step="branch", outcome=Outcome.TRANSIENT_FAILURE, detail=result.stderr.strip())
    return StepResult(step="branch", outcome=Outcome.SUCCESS, detail=name)


def commit_empty(subject: str, body: str) -> StepResult:
    result = _git("commit", "--allow-empty", "-m", subject, "-m", body)
    if result.returncode != 0:
        detail = result.stderr.strip() or result.stdout.strip()
        return StepResult(step="commit", outcome=Outcome.FATAL, detail=detail)
    return StepResult(step="commit", outcome=Outcome.SUCCESS, detail=subject)


def last_commit_subject() -> str:
    result = _git("log", "--format=%s", "-1")
    if result.returncode != 0:
        return ""
    return result.stdout.strip()


def git_dir() -> str | None:
    result = _git("rev-parse", "--git-dir")
    if result.returncode != 0:
        return None
    return result.stdout.strip()
