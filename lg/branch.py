"""Branch-name helpers: sanitizing, composing and parsing `owner/LEA-123-title` names."""

import re

# Commit/branch types accepted by the commit-type hook
VALID_BRANCH_PREFIXES = ("feat", "fix", "chore", "docs", "refactor", "test", "research")

MAX_TITLE_LEN = 50

_LINEAR_ID_RE = re.compile(r"([A-Z]+-\d+)")
_COMMIT_SUBJECT_RE = re.compile(r"^[^:]+: (.+)$")


def sanitize_branch_name(title: str) -> str:
    """Turn an issue title into the title part of a branch name.

    "Hello   World!!" → "hello-world". Result is at most 50 characters and
    never starts or ends with a hyphen.
    """
    if not title or not title.strip():
        return ""
    sanitized = re.sub(r"\s+", "-", title.lower())
    sanitized = re.sub(r"[^a-z0-9-]", "", sanitized)
    sanitized = re.sub(r"-+", "-", sanitized).strip("-")
    if len(sanitized) > MAX_TITLE_LEN:
        sanitized = sanitized[:MAX_TITLE_LEN].rstrip("-")
    return sanitized


def sanitize_branch_owner(owner: str) -> str:
    if not owner or not owner.strip():
        return ""
    sanitized = re.sub(r"[^a-z0-9-]", "", owner.lower())
    return re.sub(r"-+", "-", sanitized).strip("-")


def generate_branch_name(owner: str, linear_id: str, title: str) -> str:
    """Return `{owner}/{linear_id}-{title}`, or `{owner}/{linear_id}` for an empty title."""
    owner_segment = sanitize_branch_owner(owner) or "user"
    title_segment = sanitize_branch_name(title)
    if not title_segment:
        return f"{owner_segment}/{linear_id}"
    return f"{owner_segment}/{linear_id}-{title_segment}"


def extract_linear_issue_id(branch_name: str) -> str | None:
    if not branch_name or not branch_name.strip():
        return None
    match = _LINEAR_ID_RE.search(branch_name)
    return match.group(1) if match else None


def extract_branch_prefix(branch_name: str) -> str | None:
    """Return the commit type before the first '/', or None if missing or not a known type."""
    if not branch_name or not branch_name.strip():
        return None
    prefix = branch_name.split("/", 1)[0].lower()
    return prefix if prefix in VALID_BRANCH_PREFIXES else None


def resolve_branch_prefix(branch_name: str, policy: str = "prompt", default: str = "feat") -> str | None:
    """Apply the configured prefix policy.

    policy "prompt": None for unknown prefixes, the caller asks the user.
    policy "default": unknown prefixes fall back to `default`.
    """
    prefix = extract_branch_prefix(branch_name)
    if prefix is not None:
        return prefix
    if policy == "default":
        return default
    return None


def build_commit_message(prefix: str, linear_id: str, title: str, github_issue_number: int) -> tuple[str, str]:
    """Return (subject, body) for the first commit of a branch."""
    return f"{prefix}: {linear_id} {title}", f"solve: #{github_issue_number}"


def pr_title_from_commit(subject: str, branch_name: str) -> str:
    """PR title from a "type: LEA-123 title" subject, else the branch without its owner/type segment."""
    match = _COMMIT_SUBJECT_RE.match(subject or "")
    if match:
        return match.group(1)
    if "/" in branch_name:
        return branch_name.split("/", 1)[1]
    return branch_name
