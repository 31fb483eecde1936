"""Waiting for Linear's GitHub sync, then patching metadata onto the synced issue.

The Linear issue is created asynchronously by Linear's GitHub integration
after the GitHub webhook fires, usually within a few seconds. The poller
queries at a fixed interval inside a short wall-clock budget and returns as
soon as the issue appears; exhausting the budget is a normal outcome that
callers report and move past.
"""

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import httpx

from lg.models import MetadataPatch, Outcome, StepResult, SyncResult
from lg.providers.base import AuthenticationError, NotFoundError, ProviderError, is_transient

if TYPE_CHECKING:
    from lg.providers.linear import LinearProvider

log = logging.getLogger(__name__)

# on_retry(attempt, max_attempts, interval_ms)
RetryCallback = Callable[[int, int, int], None]


def max_attempts_for(max_wait_ms: int, interval_ms: int) -> int:
    if interval_ms <= 0:
        raise ValueError("interval_ms must be positive")
    if max_wait_ms < 0:
        raise ValueError("max_wait_ms must not be negative")
    return max_wait_ms // interval_ms + 1


def wait_for_issue(
    lookup: Callable[[str], str | None],
    key: str,
    *,
    max_wait_ms: int = 10_000,
    interval_ms: int = 500,
    on_retry: RetryCallback | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> SyncResult:
    """Call lookup(key) until it returns an id or the attempt budget runs out.

    Performs exactly k lookups when the id shows up on attempt k, and
    max_attempts lookups with max_attempts - 1 sleeps when it never does.
    Transient lookup errors count as "not there yet"; AuthenticationError
    propagates.
    """
    max_attempts = max_attempts_for(max_wait_ms, interval_ms)

    for attempt in range(1, max_attempts + 1):
        try:
            issue_id = lookup(key)
        except (httpx.HTTPError, ProviderError) as exc:
            if not is_transient(exc):
                raise
            log.debug("Lookup attempt %d/%d for %s failed: %s", attempt, max_attempts, key, exc)
            issue_id = None

        if issue_id:
            log.debug("Found %s after %d attempt(s)", issue_id, attempt)
            return SyncResult(issue_id=issue_id, attempts=attempt, max_attempts=max_attempts)

        if attempt < max_attempts:
            if on_retry is not None:
                on_retry(attempt, max_attempts, interval_ms)
            sleep(interval_ms / 1000)

    return SyncResult(issue_id=None, attempts=max_attempts, max_attempts=max_attempts)


def _failure(step: str, exc: Exception) -> StepResult:
    log.debug("%s failed", step, exc_info=exc)
    if isinstance(exc, AuthenticationError):
        return StepResult(step=step, outcome=Outcome.FATAL, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return StepResult(step=step, outcome=Outcome.NOT_FOUND, detail=str(exc))
    return StepResult(step=step, outcome=Outcome.TRANSIENT_FAILURE, detail=str(exc))


def _apply(step: str, write: Callable[[], None], detail: str) -> StepResult:
    try:
        write()
    except (httpx.HTTPError, ProviderError) as exc:
        return _failure(step, exc)
    return StepResult(step=step, outcome=Outcome.SUCCESS, detail=detail)


def _apply_labels(linear: "LinearProvider", issue_id: str, names: list[str]) -> StepResult:
    try:
        team_id = linear.get_issue_team_id(issue_id)
        existing = linear.list_labels(team_id)
    except (httpx.HTTPError, ProviderError) as exc:
        return _failure("labels", exc)

    label_ids: list[str] = []
    failed: list[str] = []
    for name in names:
        try:
            label_id = linear.find_or_create_label(team_id, name, existing)
        except (httpx.HTTPError, ProviderError) as exc:
            log.debug("Could not find or create label %r: %s", name, exc)
            failed.append(name)
            continue
        if label_id not in label_ids:
            label_ids.append(label_id)

    if not label_ids:
        return StepResult(
            step="labels",
            outcome=Outcome.TRANSIENT_FAILURE,
            detail=f"Could not find or create: {', '.join(failed)}",
        )

    try:
        linear.update_issue_metadata(issue_id, label_ids=label_ids)
    except (httpx.HTTPError, ProviderError) as exc:
        return _failure("labels", exc)

    detail = f"{len(label_ids)} label(s) set"
    if failed:
        return StepResult(
            step="labels",
            outcome=Outcome.TRANSIENT_FAILURE,
            detail=f"{detail}; could not find or create: {', '.join(failed)}",
        )
    return StepResult(step="labels", outcome=Outcome.SUCCESS, detail=detail)


def reconcile_metadata(linear: "LinearProvider", issue_id: str, patch: MetadataPatch) -> list[StepResult]:
    """Write each requested field with its own call; one failure never stops the rest.

    Labels are resolved by find-or-create against the issue's team, then set
    with a single update. Fields not in the patch produce no result.
    """
    results: list[StepResult] = []
    if patch.due_date:
        results.append(
            _apply(
                "due_date",
                lambda: linear.update_issue_metadata(issue_id, due_date=patch.due_date),
                detail=patch.due_date,
            )
        )
    if patch.project_id:
        results.append(
            _apply(
                "project",
                lambda: linear.update_issue_metadata(issue_id, project_id=patch.project_id),
                detail=patch.project_id,
            )
        )
    if patch.labels:
        results.append(_apply_labels(linear, issue_id, patch.labels))
    return results
