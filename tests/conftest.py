"""Shared test fixtures."""

import os

import pytest

from lg.models import IssueDetails, IssueHandle
from lg.settings import LgSettings


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep real credentials and LG_* overrides from leaking into tests."""
    for name in ("LINEAR_API_KEY", "GITHUB_TOKEN", "VISUAL", "EDITOR"):
        monkeypatch.delenv(name, raising=False)
    for name in list(os.environ):
        if name.startswith("LG_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings() -> LgSettings:
    return LgSettings(  # type: ignore[call-arg]
        linear_api_key="lin_api_test",
        github_token="ghp_test",
        github_auth="token",
    )


@pytest.fixture
def github_issue() -> IssueHandle:
    return IssueHandle(
        platform="github",
        id="I_kwDOAbc123",
        identifier="#45",
        url="https://github.com/acme/app/issues/45",
        number=45,
        title="Fix login bug",
    )


@pytest.fixture
def issue_details() -> IssueDetails:
    return IssueDetails(
        title="Fix login bug",
        description="Login fails with SSO.",
        due_date="2025-12-31",
        labels=["fix"],
    )
