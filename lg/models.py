"""Pydantic models shared by the providers, sync and the CLI."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class Outcome(str, Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"  # lookup miss: skip and warn
    TRANSIENT_FAILURE = "transient_failure"  # write failed: report, continue
    FATAL = "fatal"  # abort the command


class StepResult(BaseModel):
    """Outcome of one independently-failing external call."""

    model_config = ConfigDict(frozen=True)

    step: str
    outcome: Outcome
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS


class IssueHandle(BaseModel):
    """Reference to an issue owned by GitHub or Linear."""

    model_config = ConfigDict(frozen=True)

    platform: str  # "github" | "linear"
    id: str  # GitHub GraphQL node id or Linear UUID
    identifier: str  # "#45" or "LEA-123"
    url: str
    number: int | None = None
    title: str = ""


class GitHubIssueSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    number: int
    title: str
    state: str


class Repository(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


class Team(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    key: str


class Label(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str


class Project(BaseModel):
    """A Linear project or a GitHub ProjectV2 (number is GitHub only)."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    number: int | None = None


class ProjectField(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    data_type: str | None = None


class IssueDetails(BaseModel):
    """Answers collected by the prompt layer."""

    model_config = ConfigDict(frozen=True)

    title: str
    description: str = ""
    start_date: str | None = None  # YYYY-MM-DD
    due_date: str | None = None  # YYYY-MM-DD
    labels: list[str] = []


class MetadataPatch(BaseModel):
    """Sparse set of fields to push onto a Linear issue after sync."""

    model_config = ConfigDict(frozen=True)

    due_date: str | None = None
    project_id: str | None = None
    labels: list[str] = []  # names; resolved to ids by find-or-create

    @property
    def is_empty(self) -> bool:
        return not (self.due_date or self.project_id or self.labels)


class SyncResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    issue_id: str | None
    attempts: int
    max_attempts: int

    @property
    def found(self) -> bool:
        return self.issue_id is not None


class UnpushedCommits(BaseModel):
    model_config = ConfigDict(frozen=True)

    branch: str | None = None
    count: int = 0
    commits: list[str] = []

    @property
    def has_unpushed(self) -> bool:
        return self.count > 0
