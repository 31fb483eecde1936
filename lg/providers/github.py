"""GitHub REST v3 + GraphQL v4 provider."""

import logging
import subprocess
import time
from collections.abc import Callable, Iterator

import httpx

from lg.branch import VALID_BRANCH_PREFIXES
from lg.models import GitHubIssueSummary, IssueHandle, Outcome, Project, ProjectField, Repository, StepResult
from lg.providers.base import AuthenticationError, NotFoundError, ProviderError
from lg.settings import LgSettings

log = logging.getLogger(__name__)

BASE_URL = "https://api.github.com"
GRAPHQL_URL = f"{BASE_URL}/graphql"

# Used when the repository's labels cannot be fetched
DEFAULT_LABELS = list(VALID_BRANCH_PREFIXES)

# ProjectV2 date fields written by create-parent
DUE_DATE_FIELD = "Target"
START_DATE_FIELD = "Start"

_ORG_PROJECTS = """
query OrgProjects($login: String!) {
  organization(login: $login) {
    projectsV2(first: 50) { nodes { id title number } }
  }
}
"""

_USER_PROJECTS = """
query UserProjects($login: String!) {
  user(login: $login) {
    projectsV2(first: 50) { nodes { id title number } }
  }
}
"""

_PROJECT_ITEMS = """
query ProjectItems($projectId: ID!, $cursor: String) {
  node(id: $projectId) {
    ... on ProjectV2 {
      items(first: 100, after: $cursor) {
        nodes {
          id
          content {
            ... on Issue { id }
            ... on PullRequest { id }
          }
        }
        pageInfo { hasNextPage endCursor }
      }
    }
  }
}
"""

_PROJECT_FIELDS = """
query ProjectFields($projectId: ID!) {
  node(id: $projectId) {
    ... on ProjectV2 {
      fields(first: 50) {
        nodes {
          ... on ProjectV2FieldCommon { id name dataType }
        }
      }
    }
  }
}
"""

_ADD_PROJECT_ITEM = """
mutation AddProjectItem($projectId: ID!, $contentId: ID!) {
  addProjectV2ItemById(input: { projectId: $projectId, contentId: $contentId }) {
    item { id }
  }
}
"""

_SET_DATE_FIELD = """
mutation SetDateField($projectId: ID!, $itemId: ID!, $fieldId: ID!, $date: Date!) {
  updateProjectV2ItemFieldValue(
    input: { projectId: $projectId, itemId: $itemId, fieldId: $fieldId, value: { date: $date } }
  ) {
    projectV2Item { id }
  }
}
"""

_ADD_SUB_ISSUE = """
mutation AddSubIssue($issueId: ID!, $subIssueId: ID!) {
  addSubIssue(input: { issueId: $issueId, subIssueId: $subIssueId }) {
    issue { title }
    subIssue { title }
  }
}
"""


def _split_repo(repo: str) -> tuple[str, str]:
    owner, _, name = repo.partition("/")
    if not owner or not name:
        raise ValueError(f"Expected owner/repo, got '{repo}'")
    return owner, name


class GitHubProvider:
    def __init__(self, settings: LgSettings) -> None:
        self._token = self._resolve_token(settings)
        self._item_retries = settings.project_item_retries
        self._headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _resolve_token(self, settings: LgSettings) -> str:
        if settings.github_auth == "token":
            if settings.github_token:
                return settings.github_token.get_secret_value()
            raise RuntimeError("No GitHub credentials. Set GITHUB_TOKEN or github_auth = \"gh-cli\".")
        try:
            result = subprocess.run(["gh", "auth", "token"], capture_output=True, text=True)
        except FileNotFoundError:
            result = None
        if result is None or result.returncode != 0:
            if settings.github_token:
                return settings.github_token.get_secret_value()
            raise RuntimeError("gh auth token failed. Run: gh auth login")
        return result.stdout.strip()

    def _check(self, response: httpx.Response) -> None:
        if response.status_code == 401:
            raise AuthenticationError("GitHub API returned 401. Run: gh auth login (or update GITHUB_TOKEN)")
        if response.status_code == 404:
            raise NotFoundError(f"GitHub API returned 404 for {response.request.url}")
        response.raise_for_status()

    def _get(self, path: str, params: dict | None = None) -> dict | list:
        response = httpx.get(f"{BASE_URL}{path}", headers=self._headers, params=params or {}, timeout=30)
        self._check(response)
        return response.json()

    def _post(self, path: str, body: dict) -> dict:
        response = httpx.post(f"{BASE_URL}{path}", headers=self._headers, json=body, timeout=30)
        self._check(response)
        return response.json()

    def _graphql(self, query: str, variables: dict | None = None, features: str | None = None) -> dict:
        headers = dict(self._headers)
        if features:
            headers["GraphQL-Features"] = features
        response = httpx.post(
            GRAPHQL_URL,
            headers=headers,
            json={"query": query, "variables": variables or {}},
            timeout=30,
        )
        self._check(response)
        data = response.json()
        if data.get("errors"):
            messages = "; ".join(e.get("message", str(e)) for e in data["errors"])
            raise ProviderError(f"GitHub GraphQL error: {messages}")
        return data["data"]

    # -- user / repositories / labels ---------------------------------------

    def get_current_username(self) -> str | None:
        try:
            user = self._get("/user")
        except (httpx.HTTPError, ProviderError) as exc:
            log.debug("Could not read current GitHub user: %s", exc)
            return None
        return user.get("login")  # type: ignore[union-attr]

    def list_repositories(self) -> list[Repository]:
        repos = self._get("/user/repos", params={"per_page": "100", "sort": "pushed"})
        result = []
        for repo in repos:  # type: ignore[union-attr]
            owner, name = _split_repo(repo["full_name"])
            result.append(Repository(owner=owner, name=name))
        return result

    def list_labels(self, repo: str) -> list[str]:
        owner, name = _split_repo(repo)
        try:
            labels = self._get(f"/repos/{owner}/{name}/labels", params={"per_page": "100"})
        except (httpx.HTTPError, ProviderError) as exc:
            log.warning("Failed to fetch labels from GitHub (%s), using default labels", exc)
            return list(DEFAULT_LABELS)
        return sorted(label["name"] for label in labels)  # type: ignore[union-attr]

    def list_open_issues(self, repo: str) -> list[GitHubIssueSummary]:
        owner, name = _split_repo(repo)
        nodes = self._get(f"/repos/{owner}/{name}/issues", params={"state": "open", "per_page": "50"})
        return [
            GitHubIssueSummary(number=n["number"], title=n["title"], state=n["state"].upper())
            for n in nodes  # type: ignore[union-attr]
            if "pull_request" not in n  # /issues also lists PRs
        ]

    # -- issues -------------------------------------------------------------

    def create_issue(
        self,
        repo: str,
        title: str,
        body: str = "",
        labels: list[str] | None = None,
        assignees: list[str] | None = None,
    ) -> IssueHandle:
        owner, name = _split_repo(repo)
        payload: dict = {"title": title, "body": body}
        if labels:
            payload["labels"] = labels
        if assignees:
            payload["assignees"] = assignees
        node = self._post(f"/repos/{owner}/{name}/issues", payload)
        return IssueHandle(
            platform="github",
            id=node["node_id"],
            identifier=f"#{node['number']}",
            url=node["html_url"],
            number=node["number"],
            title=node["title"],
        )

    def get_issue_node_id(self, repo: str, number: int) -> str:
        owner, name = _split_repo(repo)
        node = self._get(f"/repos/{owner}/{name}/issues/{number}")
        return node["node_id"]  # type: ignore[index]

    def add_sub_issue(self, parent_node_id: str, child_node_id: str) -> None:
        self._graphql(
            _ADD_SUB_ISSUE,
            {"issueId": parent_node_id, "subIssueId": child_node_id},
            features="sub_issues",
        )

    # -- projects (ProjectV2) -----------------------------------------------

    def list_projects(self, owner: str) -> list[Project]:
        """Projects owned by `owner`, tried as an organization first, then as a user."""
        last_error: ProviderError | None = None
        for scope, query in (("organization", _ORG_PROJECTS), ("user", _USER_PROJECTS)):
            try:
                data = self._graphql(query, {"login": owner})
            except AuthenticationError:
                raise
            except ProviderError as exc:
                log.debug("No %s projects for %s: %s", scope, owner, exc)
                last_error = exc
                continue
            if data.get(scope):
                nodes = data[scope]["projectsV2"]["nodes"]
                return [Project(id=n["id"], name=n["title"], number=n.get("number")) for n in nodes if n]
        if last_error is not None:
            raise last_error
        return []

    def find_project(self, owner: str, name: str) -> Project | None:
        return next((p for p in self.list_projects(owner) if p.name == name), None)

    def add_issue_to_project(self, project_id: str, content_id: str) -> str:
        data = self._graphql(_ADD_PROJECT_ITEM, {"projectId": project_id, "contentId": content_id})
        return data["addProjectV2ItemById"]["item"]["id"]

    def _iter_project_items(self, project_id: str) -> Iterator[dict]:
        cursor: str | None = None
        while True:
            node = self._graphql(_PROJECT_ITEMS, {"projectId": project_id, "cursor": cursor})["node"]
            if not node:
                raise NotFoundError(f"Project '{project_id}' not found")
            items = node["items"]
            yield from items["nodes"]
            if not items["pageInfo"]["hasNextPage"]:
                return
            cursor = items["pageInfo"]["endCursor"]

    def find_project_item(
        self,
        project_id: str,
        content_id: str,
        retries: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> str | None:
        """Return the project item id for an issue, waiting 1s, 2s, 3s... for it to be indexed."""
        retries = self._item_retries if retries is None else retries
        for attempt in range(retries + 1):
            for item in self._iter_project_items(project_id):
                content = item.get("content") or {}
                if content.get("id") == content_id:
                    return item["id"]
            if attempt < retries:
                log.debug("Issue not in project yet, retrying in %ds", attempt + 1)
                sleep(attempt + 1)
        return None

    def get_project_fields(self, project_id: str) -> list[ProjectField]:
        node = self._graphql(_PROJECT_FIELDS, {"projectId": project_id})["node"]
        if not node:
            raise NotFoundError(f"Project '{project_id}' not found")
        return [
            ProjectField(id=f["id"], name=f["name"], data_type=f.get("dataType"))
            for f in node["fields"]["nodes"]
            if f and "id" in f
        ]

    def set_project_date_field(self, project_id: str, item_id: str, field_id: str, date: str) -> None:
        self._graphql(
            _SET_DATE_FIELD,
            {"projectId": project_id, "itemId": item_id, "fieldId": field_id, "date": date},
        )

    def set_project_date_fields(
        self,
        owner: str,
        project_name: str,
        content_id: str,
        due_date: str | None = None,
        start_date: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> list[StepResult]:
        """Write Target/Start dates for an issue on a project; each field fails on its own."""
        wanted = [(DUE_DATE_FIELD, due_date), (START_DATE_FIELD, start_date)]
        wanted = [(field, value) for field, value in wanted if value]
        if not wanted:
            return []

        try:
            project = self.find_project(owner, project_name)
        except (httpx.HTTPError, ProviderError) as exc:
            return [StepResult(step="github_project", outcome=Outcome.TRANSIENT_FAILURE, detail=str(exc))]
        if project is None:
            return [
                StepResult(
                    step="github_project",
                    outcome=Outcome.NOT_FOUND,
                    detail=f"Project '{project_name}' not found for {owner}",
                )
            ]

        try:
            item_id = self.find_project_item(project.id, content_id, sleep=sleep)
            fields = {f.name.lower(): f for f in self.get_project_fields(project.id)}
        except (httpx.HTTPError, ProviderError) as exc:
            return [StepResult(step="github_item", outcome=Outcome.TRANSIENT_FAILURE, detail=str(exc))]
        if item_id is None:
            return [
                StepResult(
                    step="github_item",
                    outcome=Outcome.NOT_FOUND,
                    detail=f"Issue not found in project '{project_name}'",
                )
            ]

        results = []
        for field_name, value in wanted:
            field = fields.get(field_name.lower())
            if field is None:
                results.append(
                    StepResult(
                        step=field_name,
                        outcome=Outcome.NOT_FOUND,
                        detail=f"Field '{field_name}' not found in project '{project_name}'",
                    )
                )
                continue
            try:
                self.set_project_date_field(project.id, item_id, field.id, value)  # type: ignore[arg-type]
            except (httpx.HTTPError, ProviderError) as exc:
                log.debug("Setting %s failed", field_name, exc_info=exc)
                results.append(StepResult(step=field_name, outcome=Outcome.TRANSIENT_FAILURE, detail=str(exc)))
                continue
            results.append(StepResult(step=field_name, outcome=Outcome.SUCCESS, detail=value))  # type: ignore[arg-type]
        return results
