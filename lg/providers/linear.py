"""Linear GraphQL API provider."""

import logging
import re
import time
from collections.abc import Callable

import httpx

from lg.models import Label, Project, SyncResult, Team
from lg.providers.base import AuthenticationError, NotFoundError, ProviderError
from lg.settings import LgSettings
from lg.sync import RetryCallback, wait_for_issue

log = logging.getLogger(__name__)

ENDPOINT = "https://api.linear.app/graphql"

GITHUB_ISSUE_URL_RE = re.compile(r"https://github\.com/[^/]+/[^/]+/issues/(\d+)")
_IDENTIFIER_RE = re.compile(r"([A-Z]+)-(\d+)")

_LIST_PROJECTS = """
query ListProjects {
  projects(first: 100) {
    nodes { id name }
  }
}
"""

_FIND_PROJECT = """
query FindProject($name: String!) {
  projects(filter: { name: { eq: $name } }) {
    nodes { id name }
  }
}
"""

_LIST_TEAMS = """
query ListTeams {
  teams {
    nodes { id name key }
  }
}
"""

_FIND_TEAM_BY_KEY = """
query FindTeam($key: String!) {
  teams(filter: { key: { eq: $key } }) {
    nodes { id }
  }
}
"""

_LIST_TEAM_LABELS = """
query TeamLabels($teamId: String!) {
  team(id: $teamId) {
    labels(first: 250) {
      nodes { id name }
    }
  }
}
"""

_CREATE_LABEL = """
mutation CreateLabel($teamId: String!, $name: String!) {
  issueLabelCreate(input: { teamId: $teamId, name: $name }) {
    success
    issueLabel { id name }
  }
}
"""

_GET_ISSUE = """
query GetIssue($id: String!) {
  issue(id: $id) {
    id
    identifier
    title
    team { id }
    project { id name }
    attachments { nodes { url } }
  }
}
"""

_FIND_ISSUE_BY_ATTACHMENT = """
query FindIssueByAttachment($url: String!) {
  issues(first: 1, filter: { attachments: { url: { contains: $url } } }) {
    nodes { id identifier }
  }
}
"""

_FIND_ISSUE_BY_NUMBER = """
query FindIssueByNumber($teamId: ID!, $number: Float!) {
  issues(filter: { team: { id: { eq: $teamId } }, number: { eq: $number } }) {
    nodes { id }
  }
}
"""

_UPDATE_ISSUE = """
mutation UpdateIssue($id: String!, $input: IssueUpdateInput!) {
  issueUpdate(id: $id, input: $input) {
    success
    issue { id }
  }
}
"""


def _is_auth_error(errors: list) -> bool:
    for error in errors:
        extensions = error.get("extensions") or {}
        kind = f"{extensions.get('type', '')} {extensions.get('code', '')}".lower()
        if "authentication" in kind:
            return True
    return False


class LinearProvider:
    def __init__(self, settings: LgSettings) -> None:
        if not settings.linear_api_key:
            raise RuntimeError("linear_api_key is required")
        self._api_key = settings.linear_api_key.get_secret_value()

    def _gql(self, query: str, variables: dict | None = None) -> dict:
        response = httpx.post(
            ENDPOINT,
            json={"query": query, "variables": variables or {}},
            headers={
                "Authorization": self._api_key,
                "Content-Type": "application/json",
            },
            timeout=30,
        )
        if response.status_code == 401:
            raise AuthenticationError("Linear API returned 401. Check LINEAR_API_KEY.")
        try:
            data = response.json()
        except ValueError:
            response.raise_for_status()
            raise ProviderError(f"Linear API returned a non-JSON response ({response.status_code})")
        if data.get("errors"):
            if _is_auth_error(data["errors"]):
                raise AuthenticationError(f"Linear API rejected the API key: {data['errors']}")
            raise ProviderError(f"Linear API error: {data['errors']}")
        response.raise_for_status()
        return data["data"]

    # -- projects / teams / labels ------------------------------------------

    def list_projects(self) -> list[Project]:
        data = self._gql(_LIST_PROJECTS)
        return [Project(id=n["id"], name=n["name"]) for n in data["projects"]["nodes"]]

    def find_project_by_name(self, name: str) -> str | None:
        try:
            nodes = self._gql(_FIND_PROJECT, {"name": name})["projects"]["nodes"]
        except AuthenticationError:
            raise
        except ProviderError as exc:
            # Filtered query rejected: fall back to scanning every project
            log.debug("Project filter failed (%s), scanning all projects", exc)
            return next((p.id for p in self.list_projects() if p.name == name), None)
        return nodes[0]["id"] if nodes else None

    def list_teams(self) -> list[Team]:
        data = self._gql(_LIST_TEAMS)
        return [Team(id=n["id"], name=n["name"], key=n["key"]) for n in data["teams"]["nodes"]]

    def list_labels(self, team_id: str) -> list[Label]:
        team = self._gql(_LIST_TEAM_LABELS, {"teamId": team_id})["team"]
        if not team:
            raise NotFoundError(f"Team '{team_id}' not found in Linear")
        return [Label(id=n["id"], name=n["name"]) for n in team["labels"]["nodes"]]

    def create_label(self, team_id: str, name: str) -> Label:
        result = self._gql(_CREATE_LABEL, {"teamId": team_id, "name": name})["issueLabelCreate"]
        if not result["success"] or not result.get("issueLabel"):
            raise ProviderError(f"Linear issueLabelCreate returned success=false for '{name}'")
        label = result["issueLabel"]
        return Label(id=label["id"], name=label.get("name", name))

    def find_or_create_label(self, team_id: str, name: str, existing: list[Label] | None = None) -> str:
        """Return the id of the team label named `name` (case-insensitive), creating it if absent."""
        labels = existing if existing is not None else self.list_labels(team_id)
        for label in labels:
            if label.name.lower() == name.lower():
                return label.id
        log.debug("Creating Linear label %r in team %s", name, team_id)
        return self.create_label(team_id, name).id

    # -- issues -------------------------------------------------------------

    def _get_issue_node(self, issue_id: str) -> dict:
        node = self._gql(_GET_ISSUE, {"id": issue_id})["issue"]
        if not node:
            raise NotFoundError(f"Issue '{issue_id}' not found in Linear")
        return node

    def get_issue_team_id(self, issue_id: str) -> str:
        team = self._get_issue_node(issue_id).get("team")
        if not team:
            raise NotFoundError(f"Could not determine team for Linear issue '{issue_id}'")
        return team["id"]

    def get_issue_identifier(self, issue_id: str) -> str | None:
        return self._get_issue_node(issue_id).get("identifier") or None

    def find_issue_by_github_url(self, github_url: str) -> str | None:
        nodes = self._gql(_FIND_ISSUE_BY_ATTACHMENT, {"url": github_url})["issues"]["nodes"]
        return nodes[0]["id"] if nodes else None

    def wait_for_issue_by_github_url(
        self,
        github_url: str,
        *,
        max_wait_ms: int = 10_000,
        interval_ms: int = 500,
        on_retry: RetryCallback | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> SyncResult:
        """Poll until Linear's GitHub sync has created the issue linked to github_url."""
        return wait_for_issue(
            self.find_issue_by_github_url,
            github_url,
            max_wait_ms=max_wait_ms,
            interval_ms=interval_ms,
            on_retry=on_retry,
            sleep=sleep,
        )

    def find_issue_by_identifier(self, identifier: str) -> str | None:
        """Resolve "LEA-123" to the Linear issue id via team key + issue number."""
        match = _IDENTIFIER_RE.search(identifier)
        if not match:
            return None
        team_key, number = match.group(1), int(match.group(2))

        teams = self._gql(_FIND_TEAM_BY_KEY, {"key": team_key})["teams"]["nodes"]
        if not teams:
            log.debug("Linear team %r not found", team_key)
            return None

        nodes = self._gql(_FIND_ISSUE_BY_NUMBER, {"teamId": teams[0]["id"], "number": number})["issues"]["nodes"]
        if not nodes:
            log.debug("Linear issue %s not found", identifier)
            return None
        return nodes[0]["id"] or None

    def get_issue_title(self, identifier: str) -> str | None:
        issue_id = self.find_issue_by_identifier(identifier)
        if not issue_id:
            return None
        return self._get_issue_node(issue_id).get("title") or None

    def get_github_issue_number(self, identifier: str) -> int | None:
        """GitHub issue number parsed from the Linear issue's attachment URLs.

        Linear has no dedicated field for the synced GitHub issue, so the
        attachment created by the GitHub integration is the only source.
        """
        issue_id = self.find_issue_by_identifier(identifier)
        if not issue_id:
            return None
        attachments = self._get_issue_node(issue_id).get("attachments") or {}
        for attachment in attachments.get("nodes", []):
            match = GITHUB_ISSUE_URL_RE.search(attachment.get("url") or "")
            if match:
                return int(match.group(1))
        return None

    def update_issue_metadata(
        self,
        issue_id: str,
        due_date: str | None = None,
        project_id: str | None = None,
        label_ids: list[str] | None = None,
    ) -> None:
        update_input: dict = {}
        if due_date:
            update_input["dueDate"] = due_date
        if project_id:
            update_input["projectId"] = project_id
        if label_ids:
            update_input["labelIds"] = label_ids
        if not update_input:
            return

        result = self._gql(_UPDATE_ISSUE, {"id": issue_id, "input": update_input})["issueUpdate"]
        if not result["success"]:
            raise ProviderError("Linear issueUpdate returned success=false")
