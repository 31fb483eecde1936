"""Tests for the interactive prompt helpers with typer.prompt / typer.confirm patched."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import typer

from lg import prompts
from lg.models import GitHubIssueSummary, Project, Repository
from lg.providers.base import ProviderError


class TestIsValidDate:
    @pytest.mark.parametrize("value", ["2025-12-31", "2024-02-29", "2000-01-01"])
    def test_valid(self, value: str) -> None:
        assert prompts.is_valid_date(value)

    @pytest.mark.parametrize("value", ["", "2025-13-01", "2025-02-30", "2023-02-29", "25-12-31", "2025/12/31", "tomorrow"])
    def test_invalid(self, value: str) -> None:
        assert not prompts.is_valid_date(value)


class TestResolveEditorCommand:
    def test_configured_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EDITOR", "nano")
        assert prompts.resolve_editor_command("vim") == "vim"

    def test_visual_before_editor(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VISUAL", "emacs")
        monkeypatch.setenv("EDITOR", "nano")
        assert prompts.resolve_editor_command() == "emacs"

    def test_defaults_to_vim(self) -> None:
        assert prompts.resolve_editor_command() == "vim"

    @pytest.mark.parametrize(
        ("editor", "expected"),
        [
            ("code", "code --wait"),
            ("/usr/local/bin/cursor", "/usr/local/bin/cursor --wait"),
            ("subl", "subl -w"),
            ("code --wait", "code --wait"),
            ("subl -w", "subl -w"),
        ],
    )
    def test_gui_editors_wait(self, editor: str, expected: str) -> None:
        assert prompts.resolve_editor_command(editor) == expected


class TestChoose:
    def test_returns_value_of_picked_row(self) -> None:
        with patch("lg.prompts.typer.prompt", return_value=2):
            assert prompts.choose("Pick", [("a", "A"), ("b", "B")]) == "B"

    def test_reprompts_out_of_range(self) -> None:
        with patch("lg.prompts.typer.prompt", side_effect=[0, 3, 1]) as prompt:
            assert prompts.choose("Pick", [("a", "A"), ("b", "B")]) == "A"
        assert prompt.call_count == 3

    def test_skip(self) -> None:
        with patch("lg.prompts.typer.prompt", return_value=0):
            assert prompts.choose("Pick", [("a", "A")], allow_skip=True) is None

    def test_no_options(self) -> None:
        assert prompts.choose("Pick", []) is None


class TestChooseMany:
    def test_picks_in_order_without_duplicates(self) -> None:
        with patch("lg.prompts.typer.prompt", return_value="3, 1,3"):
            assert prompts.choose_many("Labels", ["chore", "feat", "fix"]) == ["fix", "chore"]

    def test_blank_picks_none(self) -> None:
        with patch("lg.prompts.typer.prompt", return_value=""):
            assert prompts.choose_many("Labels", ["chore"]) == []

    def test_reprompts_on_garbage(self) -> None:
        with patch("lg.prompts.typer.prompt", side_effect=["x", "9", "2"]):
            assert prompts.choose_many("Labels", ["chore", "feat"]) == ["feat"]


class TestSelectors:
    def test_select_repository(self) -> None:
        github = MagicMock()
        github.list_repositories.return_value = [Repository(owner="acme", name="app")]
        with patch("lg.prompts.typer.prompt", return_value=1):
            assert prompts.select_repository(github) == "acme/app"

    def test_select_repository_none_exits(self) -> None:
        github = MagicMock()
        github.list_repositories.return_value = []
        with pytest.raises(typer.Exit):
            prompts.select_repository(github)

    def test_select_project_uses_repo_owner(self) -> None:
        github = MagicMock()
        github.list_projects.return_value = [Project(id="PVT_1", name="Roadmap")]
        with patch("lg.prompts.typer.prompt", return_value=1):
            assert prompts.select_project(github, "acme/app") == "Roadmap"
        github.list_projects.assert_called_once_with("acme")

    def test_select_project_scope_error_continue(self, capsys: pytest.CaptureFixture) -> None:
        github = MagicMock()
        github.list_projects.side_effect = ProviderError("GitHub GraphQL error: missing scope read:project")
        with patch("lg.prompts.typer.confirm", return_value=True):
            assert prompts.select_project(github, "acme/app") is None
        assert "gh auth refresh -s read:project" in capsys.readouterr().out

    def test_select_project_error_cancel(self) -> None:
        github = MagicMock()
        github.list_projects.side_effect = ProviderError("boom")
        with patch("lg.prompts.typer.confirm", return_value=False):
            with pytest.raises(typer.Exit):
                prompts.select_project(github, "acme/app")

    def test_select_parent_issue(self) -> None:
        github = MagicMock()
        github.list_open_issues.return_value = [
            GitHubIssueSummary(number=12, title="Epic", state="OPEN"),
            GitHubIssueSummary(number=13, title="Other", state="OPEN"),
        ]
        with patch("lg.prompts.typer.prompt", return_value=2):
            assert prompts.select_parent_issue(github, "acme/app") == 13

    def test_select_parent_issue_none_open(self) -> None:
        github = MagicMock()
        github.list_open_issues.return_value = []
        with pytest.raises(typer.Exit):
            prompts.select_parent_issue(github, "acme/app")

    def test_select_commit_type(self) -> None:
        with patch("lg.prompts.typer.prompt", return_value=2):
            assert prompts.select_commit_type() == "fix"


class TestPromptIssueDetails:
    def test_collects_answers(self) -> None:
        github = MagicMock()
        github.list_labels.return_value = ["chore", "fix"]
        answers = ["", "Fix login bug", "", "2025-13-01", "2025-12-31", "2"]
        with (
            patch("lg.prompts.sys.stdin") as stdin,
            patch("lg.prompts.typer.prompt", side_effect=answers),
        ):
            stdin.isatty.return_value = False
            details = prompts.prompt_issue_details(github, "acme/app")

        assert details.title == "Fix login bug"
        assert details.description == ""
        assert details.start_date is None
        assert details.due_date == "2025-12-31"
        assert details.labels == ["fix"]

    def test_description_from_editor(self, tmp_path: Path) -> None:
        editor = tmp_path / "fake-editor"
        editor.write_text("#!/bin/sh\nprintf 'Steps to reproduce\\n\\n' > \"$1\"\n")
        editor.chmod(0o755)
        github = MagicMock()
        github.list_labels.return_value = []
        with (
            patch("lg.prompts.sys.stdin") as stdin,
            patch("lg.prompts.typer.confirm", return_value=True),
            patch("lg.prompts.typer.prompt", side_effect=["Title", "2025-12-01", "2025-12-31"]),
        ):
            stdin.isatty.return_value = True
            details = prompts.prompt_issue_details(github, "acme/app", editor=str(editor))

        assert details.description == "Steps to reproduce"
        assert details.start_date == "2025-12-01"

    def test_gui_editor_gets_wait_flag(self) -> None:
        with (
            patch("lg.prompts.sys.stdin") as stdin,
            patch("lg.prompts.typer.confirm", return_value=True),
            patch("lg.prompts.click.edit", return_value="text\n") as edit,
        ):
            stdin.isatty.return_value = True
            assert prompts._prompt_description("code") == "text"
        assert edit.call_args.kwargs["editor"] == "code --wait"

    def test_editor_failure_falls_back_to_prompt(self, tmp_path: Path) -> None:
        with (
            patch("lg.prompts.sys.stdin") as stdin,
            patch("lg.prompts.typer.confirm", return_value=True),
            patch("lg.prompts.typer.prompt", return_value="one line"),
        ):
            stdin.isatty.return_value = True
            assert prompts._prompt_description(str(tmp_path / "missing-editor")) == "one line"
