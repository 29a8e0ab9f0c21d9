"""CLI tests for debt CRUD commands (create, show, list, update, transition, delete, stats)."""

from __future__ import annotations

import json
import os
from pathlib import Path

from click.testing import CliRunner

from fixflow.cli import cli


def _create(runner: CliRunner, title: str = "Fix the parser", *extra: str) -> str:
    result = runner.invoke(
        cli,
        ["create", title, "-d", "Parser is slow", "--file", "src/parser.py", "--line", "12", *extra],
    )
    assert result.exit_code == 0, result.output
    # "Created debt-...: title"
    return result.output.split(":")[0].replace("Created ", "").strip()


class TestCreate:
    def test_create_basic(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["create", "Fix it", "-d", "desc", "--file", "a.py", "--line", "1"])
        assert result.exit_code == 0
        assert "Created debt-" in result.output
        assert "Fix it" in result.output

    def test_create_with_options_json(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(
            cli,
            [
                "create",
                "Slow query",
                "-d",
                "N+1",
                "--file",
                "db.py",
                "--line",
                "7",
                "-s",
                "high",
                "-c",
                "performance",
                "-p",
                "urgent",
                "-t",
                "db",
                "-t",
                "perf",
                "--assignee",
                "alice",
                "--json",
            ],
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["severity"] == "high"
        assert data["category"] == "performance"
        assert data["priority"] == "urgent"
        assert data["tags"] == ["db", "perf"]
        assert data["assignee"] == "alice"
        assert data["lineNumber"] == 7

    def test_create_validation_error(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["create", "x" * 101, "-d", "desc", "--file", "a.py", "--line", "1"])
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "100 characters" in result.output

    def test_create_validation_error_json(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["create", "t", "-d", "desc", "--file", "a.py", "--line", "0", "--json"])
        assert result.exit_code == 1
        assert "Line number" in json.loads(result.output)["error"]

    def test_create_bad_choice(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["create", "t", "-d", "d", "--file", "a.py", "--line", "1", "-s", "extreme"])
        assert result.exit_code == 2


class TestShow:
    def test_show(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        debt_id = _create(runner)
        result = runner.invoke(cli, ["show", debt_id])
        assert result.exit_code == 0
        assert f"ID:       {debt_id}" in result.output
        assert "Location: src/parser.py:12" in result.output
        assert "Parser is slow" in result.output

    def test_show_json(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        debt_id = _create(runner)
        data = json.loads(runner.invoke(cli, ["show", debt_id, "--json"]).output)
        assert data["id"] == debt_id

    def test_show_not_found(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["show", "debt-0-nope00"])
        assert result.exit_code == 1
        assert "Debt not found: debt-0-nope00" in result.output


class TestList:
    def test_list_all(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        _create(runner, "First")
        _create(runner, "Second")
        result = runner.invoke(cli, ["list"])
        assert result.exit_code == 0
        assert "First" in result.output
        assert "Second" in result.output
        assert "2 entries" in result.output

    def test_list_filters(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        _create(runner, "Minor")
        _create(runner, "Major", "-s", "critical", "-t", "core")
        result = runner.invoke(cli, ["list", "--severity", "critical", "--json"])
        assert [e["title"] for e in json.loads(result.output)] == ["Major"]
        result = runner.invoke(cli, ["list", "--tag", "core", "--json"])
        assert [e["title"] for e in json.loads(result.output)] == ["Major"]
        result = runner.invoke(cli, ["list", "--file", "other.py", "--json"])
        assert json.loads(result.output) == []

    def test_list_sort(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        _create(runner, "Minor")
        _create(runner, "Major", "-s", "critical")
        result = runner.invoke(cli, ["list", "--sort", "severity", "--json"])
        assert [e["title"] for e in json.loads(result.output)] == ["Major", "Minor"]

    def test_list_since(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        _create(runner)
        result = runner.invoke(cli, ["list", "--until", "2000-01-01", "--json"])
        assert json.loads(result.output) == []


class TestUpdate:
    def test_update_fields(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        debt_id = _create(runner)
        result = runner.invoke(cli, ["update", debt_id, "--title", "Renamed", "-p", "high", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["title"] == "Renamed"
        assert data["priority"] == "high"
        assert data["description"] == "Parser is slow"

    def test_update_clear(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        debt_id = _create(runner, "t", "--assignee", "bob")
        data = json.loads(runner.invoke(cli, ["update", debt_id, "--clear", "assignee", "--json"]).output)
        assert "assignee" not in data

    def test_update_set_and_clear_conflict(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        debt_id = _create(runner)
        result = runner.invoke(cli, ["update", debt_id, "--notes", "x", "--clear", "notes"])
        assert result.exit_code == 1
        assert "Cannot both set and clear notes" in result.output

    def test_update_invalid_status_change(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        debt_id = _create(runner)
        runner.invoke(cli, ["transition", debt_id, "closed"])
        result = runner.invoke(cli, ["update", debt_id, "--status", "review"])
        assert result.exit_code == 1
        assert "Invalid status transition" in result.output


class TestTransition:
    def test_transition(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        debt_id = _create(runner)
        result = runner.invoke(cli, ["transition", debt_id, "in-progress"])
        assert result.exit_code == 0
        assert "now in-progress" in result.output

    def test_closed_to_review_rejected(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        debt_id = _create(runner)
        runner.invoke(cli, ["transition", debt_id, "closed"])
        result = runner.invoke(cli, ["transition", debt_id, "review", "--json"])
        assert result.exit_code == 1
        assert "'closed' -> 'review'" in json.loads(result.output)["error"]

    def test_transitions(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        debt_id = _create(runner)
        runner.invoke(cli, ["transition", debt_id, "resolved"])
        data = json.loads(runner.invoke(cli, ["transitions", debt_id, "--json"]).output)
        assert data == {"id": debt_id, "status": "resolved", "transitions": ["closed", "open"]}


class TestDelete:
    def test_delete(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        debt_id = _create(runner)
        result = runner.invoke(cli, ["delete", debt_id])
        assert result.exit_code == 0
        assert f"Deleted {debt_id}" in result.output
        again = runner.invoke(cli, ["delete", debt_id])
        assert again.exit_code == 1
        assert "Debt not found" in again.output


class TestStats:
    def test_stats(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        _create(runner)
        _create(runner, "Other", "-s", "high")
        data = json.loads(runner.invoke(cli, ["stats", "--json"]).output)
        assert data["total"] == 2
        assert data["by_severity"]["high"] == 1
        text = runner.invoke(cli, ["stats"]).output
        assert "Total: 2" in text
        assert "Severity: low=1, high=1" in text


class TestNoProject:
    def test_commands_require_init(self, tmp_path: Path, cli_runner: CliRunner) -> None:
        original = os.getcwd()
        os.chdir(str(tmp_path))
        try:
            result = cli_runner.invoke(cli, ["list"])
            assert result.exit_code == 1
            assert "Run 'fixflow init' first" in result.output
        finally:
            os.chdir(original)
