"""CLI tests for admin commands (init, export, settings, check)."""

from __future__ import annotations

import json
import os
from pathlib import Path

from click.testing import CliRunner

from fixflow.cli import cli
from fixflow.config import CONFIG_FILENAME, FIXFLOW_DIR_NAME
from fixflow.storage import STORAGE_FILENAME


def _create(runner: CliRunner, title: str, *extra: str) -> str:
    result = runner.invoke(cli, ["create", title, "-d", "desc", "--file", "a.py", "--line", "1", *extra])
    assert result.exit_code == 0, result.output
    return result.output.split(":")[0].replace("Created ", "").strip()


class TestInit:
    def test_init_creates_fixflow_dir(self, tmp_path: Path, cli_runner: CliRunner) -> None:
        original = os.getcwd()
        os.chdir(str(tmp_path))
        try:
            result = cli_runner.invoke(cli, ["init"])
            assert result.exit_code == 0
            assert (tmp_path / FIXFLOW_DIR_NAME / STORAGE_FILENAME).exists()
            assert (tmp_path / FIXFLOW_DIR_NAME / CONFIG_FILENAME).exists()
            assert (tmp_path / FIXFLOW_DIR_NAME / "fixflow.log").exists()
            data = json.loads((tmp_path / FIXFLOW_DIR_NAME / STORAGE_FILENAME).read_text())
            assert data["metadata"]["projectName"] == tmp_path.name
        finally:
            os.chdir(original)

    def test_init_already_exists_keeps_entries(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        _create(runner, "Keep me")
        result = runner.invoke(cli, ["init"])
        assert result.exit_code == 0
        assert "already exists" in result.output
        assert len(json.loads(runner.invoke(cli, ["list", "--json"]).output)) == 1

    def test_init_reports_corrupt_document(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, root = cli_in_project
        (root / FIXFLOW_DIR_NAME / STORAGE_FILENAME).write_text("not json")
        result = runner.invoke(cli, ["init"])
        assert result.exit_code == 1
        assert "corrupted" in result.output


class TestExport:
    def test_export_markdown_stdout(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        _create(runner, "Visible")
        result = runner.invoke(cli, ["export"])
        assert result.exit_code == 0
        assert "# Technical Debt Report" in result.output
        assert "Visible" in result.output

    def test_export_csv_to_file(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, root = cli_in_project
        debt_id = _create(runner, "Resolved one")
        runner.invoke(cli, ["transition", debt_id, "resolved"])
        out = root / "debt.csv"

        result = runner.invoke(cli, ["export", "--format", "csv", "-o", str(out)])
        assert result.exit_code == 0
        assert out.read_text().count("\n") == 1

        runner.invoke(cli, ["export", "--format", "csv", "--include-resolved", "-o", str(out)])
        assert debt_id in out.read_text()

    def test_export_json_grouped(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        _create(runner, "A", "-c", "security")
        data = json.loads(runner.invoke(cli, ["export", "--format", "json", "--group-by", "category"]).output)
        assert list(data["groups"]) == ["security"]


class TestSettings:
    def test_show_defaults(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        data = json.loads(runner.invoke(cli, ["settings", "--json"]).output)
        assert data["autoCommit"] is False

    def test_set_values(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["settings", "--set", "autoCommit=true", "--set", "commitMessageTemplate=debt: {count}", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["autoCommit"] is True
        assert data["commitMessageTemplate"] == "debt: {count}"

    def test_unknown_setting(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["settings", "--set", "autoDeploy=true"])
        assert result.exit_code == 2
        assert "unknown setting" in result.output

    def test_bad_boolean(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["settings", "--set", "autoPush=maybe"])
        assert result.exit_code == 2


class TestCheck:
    def test_healthy(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["check"])
        assert result.exit_code == 0
        assert "OK" in result.output

    def test_corrupt_document(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, root = cli_in_project
        (root / FIXFLOW_DIR_NAME / STORAGE_FILENAME).write_text("{")
        result = runner.invoke(cli, ["check", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert any("corrupted" in p for p in data["problems"])
        assert len(data["backups"]) == 1

    def test_invalid_config(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, root = cli_in_project
        (root / FIXFLOW_DIR_NAME / CONFIG_FILENAME).write_text(json.dumps({"debtMarkers": []}))
        result = runner.invoke(cli, ["check"])
        assert result.exit_code == 1
        assert "config: debtMarkers cannot be empty" in result.output
