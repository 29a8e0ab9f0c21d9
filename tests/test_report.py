"""Tests for the report exporter."""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Callable
from datetime import UTC, datetime

import pytest

from fixflow.errors import ValidationError
from fixflow.models import DebtEntry
from fixflow.report import ExportOptions, export_report, group_entries

STAMP = "2024-02-01T00:00:00+00:00"


@pytest.fixture
def entries(entry_factory: Callable[..., DebtEntry]) -> list[DebtEntry]:
    return [
        entry_factory(id="d1", title="Open high", severity="high", category="security", assignee="alice", tags=["auth"]),
        entry_factory(id="d2", title="Open low", severity="low", category="performance"),
        entry_factory(id="d3", title="Done", status="resolved", severity="critical", created_at="2023-06-01T00:00:00+00:00"),
    ]


class TestOptions:
    def test_invalid_format(self) -> None:
        with pytest.raises(ValidationError, match="export format"):
            ExportOptions(format="pdf")

    def test_invalid_group(self) -> None:
        with pytest.raises(ValidationError, match="group field"):
            ExportOptions(group_by="title")


class TestSelection:
    def test_resolved_excluded_by_default(self, entries: list[DebtEntry]) -> None:
        data = json.loads(export_report(entries, ExportOptions(format="json"), generated_at=STAMP))
        assert [e["id"] for e in data["entries"]] == ["d1", "d2"]
        assert data["totalCount"] == 2

    def test_include_resolved(self, entries: list[DebtEntry]) -> None:
        options = ExportOptions(format="json", include_resolved=True)
        data = json.loads(export_report(entries, options, generated_at=STAMP))
        assert [e["id"] for e in data["entries"]] == ["d1", "d2", "d3"]

    def test_date_range(self, entries: list[DebtEntry]) -> None:
        options = ExportOptions(
            format="json",
            include_resolved=True,
            date_range=(datetime(2023, 1, 1, tzinfo=UTC), datetime(2023, 12, 31, tzinfo=UTC)),
        )
        data = json.loads(export_report(entries, options, generated_at=STAMP))
        assert [e["id"] for e in data["entries"]] == ["d3"]


class TestMarkdown:
    def test_header_and_entries(self, entries: list[DebtEntry]) -> None:
        text = export_report(entries, generated_at=STAMP)
        assert text.startswith("# Technical Debt Report\n")
        assert f"Generated: {STAMP}" in text
        assert "Total items: 2" in text
        assert "### [HIGH] Open high" in text
        assert "`src/parser.py:12`" in text
        assert "Done" not in text

    def test_grouped_by_severity_most_severe_first(self, entries: list[DebtEntry]) -> None:
        text = export_report(entries, ExportOptions(group_by="severity", include_resolved=True), generated_at=STAMP)
        assert text.index("## critical (1)") < text.index("## high (1)") < text.index("## low (1)")

    def test_titles_sanitized(self, entry_factory: Callable[..., DebtEntry]) -> None:
        entry = entry_factory(title="Line one\n## injected\x07")
        text = export_report([entry], generated_at=STAMP)
        assert "### [LOW] Line one ## injected" in text
        assert "\x07" not in text
        assert "\n## injected" not in text

    def test_empty(self) -> None:
        assert "No technical debt items found." in export_report([], generated_at=STAMP)


class TestJsonAndCsv:
    def test_json_grouped_by_assignee(self, entries: list[DebtEntry]) -> None:
        data = json.loads(export_report(entries, ExportOptions(format="json", group_by="assignee"), generated_at=STAMP))
        assert data["groupBy"] == "assignee"
        assert list(data["groups"]) == ["alice", "unassigned"]

    def test_csv_rows(self, entries: list[DebtEntry]) -> None:
        rows = list(csv.DictReader(io.StringIO(export_report(entries, ExportOptions(format="csv")))))
        assert [r["id"] for r in rows] == ["d1", "d2"]
        assert rows[0]["tags"] == "auth"
        assert rows[0]["filePath"] == "src/parser.py"
        assert rows[1]["assignee"] == ""

    def test_group_entries_category_order(self, entries: list[DebtEntry]) -> None:
        groups = group_entries(entries, "category")
        assert list(groups) == ["code-quality", "performance", "security"]
