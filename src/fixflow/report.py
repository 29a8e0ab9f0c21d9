"""Render the debt list as a markdown, JSON or CSV report."""

from __future__ import annotations

import csv
import io
import json
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal

from fixflow.errors import ValidationError
from fixflow.models import CATEGORIES, SEVERITIES, STATUSES, DebtEntry

ExportFormat = Literal["markdown", "json", "csv"]
GroupBy = Literal["category", "severity", "status", "assignee"]

EXPORT_FORMATS: tuple[str, ...] = ("markdown", "json", "csv")
GROUP_FIELDS: tuple[str, ...] = ("category", "severity", "status", "assignee")
RESOLVED_STATUSES = frozenset({"resolved", "closed"})
UNASSIGNED = "unassigned"

CSV_COLUMNS: tuple[str, ...] = (
    "id",
    "title",
    "description",
    "filePath",
    "lineNumber",
    "severity",
    "category",
    "status",
    "priority",
    "assignee",
    "tags",
    "createdAt",
    "updatedAt",
)

# Matches C0/C1 control characters except tab/newline (which we handle separately)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")


def _sanitize_title(text: str) -> str:
    """Strip control characters and collapse newlines so text stays on one markdown line."""
    text = _CONTROL_CHARS_RE.sub("", text)
    text = text.replace("\r\n", " ").replace("\r", " ").replace("\n", " ")
    return " ".join(text.split())


@dataclass(frozen=True)
class ExportOptions:
    format: str = "markdown"
    include_resolved: bool = False
    group_by: str | None = None
    date_range: tuple[datetime | None, datetime | None] | None = None

    def __post_init__(self) -> None:
        if self.format not in EXPORT_FORMATS:
            msg = f'Invalid export format "{self.format}". Must be one of: {", ".join(EXPORT_FORMATS)}'
            raise ValidationError(msg)
        if self.group_by is not None and self.group_by not in GROUP_FIELDS:
            msg = f'Invalid group field "{self.group_by}". Must be one of: {", ".join(GROUP_FIELDS)}'
            raise ValidationError(msg)


def _created(entry: DebtEntry) -> datetime | None:
    try:
        dt = datetime.fromisoformat(entry.created_at)
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=UTC)


def select_entries(entries: Iterable[DebtEntry], options: ExportOptions) -> list[DebtEntry]:
    """Entries the report covers, in input order."""
    selected = []
    for entry in entries:
        if not options.include_resolved and entry.status in RESOLVED_STATUSES:
            continue
        if options.date_range is not None:
            start, end = options.date_range
            created = _created(entry)
            if created is None:
                continue
            if start is not None and created < start.astimezone(UTC):
                continue
            if end is not None and created > end.astimezone(UTC):
                continue
        selected.append(entry)
    return selected


def _group_key(entry: DebtEntry, group_by: str) -> str:
    if group_by == "assignee":
        return entry.assignee or UNASSIGNED
    return str(getattr(entry, group_by))


def _group_order(group_by: str) -> tuple[str, ...]:
    # Severity groups read most severe first.
    return {
        "severity": tuple(reversed(SEVERITIES)),
        "category": CATEGORIES,
        "status": STATUSES,
    }.get(group_by, ())


def group_entries(entries: list[DebtEntry], group_by: str) -> dict[str, list[DebtEntry]]:
    """Group entries by a field. Known enum values come in canonical order, the rest alphabetically."""
    groups: dict[str, list[DebtEntry]] = {}
    for entry in entries:
        groups.setdefault(_group_key(entry, group_by), []).append(entry)
    order = _group_order(group_by)
    ranked = [k for k in order if k in groups]
    ranked += sorted(k for k in groups if k not in order)
    return {k: groups[k] for k in ranked}


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def _markdown_entry(entry: DebtEntry) -> list[str]:
    lines = [
        f"### [{entry.severity.upper()}] {_sanitize_title(entry.title)}",
        "",
        f"- **ID:** {entry.id}",
        f"- **Location:** `{entry.file_path}:{entry.line_number}`",
        f"- **Category:** {entry.category}",
        f"- **Status:** {entry.status}",
        f"- **Priority:** {entry.priority}",
    ]
    if entry.assignee:
        lines.append(f"- **Assignee:** {_sanitize_title(entry.assignee)}")
    if entry.due_date:
        lines.append(f"- **Due:** {entry.due_date}")
    if entry.tags:
        lines.append(f"- **Tags:** {', '.join(_sanitize_title(t) for t in entry.tags)}")
    lines.append("")
    lines.append(_sanitize_title(entry.description))
    lines.append("")
    return lines


def render_markdown(entries: list[DebtEntry], options: ExportOptions, *, generated_at: str) -> str:
    lines = [
        "# Technical Debt Report",
        "",
        f"Generated: {generated_at}",
        f"Total items: {len(entries)}",
        "",
    ]
    if not entries:
        lines.append("No technical debt items found.")
        return "\n".join(lines) + "\n"

    if options.group_by is None:
        for entry in entries:
            lines.extend(_markdown_entry(entry))
    else:
        for key, members in group_entries(entries, options.group_by).items():
            lines.append(f"## {_sanitize_title(key)} ({len(members)})")
            lines.append("")
            for entry in members:
                lines.extend(_markdown_entry(entry))
    return "\n".join(lines).rstrip("\n") + "\n"


def render_json(entries: list[DebtEntry], options: ExportOptions, *, generated_at: str) -> str:
    payload: dict[str, object] = {"generatedAt": generated_at, "totalCount": len(entries)}
    if options.group_by is None:
        payload["entries"] = [e.to_dict() for e in entries]
    else:
        payload["groupBy"] = options.group_by
        payload["groups"] = {k: [e.to_dict() for e in v] for k, v in group_entries(entries, options.group_by).items()}
    return json.dumps(payload, indent=2) + "\n"


def render_csv(entries: list[DebtEntry], options: ExportOptions) -> str:
    """One row per entry; grouping only affects row order. Tags are joined with ``;``."""
    if options.group_by is not None:
        entries = [e for members in group_entries(entries, options.group_by).values() for e in members]
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for entry in entries:
        data = entry.to_dict()
        row = []
        for col in CSV_COLUMNS:
            value = data.get(col, "")
            row.append(";".join(value) if col == "tags" else value)
        writer.writerow(row)
    return buf.getvalue()


def export_report(
    entries: Iterable[DebtEntry],
    options: ExportOptions | None = None,
    *,
    generated_at: str | None = None,
) -> str:
    """Render *entries* according to *options* (markdown, all open items, ungrouped by default)."""
    options = options or ExportOptions()
    selected = select_entries(entries, options)
    stamp = generated_at or datetime.now(UTC).isoformat()
    if options.format == "json":
        return render_json(selected, options, generated_at=stamp)
    if options.format == "csv":
        return render_csv(selected, options)
    return render_markdown(selected, options, generated_at=stamp)
