"""CLI commands for debt CRUD: create, show, list, update, transition, transitions, delete, stats."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import click

from fixflow.cli_common import echo_json, fail, get_manager, handle_errors
from fixflow.lifecycle import SORT_FIELDS, DebtFilter
from fixflow.models import CATEGORIES, PRIORITIES, SEVERITIES, STATUSES, DebtEntry

_DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]
_CLEARABLE = {
    "due-date": "due_date",
    "context": "context",
    "assignee": "assignee",
    "effort": "estimated_effort",
    "notes": "notes",
}


def _utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _one_line(entry: DebtEntry) -> str:
    return f"{entry.id}  [{entry.severity}/{entry.priority}] {entry.status:<11} {entry.title}  ({entry.file_path}:{entry.line_number})"


def _print_entry(entry: DebtEntry) -> None:
    click.echo(f"ID:       {entry.id}")
    click.echo(f"Title:    {entry.title}")
    click.echo(f"Location: {entry.file_path}:{entry.line_number}")
    click.echo(f"Status:   {entry.status}")
    click.echo(f"Severity: {entry.severity}")
    click.echo(f"Priority: {entry.priority}")
    click.echo(f"Category: {entry.category}")
    if entry.assignee:
        click.echo(f"Assignee: {entry.assignee}")
    if entry.due_date:
        click.echo(f"Due:      {entry.due_date}")
    if entry.estimated_effort:
        click.echo(f"Effort:   {entry.estimated_effort}")
    if entry.tags:
        click.echo(f"Tags:     {', '.join(entry.tags)}")
    click.echo(f"Created:  {entry.created_at}")
    click.echo(f"Updated:  {entry.updated_at}")
    click.echo(f"\n--- Description ---\n{entry.description}")
    if entry.notes:
        click.echo(f"\n--- Notes ---\n{entry.notes}")
    if entry.context:
        click.echo(f"\n--- Context ---\n{entry.context}")


@click.command()
@click.argument("title")
@click.option("--description", "-d", required=True, help="What the debt is and why it matters")
@click.option("--file", "file_path", required=True, help="Project-relative file path")
@click.option("--line", "line_number", required=True, type=int, help="1-based line number")
@click.option("--severity", "-s", type=click.Choice(SEVERITIES), default="low", show_default=True)
@click.option("--category", "-c", type=click.Choice(CATEGORIES), default="code-quality", show_default=True)
@click.option("--priority", "-p", type=click.Choice(PRIORITIES), default="normal", show_default=True)
@click.option("--tag", "-t", "tags", multiple=True, help="Tag (repeatable)")
@click.option("--assignee", default=None, help="Assignee")
@click.option("--due", "due_date", default=None, help="Due date (ISO-8601)")
@click.option("--effort", "estimated_effort", default=None, help="Estimated effort, e.g. '2h'")
@click.option("--notes", default=None, help="Notes")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def create(
    title: str,
    description: str,
    file_path: str,
    line_number: int,
    severity: str,
    category: str,
    priority: str,
    tags: tuple[str, ...],
    assignee: str | None,
    due_date: str | None,
    estimated_effort: str | None,
    notes: str | None,
    as_json: bool,
) -> None:
    """Create a new debt entry."""
    with handle_errors(as_json):
        entry = get_manager().create_debt(
            title,
            description=description,
            file_path=file_path,
            line_number=line_number,
            severity=severity,
            category=category,
            priority=priority,
            tags=list(tags),
            assignee=assignee,
            due_date=due_date,
            estimated_effort=estimated_effort,
            notes=notes,
        )
    if as_json:
        echo_json(entry.to_dict())
    else:
        click.echo(f"Created {entry.id}: {entry.title}")


@click.command()
@click.argument("debt_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(debt_id: str, as_json: bool) -> None:
    """Show entry details."""
    with handle_errors(as_json):
        entry = get_manager().require_debt(debt_id)
    if as_json:
        echo_json(entry.to_dict())
    else:
        _print_entry(entry)


@click.command("list")
@click.option("--status", multiple=True, type=click.Choice(STATUSES), help="Filter by status (repeatable)")
@click.option("--severity", multiple=True, type=click.Choice(SEVERITIES), help="Filter by severity (repeatable)")
@click.option("--category", multiple=True, type=click.Choice(CATEGORIES), help="Filter by category (repeatable)")
@click.option("--priority", multiple=True, type=click.Choice(PRIORITIES), help="Filter by priority (repeatable)")
@click.option("--tag", multiple=True, help="Entries carrying any of these tags (repeatable)")
@click.option("--assignee", default=None, help="Filter by assignee")
@click.option("--file", "file_path", default=None, help="Only entries in this file")
@click.option("--since", type=click.DateTime(_DATE_FORMATS), default=None, help="Created at or after (UTC)")
@click.option("--until", type=click.DateTime(_DATE_FORMATS), default=None, help="Created at or before (UTC)")
@click.option("--sort", "sort_by", type=click.Choice(sorted(SORT_FIELDS)), default=None, help="Sort order")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_debts(
    status: tuple[str, ...],
    severity: tuple[str, ...],
    category: tuple[str, ...],
    priority: tuple[str, ...],
    tag: tuple[str, ...],
    assignee: str | None,
    file_path: str | None,
    since: datetime | None,
    until: datetime | None,
    sort_by: str | None,
    as_json: bool,
) -> None:
    """List debt entries with optional filters."""
    debt_filter = DebtFilter(
        statuses=frozenset(status) or None,
        severities=frozenset(severity) or None,
        categories=frozenset(category) or None,
        priorities=frozenset(priority) or None,
        tags=frozenset(tag) or None,
        assignee=assignee,
        created_after=_utc(since),
        created_before=_utc(until),
    )
    with handle_errors(as_json):
        entries = get_manager().list_debts(debt_filter, sort_by=sort_by)
    if file_path is not None:
        entries = [e for e in entries if e.file_path == file_path]

    if as_json:
        echo_json([e.to_dict() for e in entries])
        return
    for entry in entries:
        click.echo(_one_line(entry))
    click.echo(f"\n{len(entries)} entries")


@click.command()
@click.argument("debt_id")
@click.option("--title", default=None, help="New title")
@click.option("--description", "-d", default=None, help="New description")
@click.option("--file", "file_path", default=None, help="New file path")
@click.option("--line", "line_number", type=int, default=None, help="New line number")
@click.option("--severity", "-s", type=click.Choice(SEVERITIES), default=None)
@click.option("--category", "-c", type=click.Choice(CATEGORIES), default=None)
@click.option("--priority", "-p", type=click.Choice(PRIORITIES), default=None)
@click.option("--status", type=click.Choice(STATUSES), default=None, help="New status (must be an allowed transition)")
@click.option("--tag", "-t", "tags", multiple=True, help="Replace tags (repeatable)")
@click.option("--assignee", default=None, help="New assignee")
@click.option("--due", "due_date", default=None, help="New due date (ISO-8601)")
@click.option("--effort", "estimated_effort", default=None, help="New effort estimate")
@click.option("--notes", default=None, help="New notes")
@click.option("--clear", multiple=True, type=click.Choice(sorted(_CLEARABLE)), help="Clear an optional field (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def update(debt_id: str, tags: tuple[str, ...], clear: tuple[str, ...], as_json: bool, **fields: Any) -> None:
    """Update fields on an entry."""
    patch: dict[str, Any] = {k: v for k, v in fields.items() if v is not None}
    if tags:
        patch["tags"] = list(tags)
    for name in clear:
        attr = _CLEARABLE[name]
        if attr in patch:
            fail(f"Cannot both set and clear {name}", as_json=as_json)
        patch[attr] = None

    with handle_errors(as_json):
        entry = get_manager().update_debt(debt_id, patch)
    if as_json:
        echo_json(entry.to_dict())
    else:
        click.echo(f"Updated {entry.id}: {entry.title} [{entry.status}]")


@click.command()
@click.argument("debt_id")
@click.argument("status", type=click.Choice(STATUSES))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def transition(debt_id: str, status: str, as_json: bool) -> None:
    """Move an entry to a new status."""
    with handle_errors(as_json):
        entry = get_manager().transition_status(debt_id, status)
    if as_json:
        echo_json(entry.to_dict())
    else:
        click.echo(f"{entry.id}: now {entry.status}")


@click.command()
@click.argument("debt_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def transitions(debt_id: str, as_json: bool) -> None:
    """Show the statuses an entry can move to next."""
    with handle_errors(as_json):
        manager = get_manager()
        entry = manager.require_debt(debt_id)
        allowed = manager.get_valid_transitions(debt_id)
    if as_json:
        echo_json({"id": entry.id, "status": entry.status, "transitions": list(allowed)})
        return
    click.echo(f"{entry.id} is {entry.status}")
    for status in allowed:
        click.echo(f"  -> {status}")


@click.command()
@click.argument("debt_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def delete(debt_id: str, as_json: bool) -> None:
    """Delete an entry."""
    with handle_errors(as_json):
        get_manager().delete_debt(debt_id)
    if as_json:
        echo_json({"deleted": debt_id})
    else:
        click.echo(f"Deleted {debt_id}")


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def stats(as_json: bool) -> None:
    """Show counts by status, severity, category and priority."""
    with handle_errors(as_json):
        data = get_manager().get_stats()
    if as_json:
        echo_json(data)
        return
    click.echo(f"Total: {data['total']}")
    for section in ("by_status", "by_severity", "by_category", "by_priority"):
        counts = {k: v for k, v in data[section].items() if v}
        if counts:
            label = section.removeprefix("by_").capitalize()
            click.echo(f"{label}: " + ", ".join(f"{k}={v}" for k, v in counts.items()))


def register(cli: click.Group) -> None:
    """Register debt commands with the CLI group."""
    cli.add_command(create)
    cli.add_command(show)
    cli.add_command(list_debts, "list")
    cli.add_command(update)
    cli.add_command(transition)
    cli.add_command(transitions)
    cli.add_command(delete)
    cli.add_command(stats)
