"""CLI commands for admin: init, export, settings, check."""

from __future__ import annotations

import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import click

from fixflow.cli_common import echo_json, fail, get_manager, get_provider, get_storage, handle_errors
from fixflow.config import CONFIG_FILENAME, FIXFLOW_DIR_NAME, ConfigurationProvider, config_problems, default_config, write_config
from fixflow.errors import FixflowError
from fixflow.models import SETTINGS_KEYS
from fixflow.report import EXPORT_FORMATS, GROUP_FIELDS, ExportOptions, export_report

_DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]
_SETTING_NAMES: dict[str, str] = {**{v: k for k, v in SETTINGS_KEYS.items()}, **{k: k for k in SETTINGS_KEYS}}


@click.command()
def init() -> None:
    """Initialize .fixflow/ in the current directory."""
    cwd = Path.cwd()
    fixflow_dir = cwd / FIXFLOW_DIR_NAME

    if fixflow_dir.exists():
        click.echo(f"{FIXFLOW_DIR_NAME}/ already exists in {cwd}")
        # Still ensure the document exists and is valid
        with handle_errors():
            get_storage(ConfigurationProvider.load(cwd)).initialize()
        return

    fixflow_dir.mkdir()
    write_config(fixflow_dir, default_config())
    provider = ConfigurationProvider.load(cwd)
    storage = get_storage(provider)
    with handle_errors():
        storage.initialize()

    click.echo(f"Initialized {FIXFLOW_DIR_NAME}/ in {cwd}")
    click.echo(f"  Project: {provider.project_name}")
    click.echo(f"  Storage: {storage.storage_path}")
    click.echo(f"  Config:  {fixflow_dir / CONFIG_FILENAME}")
    click.echo("\nNext: fixflow scan")


@click.command("export")
@click.option("--format", "fmt", type=click.Choice(EXPORT_FORMATS), default="markdown", show_default=True)
@click.option("--include-resolved", is_flag=True, help="Include resolved and closed entries")
@click.option("--group-by", type=click.Choice(GROUP_FIELDS), default=None, help="Group entries by field")
@click.option("--since", type=click.DateTime(_DATE_FORMATS), default=None, help="Created at or after (UTC)")
@click.option("--until", type=click.DateTime(_DATE_FORMATS), default=None, help="Created at or before (UTC)")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Write to file instead of stdout")
def export_cmd(
    fmt: str,
    include_resolved: bool,
    group_by: str | None,
    since: datetime | None,
    until: datetime | None,
    output: Path | None,
) -> None:
    """Export a debt report as markdown, JSON or CSV."""
    date_range = None
    if since is not None or until is not None:
        date_range = (
            since.replace(tzinfo=UTC) if since else None,
            until.replace(tzinfo=UTC) if until else None,
        )
    options = ExportOptions(format=fmt, include_resolved=include_resolved, group_by=group_by, date_range=date_range)
    with handle_errors():
        entries = get_manager().get_all_debts()
    text = export_report(entries, options)
    if output is None:
        click.echo(text, nl=False)
        return
    try:
        output.write_text(text, encoding="utf-8")
    except OSError as e:
        fail(f"Cannot write {output}: {e}")
    click.echo(f"Exported {output}")


def _parse_setting(raw: str) -> tuple[str, Any]:
    if "=" not in raw:
        raise click.BadParameter(f"{raw} (expected key=value)", param_hint="--set")
    key, value = raw.split("=", 1)
    name = _SETTING_NAMES.get(key.strip())
    if name is None:
        raise click.BadParameter(f"unknown setting '{key}'. Valid: {', '.join(sorted(SETTINGS_KEYS.values()))}", param_hint="--set")
    if name == "commit_message_template":
        return name, value
    lowered = value.strip().lower()
    if lowered not in ("true", "false"):
        raise click.BadParameter(f"{key} must be true or false", param_hint="--set")
    return name, lowered == "true"


@click.command()
@click.option("--set", "assignments", multiple=True, help="Change a setting, e.g. autoCommit=true (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def settings(assignments: tuple[str, ...], as_json: bool) -> None:
    """Show or change the document settings."""
    changes = dict(_parse_setting(a) for a in assignments)
    with handle_errors(as_json):
        storage = get_storage()
        current = storage.update_settings(**changes) if changes else storage.get_settings()
    if as_json:
        echo_json(current.to_dict())
        return
    for key, value in current.to_dict().items():
        click.echo(f"{key}: {value}")


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def check(as_json: bool) -> None:
    """Check storage, lock and configuration health. Exits 1 if anything is wrong."""
    provider = get_provider()
    storage = get_storage(provider)
    problems: list[str] = []

    problems.extend(f"config: {e}" for e in config_problems(provider.project_root / FIXFLOW_DIR_NAME))

    lock = storage.lock_status()
    if lock["locked"] and lock["stale"]:
        problems.append(f"stale lock at {lock['path']} (age {lock['age_seconds']}s); it is cleared on the next access")

    entries: int | None = None
    try:
        entries = storage.get_metadata().total_count
    except FixflowError as e:
        problems.append(f"storage: {e}")

    backups = storage.list_backups()
    report = {
        "storage": str(storage.storage_path),
        "entries": entries,
        "lock": lock,
        "backups": [str(p) for p in backups],
        "config": provider.to_dict(),
        "problems": problems,
    }

    if as_json:
        echo_json(report)
    else:
        click.echo(f"Storage: {storage.storage_path}")
        if entries is not None:
            click.echo(f"Entries: {entries}")
        click.echo(f"Lock:    {'held' if lock['locked'] else 'free'}")
        if backups:
            click.echo(f"Backups: {len(backups)} (newest {backups[0].name})")
        for problem in problems:
            click.echo(f"  ! {problem}")
        click.echo("OK" if not problems else f"{len(problems)} problem(s) found")
    if problems:
        sys.exit(1)


def register(cli: click.Group) -> None:
    """Register admin commands with the CLI group."""
    cli.add_command(init)
    cli.add_command(export_cmd, "export")
    cli.add_command(settings)
    cli.add_command(check)
