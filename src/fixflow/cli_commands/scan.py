"""CLI command for marker scanning: scan."""

from __future__ import annotations

import signal
import threading
from pathlib import Path

import click

from fixflow.cli_common import echo_json, get_manager, get_provider, handle_errors
from fixflow.scanner import MarkerScanner, ScanResult, to_draft


def _scan_with_interrupt(scanner: MarkerScanner, root: Path) -> tuple[list[ScanResult], bool]:
    """Scan the workspace; Ctrl-C stops after the current file and keeps what was found."""
    cancel = threading.Event()
    previous = signal.getsignal(signal.SIGINT)

    def _on_interrupt(signum: int, frame: object) -> None:
        cancel.set()

    signal.signal(signal.SIGINT, _on_interrupt)
    try:
        results = scanner.scan_workspace(root, cancel=cancel)
    finally:
        signal.signal(signal.SIGINT, previous)
    return results, cancel.is_set()


@click.command()
@click.argument("paths", nargs=-1, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--create", "create_entries", is_flag=True, help="Record findings not already tracked")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def scan(paths: tuple[Path, ...], create_entries: bool, as_json: bool) -> None:
    """Find debt markers (TODO, FIXME, ...) in the project or in the given files."""
    provider = get_provider()
    with handle_errors(as_json):
        manager = get_manager(provider)
        scanner = MarkerScanner.from_config(provider)

        cancelled = False
        if paths:
            results = [r for p in paths for r in scanner.scan_file(p, provider.project_root)]
        else:
            results, cancelled = _scan_with_interrupt(scanner, provider.project_root)

        created = manager.create_many([to_draft(r) for r in results]) if create_entries else []

    if as_json:
        payload: dict[str, object] = {"results": [r.to_dict() for r in results], "cancelled": cancelled}
        if create_entries:
            payload["created"] = [e.to_dict() for e in created]
        echo_json(payload)
        return

    for r in results:
        click.echo(f"{r.file_path}:{r.line_number}: {r.marker}: {r.description}")
    summary = f"\n{len(results)} markers found"
    if create_entries:
        summary += f", {len(created)} new entries created"
    click.echo(summary)
    if cancelled:
        click.echo("Scan interrupted; results are partial.", err=True)


def register(cli: click.Group) -> None:
    """Register scan commands with the CLI group."""
    cli.add_command(scan)
