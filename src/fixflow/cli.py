"""CLI for the fixflow technical-debt tracker.

Convention-based: discovers .fixflow/ by walking up from cwd.

Usage:
    fixflow init                                          # Initialize .fixflow/ in cwd
    fixflow create "Slow query" -d "N+1 in list view" --file app/views.py --line 42
    fixflow show <id>                                     # Show entry details
    fixflow list --status open --severity high            # List entries
    fixflow update <id> --priority urgent                 # Update fields
    fixflow transition <id> resolved                      # Change status
    fixflow transitions <id>                              # Allowed next statuses
    fixflow delete <id>                                   # Delete entry
    fixflow scan [--create]                               # Find TODO/FIXME markers
    fixflow export --format csv -o debt.csv               # Export a report
    fixflow stats                                         # Counts per field
    fixflow settings --set autoCommit=true                # Document settings
    fixflow check                                         # Health check
"""

from __future__ import annotations

import click

from fixflow import __version__
from fixflow.cli_commands import admin, debts, scan


@click.group()
@click.version_option(version=__version__, prog_name="fixflow")
def cli() -> None:
    """fixflow: track technical debt next to the code."""


debts.register(cli)
scan.register(cli)
admin.register(cli)


if __name__ == "__main__":
    cli()
