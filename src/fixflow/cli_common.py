"""Shared CLI helpers for ``cli.py`` and the ``cli_commands/*.py`` modules.

Provides project discovery (``get_provider()``), a ready lifecycle manager
(``get_manager()``) and the single error boundary every command uses
(``handle_errors()``), without circular imports.
"""

from __future__ import annotations

import contextlib
import json as json_mod
import sys
from collections.abc import Iterator
from typing import Any, NoReturn

import click

from fixflow.config import FIXFLOW_DIR_NAME, ConfigurationProvider, find_project_root
from fixflow.errors import FixflowError
from fixflow.lifecycle import DebtLifecycleManager
from fixflow.logging import setup_logging
from fixflow.storage import StorageEngine


def get_provider() -> ConfigurationProvider:
    """Discover .fixflow/ and return the project's configuration."""
    try:
        project_root = find_project_root()
    except FileNotFoundError:
        click.echo(f"No {FIXFLOW_DIR_NAME}/ found. Run 'fixflow init' first.", err=True)
        sys.exit(1)
    return ConfigurationProvider.load(project_root)


def get_storage(provider: ConfigurationProvider | None = None) -> StorageEngine:
    provider = provider or get_provider()
    setup_logging(provider.storage_dir)
    return StorageEngine(provider.storage_dir, project_name=provider.project_name)


def get_manager(provider: ConfigurationProvider | None = None) -> DebtLifecycleManager:
    """Discover the project and return a lifecycle manager over its storage."""
    return DebtLifecycleManager(get_storage(provider))


def fail(message: str, *, as_json: bool = False) -> NoReturn:
    if as_json:
        click.echo(json_mod.dumps({"error": message}))
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(1)


@contextlib.contextmanager
def handle_errors(as_json: bool = False) -> Iterator[None]:
    """Turn any FixflowError raised in the block into a one-line message and exit 1."""
    try:
        yield
    except FixflowError as e:
        fail(str(e), as_json=as_json)


def echo_json(data: Any) -> None:
    click.echo(json_mod.dumps(data, indent=2, default=str))
