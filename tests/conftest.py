"""Shared pytest fixtures for fixflow tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from click.testing import CliRunner

from fixflow.config import FIXFLOW_DIR_NAME, default_config, write_config
from fixflow.lifecycle import DebtLifecycleManager
from fixflow.models import DebtEntry
from fixflow.storage import StorageEngine


class FakeClock:
    """Settable epoch-seconds clock for lock staleness and id tests."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    return tmp_path / FIXFLOW_DIR_NAME


@pytest.fixture
def storage(storage_dir: Path) -> StorageEngine:
    """Initialized StorageEngine over an empty document."""
    engine = StorageEngine(storage_dir, project_name="proj")
    engine.initialize()
    return engine


@pytest.fixture
def manager(storage: StorageEngine) -> DebtLifecycleManager:
    return DebtLifecycleManager(storage)


@pytest.fixture
def populated(manager: DebtLifecycleManager) -> DebtLifecycleManager:
    """Manager pre-populated with a representative entry set.

    Creates:
    - A: open, high severity, security, app/auth.py:10, tags ["auth"], assignee alice
    - B: open, low severity, performance, app/db.py:5, tags ["db", "slow"]
    - C: resolved, critical severity, testing, app/auth.py:99
    """
    a = manager.create_debt(
        "Hardcoded secret",
        description="API key committed in source",
        file_path="app/auth.py",
        line_number=10,
        severity="high",
        category="security",
        priority="urgent",
        tags=["auth"],
        assignee="alice",
    )
    b = manager.create_debt(
        "N+1 query",
        description="List view issues one query per row",
        file_path="app/db.py",
        line_number=5,
        category="performance",
        tags=["db", "slow"],
    )
    c = manager.create_debt(
        "Missing tests",
        description="Login flow has no coverage",
        file_path="app/auth.py",
        line_number=99,
        severity="critical",
        category="testing",
        priority="low",
    )
    manager.transition_status(c.id, "resolved")
    manager._test_ids: dict[str, str] = {"a": a.id, "b": b.id, "c": c.id}  # type: ignore[attr-defined]
    return manager


@pytest.fixture
def fixflow_project(tmp_path: Path) -> Path:
    """A tmp directory set up as a fixflow project (.fixflow/ with config + document).

    Returns the project root (parent of .fixflow/).
    """
    fixflow_dir = tmp_path / FIXFLOW_DIR_NAME
    fixflow_dir.mkdir()
    write_config(fixflow_dir, default_config())
    StorageEngine(fixflow_dir, project_name=tmp_path.name).initialize()
    return tmp_path


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()


def make_entry(**overrides: object) -> DebtEntry:
    fields: dict[str, object] = {
        "id": "debt-1700000000000-abc123",
        "title": "Refactor parser",
        "description": "Parser mixes lexing and parsing",
        "file_path": "src/parser.py",
        "line_number": 12,
        "created_at": "2024-01-01T00:00:00+00:00",
        "updated_at": "2024-01-01T00:00:00+00:00",
    }
    fields.update(overrides)
    return DebtEntry(**fields)  # type: ignore[arg-type]


@pytest.fixture
def entry_factory() -> Callable[..., DebtEntry]:
    """Returns ``make_entry`` so test modules don't import from conftest."""
    return make_entry
