"""Project configuration and convention-based discovery.

Each project has a storage directory (default ``.fixflow/``) holding
``debts.json`` (the document), ``config.json`` (scanner and storage
settings), ``.lock`` and ``fixflow.log``. Configuration is read once and
passed explicitly to the scanner and the storage engine.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fixflow.errors import ValidationError
from fixflow.types.core import ProjectConfig

logger = logging.getLogger(__name__)

FIXFLOW_DIR_NAME = ".fixflow"
CONFIG_FILENAME = "config.json"

DEFAULT_DEBT_MARKERS: tuple[str, ...] = ("TODO", "FIXME", "HACK", "BUG", "NOTE")
DEFAULT_SCAN_PATTERNS: tuple[str, ...] = ("**/*.{js,jsx,ts,tsx,py,java,cpp,c,cs,php,rb,go,rs}",)
DEFAULT_EXCLUDE_PATTERNS: tuple[str, ...] = ("**/node_modules/**", "**/dist/**", "**/build/**", "**/.git/**")

_INVALID_PATH_CHARS = re.compile(r'[<>:"|?*]')

_BOOL_KEYS = ("enabled", "autoScan", "notifications")
_LIST_KEYS = ("debtMarkers", "scanPatterns", "excludePatterns")


def default_config() -> ProjectConfig:
    return ProjectConfig(
        enabled=True,
        autoScan=False,
        debtMarkers=list(DEFAULT_DEBT_MARKERS),
        storagePath=FIXFLOW_DIR_NAME,
        notifications=True,
        scanPatterns=list(DEFAULT_SCAN_PATTERNS),
        excludePatterns=list(DEFAULT_EXCLUDE_PATTERNS),
    )


def validate_config_value(key: str, value: Any) -> None:
    """Raise ValidationError if *value* is not acceptable for config *key*.

    Unknown keys are logged and accepted so newer config files still load.
    """
    if key in _BOOL_KEYS:
        if not isinstance(value, bool):
            raise ValidationError(f"{key} must be a boolean value")
    elif key in _LIST_KEYS:
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ValidationError(f"{key} must be an array of strings")
        if key != "excludePatterns" and not value:
            raise ValidationError(f"{key} cannot be empty")
        if key == "debtMarkers" and not all(re.fullmatch(r"\w+", m) for m in value):
            raise ValidationError("debtMarkers entries must be single words")
    elif key == "storagePath":
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("storagePath must be a non-empty string")
        if _INVALID_PATH_CHARS.search(value):
            raise ValidationError("storagePath contains invalid characters")
        if ".." in Path(value).parts:
            raise ValidationError("storagePath cannot contain relative path traversal")
    else:
        logger.warning("Unknown configuration key: %s", key)


def validate_config(config: Mapping[str, Any]) -> list[str]:
    """Return every problem in *config*. Empty list means valid."""
    errors: list[str] = []
    for key, value in config.items():
        try:
            validate_config_value(key, value)
        except ValidationError as exc:
            errors.append(str(exc))
    if config.get("enabled", True) and config.get("autoScan") and not config.get("scanPatterns", True):
        errors.append("Auto-scan is enabled but no scan patterns are defined")
    return errors


def find_project_root(start: Path | None = None, *, dir_name: str = FIXFLOW_DIR_NAME) -> Path:
    """Walk up from start (default cwd) looking for a .fixflow/ directory.

    Returns the project root (the parent of .fixflow/).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        if (parent / dir_name).is_dir():
            return parent
    msg = f"No {dir_name}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(storage_dir: Path) -> ProjectConfig:
    """Read <storage_dir>/config.json merged over defaults.

    Missing or corrupt files give the defaults; individually invalid values
    are dropped (and logged) in favor of their defaults.
    """
    config = default_config()
    config_path = storage_dir / CONFIG_FILENAME
    if not config_path.exists():
        return config
    try:
        raw = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return config
    if not isinstance(raw, dict):
        logger.warning("Ignoring %s: expected a JSON object", config_path)
        return config
    for key, value in raw.items():
        try:
            validate_config_value(key, value)
        except ValidationError as exc:
            logger.warning("Ignoring invalid config value in %s: %s", config_path, exc)
            continue
        config[key] = value  # type: ignore[literal-required]
    return config


def config_problems(storage_dir: Path) -> list[str]:
    """Problems in <storage_dir>/config.json as written on disk (before defaults are applied)."""
    config_path = storage_dir / CONFIG_FILENAME
    if not config_path.exists():
        return []
    try:
        raw = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        return [f"cannot read {config_path}: {exc}"]
    if not isinstance(raw, dict):
        return [f"{config_path} must contain a JSON object"]
    return validate_config(raw)


def write_config(storage_dir: Path, config: Mapping[str, Any]) -> None:
    """Validate and write <storage_dir>/config.json."""
    errors = validate_config(config)
    if errors:
        raise ValidationError(f"Invalid configuration: {'; '.join(errors)}", errors=errors)
    config_path = storage_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(dict(config), indent=2) + "\n")


@dataclass(frozen=True)
class ConfigurationProvider:
    """Resolved configuration for one project, handed to the scanner and storage engine."""

    project_root: Path
    debt_markers: tuple[str, ...] = DEFAULT_DEBT_MARKERS
    scan_patterns: tuple[str, ...] = DEFAULT_SCAN_PATTERNS
    exclude_patterns: tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    storage_location: str = FIXFLOW_DIR_NAME
    raw: ProjectConfig = field(default_factory=default_config)

    @property
    def storage_dir(self) -> Path:
        return self.project_root / self.storage_location

    @property
    def project_name(self) -> str:
        return self.project_root.name

    @classmethod
    def load(cls, project_root: Path) -> ConfigurationProvider:
        """Load config from the default storage directory of *project_root*.

        A config.json under ``.fixflow/`` may relocate storage via storagePath;
        that file is the only one consulted.
        """
        config = read_config(project_root / FIXFLOW_DIR_NAME)
        return cls(
            project_root=project_root,
            debt_markers=tuple(config.get("debtMarkers", DEFAULT_DEBT_MARKERS)),
            scan_patterns=tuple(config.get("scanPatterns", DEFAULT_SCAN_PATTERNS)),
            exclude_patterns=tuple(config.get("excludePatterns", DEFAULT_EXCLUDE_PATTERNS)),
            storage_location=config.get("storagePath", FIXFLOW_DIR_NAME),
            raw=config,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "debtMarkers": list(self.debt_markers),
            "scanPatterns": list(self.scan_patterns),
            "excludePatterns": list(self.exclude_patterns),
            "storageLocation": self.storage_location,
        }
