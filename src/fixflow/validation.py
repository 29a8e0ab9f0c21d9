"""Shared validation functions for all entry points.

Pure functions with no click or filesystem dependencies. Two layers:

* structural checks on the raw JSON document (``document_problems`` /
  ``check_document_structure``), used identically on initialize, read and write;
* business field rules on a ``DebtEntry`` (``entry_field_errors``), used by
  the lifecycle manager on create and update.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from fixflow.errors import ValidationError
from fixflow.models import (
    REQUIRED_ENTRY_KEYS,
    VALID_CATEGORIES,
    VALID_PRIORITIES,
    VALID_SEVERITIES,
    VALID_STATUSES,
    DebtEntry,
)

MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MAX_NOTES_LENGTH = 1000
_MAX_ASSIGNEE_LENGTH = 128

_NON_EMPTY_STRING_KEYS = ("id", "title", "description", "filePath")
_ENUM_STRING_KEYS = ("severity", "category", "status", "priority")
_BOOL_SETTINGS_KEYS = ("integrationEnabled", "autoCommit", "autoPush")


# ---------------------------------------------------------------------------
# Structural validation (raw JSON)
# ---------------------------------------------------------------------------


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _entry_problems(index: int, entry: Any) -> list[str]:
    where = f"entries[{index}]"
    if not isinstance(entry, Mapping):
        return [f"{where} must be an object, got {type(entry).__name__}"]
    problems: list[str] = []
    for key in REQUIRED_ENTRY_KEYS:
        if key not in entry:
            problems.append(f"{where} is missing required field '{key}'")
    for key in _NON_EMPTY_STRING_KEYS:
        if key in entry and (not isinstance(entry[key], str) or not entry[key].strip()):
            problems.append(f"{where} {key} must be a non-empty string")
    if "lineNumber" in entry and (not _is_int(entry["lineNumber"]) or entry["lineNumber"] < 1):
        problems.append(f"{where} lineNumber must be a positive integer")
    for key in _ENUM_STRING_KEYS:
        if key in entry and not isinstance(entry[key], str):
            problems.append(f"{where} {key} must be a string")
    tags = entry.get("tags")
    if tags is not None and (not isinstance(tags, list) or not all(isinstance(t, str) for t in tags)):
        problems.append(f"{where} tags must be a list of strings")
    return problems


def _settings_problems(settings: Mapping[str, Any]) -> list[str]:
    problems: list[str] = []
    for key in _BOOL_SETTINGS_KEYS:
        if key in settings and not isinstance(settings[key], bool):
            problems.append(f"settings.{key} must be a boolean, got {type(settings[key]).__name__}")
    template = settings.get("commitMessageTemplate")
    if template is not None and not isinstance(template, str):
        problems.append(f"settings.commitMessageTemplate must be a string, got {type(template).__name__}")
    return problems


def document_problems(data: Any) -> list[str]:
    """Return every structural problem in a raw document. Empty list means valid."""
    if not isinstance(data, Mapping):
        return [f"document must be an object, got {type(data).__name__}"]
    problems: list[str] = []
    entries = data.get("entries")
    if not isinstance(entries, list):
        problems.append("entries must be a list")
    if not isinstance(data.get("metadata"), Mapping):
        problems.append("metadata must be an object")
    settings = data.get("settings")
    if not isinstance(settings, Mapping):
        problems.append("settings must be an object")
    else:
        problems.extend(_settings_problems(settings))
    if not isinstance(entries, list):
        return problems

    seen: set[str] = set()
    for i, entry in enumerate(entries):
        problems.extend(_entry_problems(i, entry))
        entry_id = entry.get("id") if isinstance(entry, Mapping) else None
        if isinstance(entry_id, str):
            if entry_id in seen:
                problems.append(f"entries[{i}] duplicates id '{entry_id}'")
            seen.add(entry_id)
    return problems


def check_document_structure(data: Any) -> None:
    """Raise ValidationError if *data* is not a structurally valid document."""
    problems = document_problems(data)
    if problems:
        msg = f"Invalid document structure: {problems[0]}"
        if len(problems) > 1:
            msg += f" (and {len(problems) - 1} more)"
        raise ValidationError(msg, errors=problems)


# ---------------------------------------------------------------------------
# Field rules (DebtEntry)
# ---------------------------------------------------------------------------


def sanitize_assignee(value: Any) -> tuple[str, str | None]:
    """Validate and clean an assignee name.

    Returns (cleaned, None) on success or ("", error_message) on failure.
    Strips whitespace, then checks: non-empty, max length, no control/format chars.
    """
    if not isinstance(value, str):
        return ("", "assignee must be a string")
    # Reject "\nbad" rather than silently absorbing the newline via strip().
    for ch in value:
        if unicodedata.category(ch).startswith("C"):
            return ("", f"assignee must not contain control characters (found U+{ord(ch):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", "assignee must not be empty")
    if len(cleaned) > _MAX_ASSIGNEE_LENGTH:
        return ("", f"assignee must be at most {_MAX_ASSIGNEE_LENGTH} characters")
    return (cleaned, None)


def _check_enum(value: object, name: str, valid: frozenset[str]) -> str | None:
    if value not in valid:
        return f"{name} must be one of: {', '.join(sorted(valid))} (got {value!r})"
    return None


def entry_field_errors(entry: DebtEntry) -> list[str]:
    """Business rules shared by create and update. Empty list means valid."""
    errors: list[str] = []

    if not isinstance(entry.title, str) or not entry.title.strip():
        errors.append("Title is required")
    elif len(entry.title) > MAX_TITLE_LENGTH:
        errors.append(f"Title must be {MAX_TITLE_LENGTH} characters or less")

    if not isinstance(entry.description, str) or not entry.description.strip():
        errors.append("Description is required")
    elif len(entry.description) > MAX_DESCRIPTION_LENGTH:
        errors.append(f"Description must be {MAX_DESCRIPTION_LENGTH} characters or less")

    if not isinstance(entry.file_path, str) or not entry.file_path.strip():
        errors.append("File path is required")

    if not _is_int(entry.line_number) or entry.line_number < 1:
        errors.append("Line number must be an integer of at least 1")

    for value, name, valid in (
        (entry.severity, "severity", VALID_SEVERITIES),
        (entry.category, "category", VALID_CATEGORIES),
        (entry.status, "status", VALID_STATUSES),
        (entry.priority, "priority", VALID_PRIORITIES),
    ):
        err = _check_enum(value, name, valid)
        if err:
            errors.append(err)

    if not isinstance(entry.tags, list) or not all(isinstance(t, str) and t.strip() for t in entry.tags):
        errors.append("tags must be a list of non-empty strings")

    if entry.due_date is not None:
        try:
            datetime.fromisoformat(entry.due_date)
        except (TypeError, ValueError):
            errors.append(f"dueDate must be an ISO-8601 date (got {entry.due_date!r})")

    if entry.assignee is not None:
        _, err = sanitize_assignee(entry.assignee)
        if err:
            errors.append(err)

    if entry.notes is not None and (not isinstance(entry.notes, str) or len(entry.notes) > MAX_NOTES_LENGTH):
        errors.append(f"Notes must be a string of {MAX_NOTES_LENGTH} characters or less")

    for value, name in ((entry.context, "context"), (entry.estimated_effort, "estimatedEffort")):
        if value is not None and not isinstance(value, str):
            errors.append(f"{name} must be a string")

    return errors


def check_entry_fields(entry: DebtEntry, *, action: str = "debt entry") -> None:
    """Raise ValidationError listing every broken field rule."""
    errors = entry_field_errors(entry)
    if errors:
        raise ValidationError(f"Invalid {action}: {'; '.join(errors)}", errors=errors)


def normalize_tags(tags: list[str]) -> list[str]:
    """Strip and de-duplicate tags, preserving first-seen order."""
    return list(dict.fromkeys(t.strip() for t in tags if isinstance(t, str) and t.strip()))
