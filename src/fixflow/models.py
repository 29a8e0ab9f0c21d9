"""Domain dataclasses for debt entries and the storage document.

The persisted JSON uses camelCase keys; the dataclasses use snake_case
attributes. ``to_dict()``/``from_dict()`` translate between the two and are
the only place that mapping lives.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, Literal

from fixflow.errors import ValidationError
from fixflow.types.core import (
    DebtEntryDict,
    DocumentMetadataDict,
    DocumentSettingsDict,
    ISOTimestamp,
    StorageDocumentDict,
)

# ---------------------------------------------------------------------------
# Constrained-string Literal types
# ---------------------------------------------------------------------------

Severity = Literal["low", "medium", "high", "critical"]
Category = Literal[
    "code-quality",
    "performance",
    "security",
    "testing",
    "documentation",
    "architecture",
    "refactoring",
    "other",
]
Status = Literal["open", "in-progress", "review", "resolved", "closed"]
Priority = Literal["low", "normal", "high", "urgent"]

# Ordered lowest to highest; the order is used for sorting.
SEVERITIES: tuple[str, ...] = ("low", "medium", "high", "critical")
CATEGORIES: tuple[str, ...] = (
    "code-quality",
    "performance",
    "security",
    "testing",
    "documentation",
    "architecture",
    "refactoring",
    "other",
)
STATUSES: tuple[str, ...] = ("open", "in-progress", "review", "resolved", "closed")
PRIORITIES: tuple[str, ...] = ("low", "normal", "high", "urgent")

VALID_SEVERITIES = frozenset(SEVERITIES)
VALID_CATEGORIES = frozenset(CATEGORIES)
VALID_STATUSES = frozenset(STATUSES)
VALID_PRIORITIES = frozenset(PRIORITIES)

SCHEMA_VERSION = "1.0.0"
DEFAULT_COMMIT_TEMPLATE = "fix: update technical debt - {count} items"

# Python attribute -> JSON key, for every DebtEntry field whose names differ.
_ENTRY_KEYS: dict[str, str] = {
    "file_path": "filePath",
    "line_number": "lineNumber",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "due_date": "dueDate",
    "estimated_effort": "estimatedEffort",
}
_ENTRY_ATTRS: dict[str, str] = {v: k for k, v in _ENTRY_KEYS.items()}

REQUIRED_ENTRY_KEYS: tuple[str, ...] = (
    "id",
    "title",
    "description",
    "filePath",
    "lineNumber",
    "severity",
    "category",
    "status",
    "priority",
)
OPTIONAL_ENTRY_ATTRS: tuple[str, ...] = ("due_date", "context", "assignee", "estimated_effort", "notes")


def entry_key(attr: str) -> str:
    """JSON key for a DebtEntry attribute name."""
    return _ENTRY_KEYS.get(attr, attr)


def entry_attr(key: str) -> str:
    """DebtEntry attribute name for a JSON key."""
    return _ENTRY_ATTRS.get(key, key)


# ---------------------------------------------------------------------------
# DebtEntry
# ---------------------------------------------------------------------------


@dataclass
class DebtEntry:
    id: str
    title: str
    description: str
    file_path: str
    line_number: int
    severity: str = "low"
    category: str = "code-quality"
    status: str = "open"
    priority: str = "normal"
    created_at: str = ""
    updated_at: str = ""
    due_date: str | None = None
    tags: list[str] = field(default_factory=list)
    context: str | None = None
    assignee: str | None = None
    estimated_effort: str | None = None
    notes: str | None = None

    def to_dict(self) -> DebtEntryDict:
        data = DebtEntryDict(
            id=self.id,
            title=self.title,
            description=self.description,
            filePath=self.file_path,
            lineNumber=self.line_number,
            severity=self.severity,
            category=self.category,
            status=self.status,
            priority=self.priority,
            createdAt=ISOTimestamp(self.created_at),
            updatedAt=ISOTimestamp(self.updated_at),
            tags=list(self.tags),
        )
        for attr in OPTIONAL_ENTRY_ATTRS:
            value = getattr(self, attr)
            if value is not None:
                data[entry_key(attr)] = value  # type: ignore[literal-required]
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DebtEntry:
        """Build from a structurally valid JSON entry. Unknown keys are ignored."""
        return cls(
            id=data["id"],
            title=data["title"],
            description=data["description"],
            file_path=data["filePath"],
            line_number=data["lineNumber"],
            severity=data["severity"],
            category=data["category"],
            status=data["status"],
            priority=data["priority"],
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
            due_date=data.get("dueDate"),
            tags=list(data.get("tags") or []),
            context=data.get("context"),
            assignee=data.get("assignee"),
            estimated_effort=data.get("estimatedEffort"),
            notes=data.get("notes"),
        )


# ---------------------------------------------------------------------------
# StorageDocument
# ---------------------------------------------------------------------------


@dataclass
class DocumentMetadata:
    schema_version: str = SCHEMA_VERSION
    last_updated: str = ""
    total_count: int = 0
    project_name: str = ""

    def to_dict(self) -> DocumentMetadataDict:
        return {
            "schemaVersion": self.schema_version,
            "lastUpdated": ISOTimestamp(self.last_updated),
            "totalCount": self.total_count,
            "projectName": self.project_name,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DocumentMetadata:
        total = data.get("totalCount", 0)
        # totalCount is recomputed on every write; a bad stored value is not fatal.
        if not isinstance(total, int) or isinstance(total, bool):
            total = 0
        return cls(
            schema_version=str(data.get("schemaVersion", SCHEMA_VERSION)),
            last_updated=str(data.get("lastUpdated", "")),
            total_count=total,
            project_name=str(data.get("projectName", "")),
        )


@dataclass
class DocumentSettings:
    integration_enabled: bool = False
    auto_commit: bool = False
    auto_push: bool = False
    commit_message_template: str = DEFAULT_COMMIT_TEMPLATE

    def render_commit_message(self, count: int) -> str:
        return self.commit_message_template.replace("{count}", str(count))

    def to_dict(self) -> DocumentSettingsDict:
        return {
            "integrationEnabled": self.integration_enabled,
            "autoCommit": self.auto_commit,
            "autoPush": self.auto_push,
            "commitMessageTemplate": self.commit_message_template,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DocumentSettings:
        return cls(
            integration_enabled=data.get("integrationEnabled", False),
            auto_commit=data.get("autoCommit", False),
            auto_push=data.get("autoPush", False),
            commit_message_template=data.get("commitMessageTemplate", DEFAULT_COMMIT_TEMPLATE),
        )


SETTINGS_KEYS: dict[str, str] = {
    "integration_enabled": "integrationEnabled",
    "auto_commit": "autoCommit",
    "auto_push": "autoPush",
    "commit_message_template": "commitMessageTemplate",
}


@dataclass
class StorageDocument:
    entries: list[DebtEntry] = field(default_factory=list)
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)
    settings: DocumentSettings = field(default_factory=DocumentSettings)

    def index_of(self, debt_id: str) -> int | None:
        for i, entry in enumerate(self.entries):
            if entry.id == debt_id:
                return i
        return None

    def to_dict(self) -> StorageDocumentDict:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "metadata": self.metadata.to_dict(),
            "settings": self.settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StorageDocument:
        return cls(
            entries=[DebtEntry.from_dict(e) for e in data["entries"]],
            metadata=DocumentMetadata.from_dict(data["metadata"]),
            settings=DocumentSettings.from_dict(data["settings"]),
        )


# ---------------------------------------------------------------------------
# DebtPatch: explicit partial update
# ---------------------------------------------------------------------------


class _Unset:
    """Sentinel type for patch fields that were not supplied."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


@dataclass(frozen=True)
class DebtPatch:
    """Fields to change on an existing entry.

    A field left at ``UNSET`` is not touched. ``None`` on an optional field
    (due_date, context, assignee, estimated_effort, notes) clears it; ``None``
    on any other field is rejected when the patch is applied.
    """

    title: str | None | _Unset = UNSET
    description: str | None | _Unset = UNSET
    file_path: str | None | _Unset = UNSET
    line_number: int | None | _Unset = UNSET
    severity: str | None | _Unset = UNSET
    category: str | None | _Unset = UNSET
    status: str | None | _Unset = UNSET
    priority: str | None | _Unset = UNSET
    due_date: str | None | _Unset = UNSET
    tags: list[str] | None | _Unset = UNSET
    context: str | None | _Unset = UNSET
    assignee: str | None | _Unset = UNSET
    estimated_effort: str | None | _Unset = UNSET
    notes: str | None | _Unset = UNSET

    def present_fields(self) -> dict[str, Any]:
        """Attribute name -> value for every field that was supplied."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not UNSET}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DebtPatch:
        """Build a patch from JSON-style (camelCase) or attribute-style keys.

        Raises ValidationError for unknown keys or immutable ones (id, createdAt, updatedAt).
        """
        allowed = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        errors: list[str] = []
        for key, value in data.items():
            attr = entry_attr(key)
            if attr in ("id", "created_at", "updated_at"):
                errors.append(f"'{key}' cannot be changed")
            elif attr not in allowed:
                errors.append(f"Unknown field '{key}'")
            else:
                kwargs[attr] = value
        if errors:
            raise ValidationError(f"Invalid patch: {'; '.join(errors)}", errors=errors)
        return cls(**kwargs)
