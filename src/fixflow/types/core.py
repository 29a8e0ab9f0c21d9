# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from models.py, storage.py, or lifecycle.py; that would create circular imports.
"""TypedDict shapes of the persisted JSON document and the config file."""

from __future__ import annotations

from typing import NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class _DebtEntryRequired(TypedDict):
    id: str
    title: str
    description: str
    filePath: str
    lineNumber: int
    severity: str
    category: str
    status: str
    priority: str
    createdAt: ISOTimestamp
    updatedAt: ISOTimestamp
    tags: list[str]


class DebtEntryDict(_DebtEntryRequired, total=False):
    """One entry of ``entries`` in debts.json. Unset optional fields are omitted."""

    dueDate: ISOTimestamp
    context: str
    assignee: str
    estimatedEffort: str
    notes: str


class DocumentMetadataDict(TypedDict):
    schemaVersion: str
    lastUpdated: ISOTimestamp
    totalCount: int
    projectName: str


class DocumentSettingsDict(TypedDict):
    integrationEnabled: bool
    autoCommit: bool
    autoPush: bool
    commitMessageTemplate: str


class StorageDocumentDict(TypedDict):
    """Top-level shape of debts.json."""

    entries: list[DebtEntryDict]
    metadata: DocumentMetadataDict
    settings: DocumentSettingsDict


class ProjectConfig(TypedDict, total=False):
    """Shape of .fixflow/config.json."""

    enabled: bool
    autoScan: bool
    debtMarkers: list[str]
    storagePath: str
    notifications: bool
    scanPatterns: list[str]
    excludePatterns: list[str]


class SuggestedDebtDict(TypedDict, total=False):
    """Partial entry derived from a scanner match."""

    title: str
    description: str
    filePath: str
    lineNumber: int
    severity: str
    category: str
    status: str
    priority: str
    tags: list[str]
    context: str


class ScanResultDict(TypedDict):
    filePath: str
    lineNumber: int
    marker: str
    content: str
    description: str
    suggested: SuggestedDebtDict
