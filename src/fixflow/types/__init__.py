# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
"""Typed contracts for the fixflow document, config and scanner layers."""

from __future__ import annotations

from fixflow.types.core import (
    DebtEntryDict,
    DocumentMetadataDict,
    DocumentSettingsDict,
    ISOTimestamp,
    ProjectConfig,
    ScanResultDict,
    StorageDocumentDict,
    SuggestedDebtDict,
)

__all__ = [
    "DebtEntryDict",
    "DocumentMetadataDict",
    "DocumentSettingsDict",
    "ISOTimestamp",
    "ProjectConfig",
    "ScanResultDict",
    "StorageDocumentDict",
    "SuggestedDebtDict",
]
