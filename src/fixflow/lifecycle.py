"""Debt lifecycle rules on top of StorageEngine.

Creation assigns identity and timestamps, updates merge an explicit
DebtPatch and re-validate, and every status change goes through the
transition whitelist below. All persistence happens inside
``StorageEngine.transaction()`` so a read-modify-write cycle holds the lock
from start to finish.
"""

from __future__ import annotations

import dataclasses
import logging
import secrets
import string
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from fixflow.errors import InvalidTransitionError, NotFoundError, ValidationError
from fixflow.models import (
    CATEGORIES,
    OPTIONAL_ENTRY_ATTRS,
    PRIORITIES,
    SEVERITIES,
    STATUSES,
    VALID_STATUSES,
    DebtEntry,
    DebtPatch,
    StorageDocument,
)
from fixflow.storage import StorageEngine
from fixflow.validation import check_entry_fields, normalize_tags, sanitize_assignee

logger = logging.getLogger(__name__)

DEBT_ID_PREFIX = "debt"
_ID_ALPHABET = string.digits + string.ascii_lowercase
_ID_SUFFIX_LENGTH = 6

STATUS_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "open": ("in-progress", "review", "resolved", "closed"),
    "in-progress": ("review", "resolved", "open"),
    "review": ("resolved", "in-progress", "open"),
    "resolved": ("closed", "open"),
    "closed": ("open",),
}

SORT_FIELDS: frozenset[str] = frozenset({"severity", "priority", "createdAt", "updatedAt", "filePath"})


def allowed_transitions(status: str) -> tuple[str, ...]:
    """Statuses reachable in one step from *status*. Unknown statuses reach nothing."""
    return STATUS_TRANSITIONS.get(status, ())


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in allowed_transitions(from_status)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _parse_iso(ts: str) -> datetime | None:
    """Parse an ISO timestamp to an aware UTC datetime. None if unparseable."""
    try:
        dt = datetime.fromisoformat(ts)
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


@dataclass(frozen=True)
class DebtFilter:
    """Read-only filter for ``list_debts``. Unset criteria match everything.

    Set-valued criteria match when the entry's value is in the set; ``tags``
    matches when the entry carries any of the given tags.
    """

    severities: frozenset[str] | None = None
    categories: frozenset[str] | None = None
    statuses: frozenset[str] | None = None
    priorities: frozenset[str] | None = None
    tags: frozenset[str] | None = None
    assignee: str | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None

    def matches(self, entry: DebtEntry) -> bool:
        if self.severities is not None and entry.severity not in self.severities:
            return False
        if self.categories is not None and entry.category not in self.categories:
            return False
        if self.statuses is not None and entry.status not in self.statuses:
            return False
        if self.priorities is not None and entry.priority not in self.priorities:
            return False
        if self.tags is not None and not self.tags.intersection(entry.tags):
            return False
        if self.assignee is not None and entry.assignee != self.assignee:
            return False
        if self.created_after is not None or self.created_before is not None:
            created = _parse_iso(entry.created_at)
            if created is None:
                return False
            if self.created_after is not None and created < self.created_after.astimezone(UTC):
                return False
            if self.created_before is not None and created > self.created_before.astimezone(UTC):
                return False
        return True


def _sort_key(sort_by: str) -> Callable[[DebtEntry], Any]:
    if sort_by == "severity":
        rank = {s: i for i, s in enumerate(SEVERITIES)}
        return lambda e: -rank.get(e.severity, -1)
    if sort_by == "priority":
        rank = {p: i for i, p in enumerate(PRIORITIES)}
        return lambda e: -rank.get(e.priority, -1)
    if sort_by == "createdAt":
        return lambda e: e.created_at
    if sort_by == "updatedAt":
        return lambda e: e.updated_at
    return lambda e: (e.file_path, e.line_number)


class DebtLifecycleManager:
    """Create, update, transition, delete and query debt entries."""

    def __init__(self, storage: StorageEngine, *, clock: Callable[[], float] = time.time) -> None:
        self.storage = storage
        self._clock = clock

    def initialize(self) -> None:
        self.storage.initialize()

    # -- Identity ------------------------------------------------------------

    def _generate_id(self, existing: set[str]) -> str:
        """``debt-<epoch-ms>-<base36 suffix>``, checked against *existing*."""
        while True:
            suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_SUFFIX_LENGTH))
            candidate = f"{DEBT_ID_PREFIX}-{int(self._clock() * 1000)}-{suffix}"
            if candidate not in existing:
                return candidate

    # -- Create --------------------------------------------------------------

    def _build_entry(
        self,
        title: str,
        *,
        description: str,
        file_path: str,
        line_number: int,
        severity: str = "low",
        category: str = "code-quality",
        status: str = "open",
        priority: str = "normal",
        tags: list[str] | None = None,
        due_date: str | None = None,
        context: str | None = None,
        assignee: str | None = None,
        estimated_effort: str | None = None,
        notes: str | None = None,
    ) -> DebtEntry:
        if tags is not None and not isinstance(tags, list):
            msg = "Invalid debt entry: tags must be a list of strings"
            raise ValidationError(msg)
        if assignee is not None:
            assignee, err = sanitize_assignee(assignee)
            if err:
                raise ValidationError(f"Invalid debt entry: {err}")
        now = _now_iso()
        entry = DebtEntry(
            id="",
            title=title,
            description=description,
            file_path=file_path,
            line_number=line_number,
            severity=severity,
            category=category,
            status=status,
            priority=priority,
            created_at=now,
            updated_at=now,
            due_date=due_date,
            tags=list(tags or []),
            context=context,
            assignee=assignee,
            estimated_effort=estimated_effort,
            notes=notes,
        )
        check_entry_fields(entry)
        entry.tags = normalize_tags(entry.tags)
        return entry

    def create_debt(self, title: str, **fields: Any) -> DebtEntry:
        """Validate, assign an id and timestamps, and persist a new entry.

        Keyword fields are DebtEntry attribute names (description, file_path,
        line_number, severity, ...). Raises ValidationError on any broken rule.
        """
        try:
            entry = self._build_entry(title, **fields)
        except TypeError as exc:
            raise ValidationError(f"Invalid debt entry: {exc}") from exc

        with self.storage.transaction() as doc:
            entry.id = self._generate_id({e.id for e in doc.entries})
            doc.entries.append(entry)

        logger.info("Created debt %s: %s", entry.id, entry.title, extra={"op": "create", "debt_id": entry.id})
        return entry

    def create_many(self, drafts: Iterable[Mapping[str, Any]], *, skip_tracked: bool = True) -> list[DebtEntry]:
        """Create several entries in one locked cycle.

        Each draft is a mapping of DebtEntry attribute names, as produced by
        ``fixflow.scanner.to_draft``. With *skip_tracked*, a draft whose
        (file_path, line_number) matches an existing entry is skipped.
        All drafts are validated before anything is written.
        """
        built: list[DebtEntry] = []
        for i, draft in enumerate(drafts):
            fields = dict(draft)
            title = fields.pop("title", "")
            try:
                built.append(self._build_entry(title, **fields))
            except TypeError as exc:
                raise ValidationError(f"Invalid draft #{i}: {exc}") from exc
            except ValidationError as exc:
                raise ValidationError(f"Invalid draft #{i}: {exc}", errors=exc.errors) from exc

        created: list[DebtEntry] = []
        with self.storage.transaction() as doc:
            ids = {e.id for e in doc.entries}
            tracked = {(e.file_path, e.line_number) for e in doc.entries}
            for entry in built:
                key = (entry.file_path, entry.line_number)
                if skip_tracked and key in tracked:
                    continue
                entry.id = self._generate_id(ids)
                ids.add(entry.id)
                tracked.add(key)
                doc.entries.append(entry)
                created.append(entry)

        if created:
            logger.info("Created %d debt entries", len(created), extra={"op": "create_many"})
        return created

    # -- Read ----------------------------------------------------------------

    def get_all_debts(self, *, sort_by: str | None = None) -> list[DebtEntry]:
        """All entries in insertion order, or ordered by *sort_by* when given."""
        entries = self.storage.read().entries
        if sort_by is None:
            return entries
        if sort_by not in SORT_FIELDS:
            msg = f'Invalid sort field "{sort_by}". Must be one of: {", ".join(sorted(SORT_FIELDS))}'
            raise ValidationError(msg)
        return sorted(entries, key=_sort_key(sort_by))

    def get_debt(self, debt_id: str) -> DebtEntry | None:
        doc = self.storage.read()
        idx = doc.index_of(debt_id)
        return doc.entries[idx] if idx is not None else None

    def require_debt(self, debt_id: str) -> DebtEntry:
        entry = self.get_debt(debt_id)
        if entry is None:
            raise NotFoundError(debt_id)
        return entry

    def get_debts_by_file(self, file_path: str) -> list[DebtEntry]:
        return [e for e in self.get_all_debts() if e.file_path == file_path]

    def get_debts_by_status(self, status: str) -> list[DebtEntry]:
        return [e for e in self.get_all_debts() if e.status == status]

    def list_debts(self, debt_filter: DebtFilter | None = None, *, sort_by: str | None = None) -> list[DebtEntry]:
        entries = self.get_all_debts(sort_by=sort_by)
        if debt_filter is None:
            return entries
        return [e for e in entries if debt_filter.matches(e)]

    def get_valid_transitions(self, debt_id: str) -> tuple[str, ...]:
        return allowed_transitions(self.require_debt(debt_id).status)

    def get_stats(self) -> dict[str, Any]:
        entries = self.get_all_debts()
        return {
            "total": len(entries),
            "by_status": {s: sum(1 for e in entries if e.status == s) for s in STATUSES},
            "by_severity": {s: sum(1 for e in entries if e.severity == s) for s in SEVERITIES},
            "by_category": {c: sum(1 for e in entries if e.category == c) for c in CATEGORIES},
            "by_priority": {p: sum(1 for e in entries if e.priority == p) for p in PRIORITIES},
        }

    # -- Update --------------------------------------------------------------

    @staticmethod
    def _locate(doc: StorageDocument, debt_id: str) -> int:
        idx = doc.index_of(debt_id)
        if idx is None:
            raise NotFoundError(debt_id)
        return idx

    def update_debt(self, debt_id: str, patch: DebtPatch | Mapping[str, Any]) -> DebtEntry:
        """Merge *patch* into the entry, re-validate and persist.

        A status change must be allowed by the transition whitelist. An empty
        patch returns the entry unchanged without writing.
        """
        if not isinstance(patch, DebtPatch):
            patch = DebtPatch.from_dict(patch)
        changes = patch.present_fields()
        if not changes:
            return self.require_debt(debt_id)

        cleared_required = sorted(k for k, v in changes.items() if v is None and k not in OPTIONAL_ENTRY_ATTRS)
        if cleared_required:
            msg = f"Invalid update: required fields cannot be cleared: {', '.join(cleared_required)}"
            raise ValidationError(msg)
        if "tags" in changes and not isinstance(changes["tags"], list):
            msg = "Invalid update: tags must be a list of strings"
            raise ValidationError(msg)
        if "status" in changes and (not isinstance(changes["status"], str) or changes["status"] not in VALID_STATUSES):
            msg = f"Invalid update: status must be one of: {', '.join(STATUSES)} (got {changes['status']!r})"
            raise ValidationError(msg)
        if changes.get("assignee") is not None:
            cleaned, err = sanitize_assignee(changes["assignee"])
            if err:
                raise ValidationError(f"Invalid update: {err}")
            changes["assignee"] = cleaned

        with self.storage.transaction() as doc:
            idx = self._locate(doc, debt_id)
            current = doc.entries[idx]
            new_status = changes.get("status", current.status)
            if new_status != current.status and not can_transition(current.status, new_status):
                raise InvalidTransitionError(debt_id, current.status, new_status, allowed_transitions(current.status))

            merged = dataclasses.replace(current, **changes)
            check_entry_fields(merged, action="update")
            merged.tags = normalize_tags(merged.tags)
            merged.updated_at = _now_iso()
            doc.entries[idx] = merged

        logger.info(
            "Updated debt %s (%s)",
            debt_id,
            ", ".join(sorted(changes)),
            extra={"op": "update", "debt_id": debt_id},
        )
        return merged

    def transition_status(self, debt_id: str, new_status: str) -> DebtEntry:
        """Move an entry to *new_status* if the whitelist allows it."""
        with self.storage.transaction() as doc:
            idx = self._locate(doc, debt_id)
            current = doc.entries[idx]
            if not can_transition(current.status, new_status):
                raise InvalidTransitionError(debt_id, current.status, new_status, allowed_transitions(current.status))
            updated = dataclasses.replace(current, status=new_status, updated_at=_now_iso())
            doc.entries[idx] = updated

        logger.info(
            "Transitioned debt %s: %s -> %s",
            debt_id,
            current.status,
            new_status,
            extra={"op": "transition", "debt_id": debt_id},
        )
        return updated

    # -- Delete --------------------------------------------------------------

    def delete_debt(self, debt_id: str) -> None:
        with self.storage.transaction() as doc:
            idx = self._locate(doc, debt_id)
            del doc.entries[idx]
        logger.info("Deleted debt %s", debt_id, extra={"op": "delete", "debt_id": debt_id})
