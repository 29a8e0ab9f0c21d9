"""File-backed storage for the debt document.

Single source of truth for reading and writing ``.fixflow/debts.json``. Both
the lifecycle manager and the CLI go through StorageEngine; nothing else
touches the file.

Every read and write holds the advisory lock (``.fixflow/.lock``) for its
duration. ``transaction()`` holds it across a whole read-modify-write cycle.
A document that fails to parse or validate is copied to
``debts.json.backup.<epoch-ms>`` and reported as CorruptDocumentError; it is
never repaired in place.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import shutil
import time
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from fixflow.errors import CorruptDocumentError, StorageIOError, ValidationError
from fixflow.locking import DEFAULT_STALE_AFTER, AdvisoryLock, is_pid_alive, read_lock_info
from fixflow.models import SETTINGS_KEYS, DocumentMetadata, DocumentSettings, StorageDocument
from fixflow.validation import check_document_structure, document_problems

logger = logging.getLogger(__name__)

STORAGE_FILENAME = "debts.json"
LOCK_FILENAME = ".lock"
BACKUP_INFIX = ".backup."


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def write_atomic(path: Path, content: str) -> None:
    """Write content to path atomically via temp file + os.replace()."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise


class StorageEngine:
    """Locked, validated access to one project's debt document.

    All location and identity context is passed in; the engine never reads
    the working directory or global configuration. One engine instance
    supports one in-flight operation at a time.
    """

    def __init__(
        self,
        storage_dir: str | Path,
        *,
        project_name: str | None = None,
        stale_after: float = DEFAULT_STALE_AFTER,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage_dir = Path(storage_dir)
        self.storage_path = self.storage_dir / STORAGE_FILENAME
        self.lock_path = self.storage_dir / LOCK_FILENAME
        self.project_name = project_name if project_name is not None else self.storage_dir.resolve().parent.name
        self._clock = clock
        self._lock = AdvisoryLock(self.lock_path, stale_after=stale_after, clock=clock)

    @property
    def stale_after(self) -> float:
        return self._lock.stale_after

    # -- Lifecycle -----------------------------------------------------------

    def initialize(self) -> None:
        """Create the storage directory and a default document if absent.

        An existing document is validated, never overwritten; if it is
        invalid it is backed up and CorruptDocumentError is raised.
        """
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Cannot create storage directory {self.storage_dir}: {exc}"
            raise StorageIOError(msg) from exc

        if not self.storage_path.exists():
            doc = self.default_document()
            self.write(doc)
            logger.info("Initialized storage at %s", self.storage_path, extra={"op": "initialize"})
            return

        with self._lock.hold():
            self._load()
        logger.debug("Storage at %s already initialized", self.storage_path)

    def default_document(self) -> StorageDocument:
        return StorageDocument(
            entries=[],
            metadata=DocumentMetadata(last_updated=_now_iso(), total_count=0, project_name=self.project_name),
            settings=DocumentSettings(),
        )

    # -- Read / write --------------------------------------------------------

    def read(self) -> StorageDocument:
        """Load and validate the document under the lock."""
        with self._lock.hold():
            return self._load()

    def write(self, document: StorageDocument) -> None:
        """Validate, stamp metadata and persist the whole document under the lock."""
        with self._lock.hold():
            self._store(document)

    @contextlib.contextmanager
    def transaction(self) -> Iterator[StorageDocument]:
        """Hold the lock across read-modify-write.

        Yields the current document; if the block exits normally the
        (possibly mutated) document is written back. If the block raises,
        nothing is written and the lock is still released.
        """
        with self._lock.hold():
            document = self._load()
            yield document
            self._store(document)

    def is_accessible(self) -> bool:
        """Best-effort read. Returns False instead of raising."""
        try:
            self.read()
        except Exception as exc:
            logger.debug("Storage %s not accessible: %s", self.storage_path, exc)
            return False
        return True

    # -- Settings / metadata -------------------------------------------------

    def get_settings(self) -> DocumentSettings:
        return self.read().settings

    def update_settings(self, **changes: Any) -> DocumentSettings:
        """Merge keyword changes (snake_case names) into the stored settings."""
        unknown = sorted(set(changes) - set(SETTINGS_KEYS))
        if unknown:
            msg = f"Unknown settings: {', '.join(unknown)}. Valid: {', '.join(sorted(SETTINGS_KEYS))}"
            raise ValidationError(msg)
        for name, value in changes.items():
            expected = str if name == "commit_message_template" else bool
            if not isinstance(value, expected):
                msg = f"Setting '{name}' must be a {expected.__name__}"
                raise ValidationError(msg)
        with self.transaction() as doc:
            for name, value in changes.items():
                setattr(doc.settings, name, value)
            settings = doc.settings
        logger.info("Updated settings: %s", ", ".join(sorted(changes)), extra={"op": "update_settings"})
        return settings

    def get_metadata(self) -> DocumentMetadata:
        return self.read().metadata

    def list_backups(self) -> list[Path]:
        """Corruption backups next to the document, newest first."""
        if not self.storage_dir.is_dir():
            return []
        prefix = STORAGE_FILENAME + BACKUP_INFIX
        backups = [p for p in self.storage_dir.iterdir() if p.name.startswith(prefix)]
        return sorted(backups, key=lambda p: p.name[len(prefix) :], reverse=True)

    def lock_status(self) -> dict[str, Any]:
        """Diagnostic view of the lock file: present, age, owner and whether the owner is alive."""
        age = self._lock.age()
        if age is None:
            return {"locked": False, "path": str(self.lock_path)}
        info = read_lock_info(self.lock_path) or {}
        pid = info.get("pid")
        return {
            "locked": True,
            "path": str(self.lock_path),
            "age_seconds": round(age, 1),
            "stale": age >= self.stale_after,
            "owner_pid": pid,
            "owner_alive": is_pid_alive(pid) if pid else False,
        }

    # -- Internals (caller holds the lock) -----------------------------------

    def _load(self) -> StorageDocument:
        if not self.storage_path.exists():
            msg = f"Storage file not found: {self.storage_path}. Run 'fixflow init' first."
            raise StorageIOError(msg)
        try:
            raw_bytes = self.storage_path.read_bytes()
        except OSError as exc:
            msg = f"Cannot read storage file {self.storage_path}: {exc}"
            raise StorageIOError(msg) from exc

        try:
            data = json.loads(raw_bytes.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise self._corrupt(f"not valid JSON ({exc})") from exc

        problems = document_problems(data)
        if problems:
            raise self._corrupt(problems[0])
        return StorageDocument.from_dict(data)

    def _store(self, document: StorageDocument) -> None:
        data = document.to_dict()
        check_document_structure(data)

        document.metadata.last_updated = _now_iso()
        document.metadata.total_count = len(document.entries)
        data["metadata"] = document.metadata.to_dict()

        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            write_atomic(self.storage_path, json.dumps(data, indent=2) + "\n")
        except OSError as exc:
            msg = f"Cannot write storage file {self.storage_path}: {exc}"
            raise StorageIOError(msg) from exc

    def _corrupt(self, reason: str) -> CorruptDocumentError:
        backup = self._backup_corrupted()
        logger.error(
            "Storage file %s is corrupted: %s",
            self.storage_path,
            reason,
            extra={"op": "read", "error": reason},
        )
        return CorruptDocumentError(self.storage_path, reason, backup_path=backup)

    def _backup_corrupted(self) -> Path | None:
        """Copy the current document to a timestamped sibling. Returns the backup path."""
        stamp = int(self._clock() * 1000)
        backup = self.storage_path.with_name(f"{STORAGE_FILENAME}{BACKUP_INFIX}{stamp}")
        while backup.exists():
            stamp += 1
            backup = self.storage_path.with_name(f"{STORAGE_FILENAME}{BACKUP_INFIX}{stamp}")
        try:
            shutil.copyfile(self.storage_path, backup)
        except OSError:
            logger.warning("Failed to back up corrupted storage file %s", self.storage_path, exc_info=True)
            return None
        logger.warning("Backed up corrupted storage file to %s", backup)
        return backup
