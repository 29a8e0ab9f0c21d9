"""Classified errors raised by the storage, lifecycle and scanner layers.

Every error derives from FixflowError so entry points can catch the whole
family at their boundary. The built-in bases (ValueError, KeyError, OSError)
are kept so callers written against plain exceptions keep working.
"""

from __future__ import annotations

from pathlib import Path


class FixflowError(Exception):
    """Base class for all fixflow errors."""


class ValidationError(FixflowError, ValueError):
    """A field or document failed validation."""

    def __init__(self, message: str, *, errors: list[str] | None = None) -> None:
        self.errors = list(errors) if errors else [message]
        super().__init__(message)


class NotFoundError(FixflowError, KeyError):
    """No debt entry exists with the requested id."""

    def __init__(self, debt_id: str) -> None:
        self.debt_id = debt_id
        super().__init__(debt_id)

    def __str__(self) -> str:
        return f"Debt not found: {self.debt_id}"


class InvalidTransitionError(FixflowError, ValueError):
    """A status change is not in the transition whitelist."""

    def __init__(self, debt_id: str, from_status: str, to_status: str, allowed: tuple[str, ...] = ()) -> None:
        self.debt_id = debt_id
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = allowed
        hint = f" Allowed from '{from_status}': {', '.join(allowed)}." if allowed else ""
        super().__init__(f"Invalid status transition for {debt_id}: '{from_status}' -> '{to_status}'.{hint}")


class LockContentionError(FixflowError):
    """The storage lock is held by another live owner."""

    def __init__(self, lock_path: Path, message: str, *, owner_pid: int | None = None) -> None:
        self.lock_path = lock_path
        self.owner_pid = owner_pid
        super().__init__(message)


class CorruptDocumentError(FixflowError):
    """The storage document could not be parsed or failed structural validation."""

    def __init__(self, storage_path: Path, reason: str, *, backup_path: Path | None = None) -> None:
        self.storage_path = storage_path
        self.reason = reason
        self.backup_path = backup_path
        backup = f" Backup written to {backup_path}." if backup_path else ""
        super().__init__(f"Storage file {storage_path} is corrupted: {reason}.{backup}")


class StorageIOError(FixflowError, OSError):
    """The storage resource could not be read or written for environmental reasons."""
