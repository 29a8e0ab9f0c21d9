"""Advisory lock file guarding the storage document.

The lock is a sidecar file created exclusively next to debts.json. Its mere
presence (and mtime) signals ownership; the JSON body records the owning
process for diagnostics only. A lock older than the staleness threshold is
treated as abandoned and replaced on the next acquisition attempt; the
replacement runs under an flock on a ``.guard`` sidecar so only one process
can take over a given stale lock.
"""

from __future__ import annotations

import contextlib
import fcntl
import json as _json
import logging
import os
import sys
import time
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from fixflow.errors import LockContentionError, StorageIOError

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = 30.0  # seconds
GUARD_SUFFIX = ".guard"


def read_lock_info(lock_path: Path) -> dict[str, Any] | None:
    """Read owner info from a lock file. Returns None if missing or corrupt.

    Supports both JSON format and a bare PID (the format older writers used).
    """
    if not lock_path.exists():
        return None
    try:
        text = lock_path.read_text().strip()
        try:
            data = _json.loads(text)
            if isinstance(data, dict) and "pid" in data:
                pid = int(data["pid"])
                if pid <= 0:
                    return None
                return {"pid": pid, "cmd": data.get("cmd", "unknown"), "acquired_at": data.get("acquired_at")}
        except (_json.JSONDecodeError, TypeError):
            pass
        pid = int(text)
        if pid <= 0:
            return None
        return {"pid": pid, "cmd": "unknown", "acquired_at": None}
    except (ValueError, OSError) as exc:
        logger.warning("Corrupt lock file %s: %s", lock_path, exc)
        return None


def is_pid_alive(pid: int) -> bool:
    """Check if a process is running (via kill signal 0)."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
        return True
    except (OSError, ProcessLookupError):
        return False


class AdvisoryLock:
    """Exclusive, non-reentrant lock backed by a sidecar file.

    ``stale_after`` is the age in seconds past which an existing lock file is
    considered abandoned. ``clock`` returns the current time as epoch seconds
    and exists so tests can age a lock without sleeping.
    """

    def __init__(
        self,
        lock_path: str | Path,
        *,
        stale_after: float = DEFAULT_STALE_AFTER,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if stale_after < 0:
            msg = f"stale_after must be non-negative, got {stale_after}"
            raise ValueError(msg)
        self.lock_path = Path(lock_path)
        self.stale_after = stale_after
        self._clock = clock
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def age(self) -> float | None:
        """Seconds since the lock file was last modified, or None if absent."""
        st = self._stat()
        if st is None:
            return None
        return max(0.0, self._clock() - st.st_mtime)

    def acquire(self) -> None:
        """Take the lock or raise LockContentionError.

        A lock file younger than ``stale_after`` means another owner is live.
        An older one is taken over under the guard file (see ``_take_over``).
        """
        if self._held:
            msg = f"Lock {self.lock_path} is already held by this instance"
            raise LockContentionError(self.lock_path, msg, owner_pid=os.getpid())

        seen = self._stat()
        if seen is None:
            self._create()
        else:
            age = max(0.0, self._clock() - seen.st_mtime)
            info = read_lock_info(self.lock_path)
            owner = info["pid"] if info else None
            if age < self.stale_after:
                msg = f"Storage is locked by another process (pid {owner if owner else 'unknown'}, held {age:.1f}s)"
                raise LockContentionError(self.lock_path, msg, owner_pid=owner)
            self._take_over(seen, owner)
        self._held = True

    def _stat(self) -> os.stat_result | None:
        try:
            return self.lock_path.stat()
        except FileNotFoundError:
            return None
        except OSError as exc:
            msg = f"Cannot stat lock file {self.lock_path}: {exc}"
            raise StorageIOError(msg) from exc

    def _take_over(self, seen: os.stat_result, owner: int | None) -> None:
        """Replace the stale lock file *seen* with our own.

        Check-unlink-create runs under an flock on ``<lock>.guard`` and only
        proceeds if the lock file is still the one found stale.
        """
        guard_path = self.lock_path.with_name(self.lock_path.name + GUARD_SUFFIX)
        try:
            guard = open(guard_path, "w")  # noqa: SIM115
        except OSError as exc:
            msg = f"Cannot open lock guard {guard_path}: {exc}"
            raise StorageIOError(msg) from exc
        with guard:
            try:
                fcntl.flock(guard, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except OSError as exc:
                msg = "Storage lock is being taken over by another process"
                raise LockContentionError(self.lock_path, msg, owner_pid=owner) from exc

            current = self._stat()
            if current is not None:
                if (current.st_ino, current.st_mtime_ns) != (seen.st_ino, seen.st_mtime_ns):
                    info = read_lock_info(self.lock_path)
                    new_owner = info["pid"] if info else None
                    msg = f"Storage is locked by another process (pid {new_owner if new_owner else 'unknown'}, lock replaced)"
                    raise LockContentionError(self.lock_path, msg, owner_pid=new_owner)
                logger.warning(
                    "Removing stale lock %s (age %.1fs >= %.1fs, owner pid %s)",
                    self.lock_path,
                    max(0.0, self._clock() - current.st_mtime),
                    self.stale_after,
                    owner,
                )
                with contextlib.suppress(FileNotFoundError):
                    self.lock_path.unlink()
            self._create()

    def _create(self) -> None:
        payload = _json.dumps(
            {
                "pid": os.getpid(),
                "cmd": Path(sys.argv[0]).name if sys.argv and sys.argv[0] else "fixflow",
                "acquired_at": datetime.now(UTC).isoformat(),
            }
        )
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as exc:
            info = read_lock_info(self.lock_path)
            owner = info["pid"] if info else None
            msg = "Storage is locked by another process (lost race for the lock file)"
            raise LockContentionError(self.lock_path, msg, owner_pid=owner) from exc
        except OSError as exc:
            msg = f"Cannot create lock file {self.lock_path}: {exc}"
            raise StorageIOError(msg) from exc
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload)

    def release(self) -> None:
        """Best-effort release. Never raises; the held flag is always cleared."""
        if not self._held:
            return
        try:
            self.lock_path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Failed to release lock %s", self.lock_path, exc_info=True)
        finally:
            self._held = False

    @contextlib.contextmanager
    def hold(self) -> Iterator[None]:
        """Acquire for the duration of the block; release even if the block raises."""
        self.acquire()
        try:
            yield
        finally:
            self.release()
