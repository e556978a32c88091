"""Per-key build exclusion.

Two layers: an :class:`asyncio.Lock` per key for requests inside one process,
and an advisory lock file ``<lock_dir>/<key>.lock`` created with ``O_EXCL``
so a second CLI process building the same slug is rejected too.  The lock file
holds the owner's PID; a file whose PID no longer exists is stale and is
reclaimed.
"""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from ..errors import BuildInProgressError


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else.
        return True
    except OSError:
        return False
    return True


class BuildLockTable:
    """Reject-on-contention locks keyed by slug or cherry id.

    Args:
        lock_dir: Directory for lock files.  ``None`` keeps the table purely
            in-memory (used by tests and by the HTTP service, which is a
            single process).
    """

    def __init__(self, lock_dir: str | Path | None = None) -> None:
        self.lock_dir = Path(lock_dir) if lock_dir is not None else None
        self._locks: dict[str, asyncio.Lock] = {}

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for *key* for the duration of the block.

        Raises:
            BuildInProgressError: Another holder (this process or another)
                already owns *key*.
        """
        lock = self._locks.setdefault(key, asyncio.Lock())
        if lock.locked():
            raise BuildInProgressError(key)
        await lock.acquire()
        lock_file: Path | None = None
        try:
            lock_file = self._acquire_file(key)
            yield
        finally:
            if lock_file is not None:
                lock_file.unlink(missing_ok=True)
            lock.release()
            if self._locks.get(key) is lock:
                del self._locks[key]

    def _lock_path(self, key: str) -> Path:
        assert self.lock_dir is not None
        safe_key = key.replace(os.sep, "_").replace("/", "_")
        return self.lock_dir / f"{safe_key}.lock"

    def _acquire_file(self, key: str) -> Path | None:
        if self.lock_dir is None:
            return None
        self.lock_dir.mkdir(parents=True, exist_ok=True)
        path = self._lock_path(key)

        for _ in range(2):
            try:
                fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                if self._owner_alive(path):
                    raise BuildInProgressError(key) from None
                path.unlink(missing_ok=True)
                continue
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(str(os.getpid()))
            return path

        raise BuildInProgressError(key)

    @staticmethod
    def _owner_alive(path: Path) -> bool:
        try:
            content = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return False
        try:
            pid = int(content)
        except ValueError:
            return False
        return _pid_alive(pid)
