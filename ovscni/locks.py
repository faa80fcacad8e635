"""Per-attachment locks shared between plugin processes.

The CNI runtime starts one plugin process per call, so two calls for the
same attachment (a retried DEL racing the original one, for instance) can
only be serialized through the filesystem. Each attachment key maps to a
lock file in a tmpfs directory, locked with flock(2):
1. Released automatically by the kernel if the process dies
2. Unlinked by the holder on release, so no file outlives its attachment
3. Never contended across different attachments
"""

from __future__ import annotations

import asyncio
import fcntl
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from ovscni.config import settings
from ovscni.errors import FilesystemError, LockAcquisitionTimeout

logger = logging.getLogger(__name__)

# How often a contended lock is retried (seconds)
LOCK_POLL_INTERVAL = 0.05


class AttachmentLockManager:
    """Manages flock-based locks keyed by attachment.

    Attributes:
        lock_dir: Directory holding one lock file per attachment key
    """

    def __init__(self, lock_dir: str | Path | None = None):
        self.lock_dir = Path(lock_dir or settings.lock_dir)
        self._local_locks: dict[str, asyncio.Lock] = {}

    def _lock_path(self, key: str) -> Path:
        return self.lock_dir / f"{key}.lock"

    def _get_local_lock(self, key: str) -> asyncio.Lock:
        """Get local asyncio lock for a key.

        flock locks belong to the open file description, so two coroutines
        of the same process would each get their own lock on the file. The
        local lock keeps them from both entering.
        """
        if key not in self._local_locks:
            self._local_locks[key] = asyncio.Lock()
        return self._local_locks[key]

    def _open_lock_file(self, key: str) -> int:
        path = self._lock_path(key)
        try:
            self.lock_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
            return os.open(path, os.O_RDWR | os.O_CREAT, 0o600)
        except OSError as e:
            raise FilesystemError("open lock file", str(path), e) from e

    @staticmethod
    def _is_current(fd: int, path: Path) -> bool:
        """Check that fd still refers to the file at path.

        The holder unlinks the lock file on release, so a waiter that opened
        the old file may lock an inode nobody else will ever see again.
        """
        try:
            on_disk = os.stat(path)
        except FileNotFoundError:
            return False
        held = os.fstat(fd)
        return (on_disk.st_dev, on_disk.st_ino) == (held.st_dev, held.st_ino)

    def _try_lock(self, key: str) -> int | None:
        """Open and lock the key's file without blocking.

        Returns:
            The locked file descriptor, or None if another process holds it
        """
        fd = self._open_lock_file(key)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return None
        if not self._is_current(fd, self._lock_path(key)):
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)
            return None
        return fd

    def _release(self, key: str, fd: int) -> None:
        path = self._lock_path(key)
        try:
            # Unlink while still holding the lock so no waiter can lock this inode
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove lock file {path}: {e}")
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

    @asynccontextmanager
    async def acquire(self, key: str, timeout: float | None = None):
        """Acquire the lock for an attachment key.

        The lock file exists only while the lock is held.

        Args:
            key: Attachment key
            timeout: Maximum time to wait, defaults to settings.lock_acquire_timeout

        Yields:
            None when lock is acquired

        Raises:
            LockAcquisitionTimeout: If lock cannot be acquired within timeout
        """
        if timeout is None:
            timeout = settings.lock_acquire_timeout

        local_lock = self._get_local_lock(key)

        async with local_lock:
            loop = asyncio.get_running_loop()
            start_time = loop.time()

            while True:
                fd = self._try_lock(key)
                if fd is not None:
                    break

                elapsed = loop.time() - start_time
                if elapsed >= timeout:
                    logger.warning(f"Timed out waiting for lock on attachment {key}")
                    raise LockAcquisitionTimeout(key, timeout)

                await asyncio.sleep(LOCK_POLL_INTERVAL)

            logger.debug(f"Acquired lock for attachment {key}")
            try:
                yield
            finally:
                self._release(key, fd)
                logger.debug(f"Released lock for attachment {key}")


_lock_manager: AttachmentLockManager | None = None


def get_lock_manager() -> AttachmentLockManager:
    """Get the global AttachmentLockManager instance."""
    global _lock_manager
    if _lock_manager is None:
        _lock_manager = AttachmentLockManager()
    return _lock_manager
