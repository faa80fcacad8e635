"""JSON file record store shared by the saved-attachment and remote stores."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, ValidationError

from ovscni.errors import CniOvsError, ConfigNotFound, FilesystemError
from ovscni.locks import AttachmentLockManager, get_lock_manager

logger = logging.getLogger(__name__)


class JsonRecordStore:
    """One JSON file per key, written atomically under a per-key lock.

    Subclasses set ``prefix`` (file name prefix, also used to namespace
    lock keys) and ``model`` (the Pydantic model stored).
    """

    prefix: str = ""
    model: type[BaseModel] = BaseModel

    def __init__(
        self,
        data_dir: str | Path,
        lock_manager: AttachmentLockManager | None = None,
    ):
        self.data_dir = Path(data_dir)
        self._locks = lock_manager or get_lock_manager()

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{self.prefix}{key}.json"

    def _lock_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _write(self, path: Path, record: BaseModel) -> None:
        """Write a record durably.

        Uses temp file + fsync + rename so a crash never leaves a partial
        record behind; the directory is fsynced too so the record (and not
        just its data) is on disk before the call returns.
        """
        tmp_path = path.with_suffix(".tmp")
        try:
            self.data_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
            with open(tmp_path, "w") as f:
                f.write(record.model_dump_json(by_alias=True, indent=2))
                f.flush()
                os.fsync(f.fileno())
            tmp_path.rename(path)
            self._fsync_dir()
        except OSError as e:
            raise FilesystemError("write record", str(path), e) from e

    def _fsync_dir(self) -> None:
        # Persist the rename itself
        fd = os.open(self.data_dir, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)

    def _read(self, key: str, path: Path) -> BaseModel:
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ConfigNotFound(key) from e
        except OSError as e:
            raise FilesystemError("read record", str(path), e) from e
        except json.JSONDecodeError as e:
            raise CniOvsError(f"Corrupted record {path}", details=str(e)) from e

        try:
            return self.model.model_validate(data)
        except ValidationError as e:
            raise CniOvsError(f"Invalid record {path}", details=str(e)) from e

    def _remove(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise FilesystemError("remove record", str(path), e) from e
        return True

    async def save(self, key: str, record: BaseModel) -> None:
        path = self._path(key)
        async with self._locks.acquire(self._lock_key(key)):
            self._write(path, record)
        logger.debug(f"Saved {path}")

    async def load(self, key: str) -> BaseModel:
        """Load the record for a key.

        Raises:
            ConfigNotFound: If no record exists for the key
        """
        async with self._locks.acquire(self._lock_key(key)):
            return self._read(key, self._path(key))

    async def delete(self, key: str) -> bool:
        """Delete the record for a key.

        Returns:
            True if a record was removed, False if none existed
        """
        path = self._path(key)
        async with self._locks.acquire(self._lock_key(key)):
            removed = self._remove(path)
        if removed:
            logger.debug(f"Removed {path}")
        return removed
