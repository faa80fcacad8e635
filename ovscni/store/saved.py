"""Saved attachment data, the record DelFromHost undoes from."""

from __future__ import annotations

from pathlib import Path

from ovscni.config import settings
from ovscni.locks import AttachmentLockManager
from ovscni.schemas import AttachmentIdentity, OvsSavedData
from ovscni.store.base import JsonRecordStore


class SavedAttachmentStore(JsonRecordStore):
    """Stores what AddOnHost created, keyed by container ID and interface."""

    prefix = "local-"
    model = OvsSavedData

    def __init__(
        self,
        data_dir: str | Path | None = None,
        lock_manager: AttachmentLockManager | None = None,
    ):
        super().__init__(data_dir or settings.data_dir, lock_manager)

    async def save_config(self, identity: AttachmentIdentity, data: OvsSavedData) -> None:
        await self.save(identity.key, data)

    async def load_config(self, identity: AttachmentIdentity) -> OvsSavedData:
        return await self.load(identity.key)

    async def delete_config(self, identity: AttachmentIdentity) -> bool:
        return await self.delete(identity.key)
