"""Container-side config records for the in-pod agent.

The agent running inside the pod reads remote-<container>-<ifname>.json
from the data directory to learn which socket to open and which IP
configuration to apply.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ovscni.config import settings
from ovscni.locks import AttachmentLockManager
from ovscni.schemas import AttachmentIdentity, RemoteConfigRecord
from ovscni.store.base import JsonRecordStore

logger = logging.getLogger(__name__)


class RemoteConfigStore(JsonRecordStore):
    """Stores RemoteConfigRecords keyed by container ID and interface."""

    prefix = "remote-"
    model = RemoteConfigRecord

    def __init__(
        self,
        data_dir: str | Path | None = None,
        lock_manager: AttachmentLockManager | None = None,
    ):
        super().__init__(data_dir or settings.data_dir, lock_manager)

    async def save_remote_config(self, identity: AttachmentIdentity, record: RemoteConfigRecord) -> None:
        """Write (or overwrite) the record for an attachment."""
        await self.save(identity.key, record)

    async def load_remote_config(self, identity: AttachmentIdentity) -> RemoteConfigRecord:
        return await self.load(identity.key)

    async def cleanup_remote_config(self, identity: AttachmentIdentity) -> bool:
        """Remove the record for an attachment; a missing record is a no-op."""
        removed = await self.delete(identity.key)
        if not removed:
            logger.debug(f"No remote config for {identity.key}, nothing to clean up")
        return removed
