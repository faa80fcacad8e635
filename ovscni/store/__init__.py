"""Persistent per-attachment records."""

from ovscni.store.remote import RemoteConfigStore
from ovscni.store.saved import SavedAttachmentStore

__all__ = [
    "RemoteConfigStore",
    "SavedAttachmentStore",
]
