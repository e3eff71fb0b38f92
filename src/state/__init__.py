"""
Board state models and the local durable store.

This package defines the in-memory board schema that is serialized to
JSON, optionally encrypted (via Fernet), and stored in a local SQLite file
next to the image blobs its cards reference.
"""

from .models import AppState, Card, Divider, Zone, TaskType, create_default_state
from .store import BoardStore, StorageError, StorageInitError, StorageOpError

__all__ = [
    "AppState",
    "BoardStore",
    "Card",
    "Divider",
    "StorageError",
    "StorageInitError",
    "StorageOpError",
    "TaskType",
    "Zone",
    "create_default_state",
]
