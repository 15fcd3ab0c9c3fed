from keelson.store.base import (
    EventType,
    ObjectStore,
    OperationResult,
    WatchEvent,
    create_or_update,
    get_or_none,
    matches_labels,
)
from keelson.store.kubernetes import KubernetesStore
from keelson.store.memory import InMemoryStore
from keelson.store.patch import apply_merge_patch, create_merge_patch

__all__ = [
    "EventType",
    "InMemoryStore",
    "KubernetesStore",
    "ObjectStore",
    "OperationResult",
    "WatchEvent",
    "apply_merge_patch",
    "create_merge_patch",
    "create_or_update",
    "get_or_none",
    "matches_labels",
]
