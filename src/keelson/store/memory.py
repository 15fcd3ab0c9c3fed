"""In-memory object store used for local development and tests."""

from __future__ import annotations

import asyncio
import copy
import uuid
from collections import defaultdict
from typing import Any

import structlog

from keelson.api.types import Resource, utc_now
from keelson.core.errors import AlreadyExistsError, ConflictError, NotFoundError
from keelson.store.base import EventType, R, WatchEvent, matches_labels
from keelson.store.patch import apply_merge_patch

logger = structlog.get_logger()

# Metadata fields only the store assigns.
_SYSTEM_METADATA = ("uid", "generation", "resourceVersion", "creationTimestamp", "deletionTimestamp")


class Subscription:
    """Async iterator over the watch events of one resource kind."""

    def __init__(self, store: InMemoryStore, kind: str, namespace: str | None) -> None:
        self._store = store
        self.kind = kind
        self.namespace = namespace
        self.queue: asyncio.Queue[WatchEvent] = asyncio.Queue()

    def matches(self, event: WatchEvent) -> bool:
        if event.obj.kind != self.kind:
            return False
        return self.namespace is None or event.obj.namespace == self.namespace

    def close(self) -> None:
        self._store._unsubscribe(self)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> WatchEvent:
        return await self.queue.get()


class InMemoryStore:
    """Dict-backed implementation of the ObjectStore protocol.

    Objects are stored as camelCase dicts and every read returns a fresh
    model instance. Mirrors the semantics of the Kubernetes API server that the
    reconcilers rely on: generation bumps on spec changes, finalizer-aware
    deletion, resourceVersion conflicts and a separate status subresource.
    Every write is recorded in ``actions`` as ``(verb, kind, key)``.
    """

    def __init__(self) -> None:
        self._objects: dict[tuple[str, str, str], tuple[type[Resource], dict[str, Any]]] = {}
        self._revision = 0
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)
        self.actions: list[tuple[str, str, str]] = []

    def _next_version(self) -> str:
        self._revision += 1
        return str(self._revision)

    @staticmethod
    def _key(kind: str, namespace: str, name: str) -> tuple[str, str, str]:
        return (kind, namespace, name)

    def _load(self, cls: type[R], namespace: str, name: str) -> dict[str, Any]:
        entry = self._objects.get(self._key(cls.kind, namespace, name))
        if entry is None:
            raise NotFoundError(
                f"{cls.kind} '{namespace}/{name}' not found",
                {"kind": cls.kind, "namespace": namespace, "name": name},
            )
        return entry[1]

    @staticmethod
    def _check_version(kind: str, stored: dict[str, Any], resource_version: str | None) -> None:
        current = stored["metadata"]["resourceVersion"]
        if resource_version and resource_version != current:
            raise ConflictError(
                f"the object has been modified: {kind} '{stored['metadata'].get('name')}' "
                f"is at resourceVersion {current}, got {resource_version}",
                {"kind": kind, "expected": resource_version, "actual": current},
            )

    def _record(self, verb: str, cls: type[Resource], data: dict[str, Any]) -> None:
        meta = data["metadata"]
        key = f"{meta.get('namespace', '')}/{meta.get('name', '')}"
        self.actions.append((verb, cls.kind, key))

    def _emit(self, event_type: EventType, cls: type[Resource], data: dict[str, Any], old: dict[str, Any] | None) -> None:
        event = WatchEvent(
            type=event_type,
            obj=cls.from_dict(copy.deepcopy(data)),
            old=cls.from_dict(copy.deepcopy(old)) if old is not None else None,
        )
        for sub in self._subscriptions.get(cls.kind, []):
            if sub.matches(event):
                sub.queue.put_nowait(event)

    def _store(self, cls: type[R], data: dict[str, Any], old: dict[str, Any]) -> R:
        """Persist a modified object, removing it if it is terminating without finalizers."""
        meta = data["metadata"]
        key = self._key(cls.kind, meta.get("namespace", ""), meta["name"])
        meta["resourceVersion"] = self._next_version()
        if meta.get("deletionTimestamp") and not meta.get("finalizers"):
            del self._objects[key]
            self._record("remove", cls, data)
            self._emit(EventType.DELETED, cls, data, old)
        else:
            self._objects[key] = (cls, data)
            self._emit(EventType.MODIFIED, cls, data, old)
        return cls.from_dict(copy.deepcopy(data))

    @staticmethod
    def _bump_generation(old: dict[str, Any], new: dict[str, Any]) -> None:
        if old.get("spec") != new.get("spec"):
            new["metadata"]["generation"] = old["metadata"].get("generation", 0) + 1

    async def get(self, cls: type[R], namespace: str, name: str) -> R:
        return cls.from_dict(copy.deepcopy(self._load(cls, namespace, name)))

    async def list(
        self,
        cls: type[R],
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[R]:
        result = []
        for (kind, ns, _), (_, data) in sorted(self._objects.items()):
            if kind != cls.kind or (namespace is not None and ns != namespace):
                continue
            obj = cls.from_dict(copy.deepcopy(data))
            if matches_labels(obj, labels):
                result.append(obj)
        return result

    async def create(self, obj: R) -> R:
        cls = type(obj)
        key = self._key(cls.kind, obj.namespace, obj.name)
        if key in self._objects:
            raise AlreadyExistsError(
                f"{cls.kind} '{obj.key()}' already exists",
                {"kind": cls.kind, "namespace": obj.namespace, "name": obj.name},
            )
        data = obj.to_dict()
        meta = data["metadata"]
        meta.pop("deletionTimestamp", None)
        meta["uid"] = str(uuid.uuid4())
        meta["generation"] = 1
        meta["creationTimestamp"] = utc_now().isoformat()
        meta["resourceVersion"] = self._next_version()
        self._objects[key] = (cls, data)
        self._record("create", cls, data)
        self._emit(EventType.ADDED, cls, data, None)
        return cls.from_dict(copy.deepcopy(data))

    async def update(self, obj: R) -> R:
        cls = type(obj)
        old = self._load(cls, obj.namespace, obj.name)
        self._check_version(cls.kind, old, obj.metadata.resource_version)
        data = obj.to_dict()
        for field in _SYSTEM_METADATA:
            if field in old["metadata"]:
                data["metadata"][field] = old["metadata"][field]
            else:
                data["metadata"].pop(field, None)
        if "status" in old:
            data["status"] = copy.deepcopy(old["status"])
        else:
            data.pop("status", None)
        self._bump_generation(old, data)
        self._record("update", cls, data)
        return self._store(cls, data, old)

    async def patch(
        self, obj: R, merge_patch: dict[str, Any], resource_version: str | None = None
    ) -> R:
        cls = type(obj)
        old = self._load(cls, obj.namespace, obj.name)
        self._check_version(cls.kind, old, resource_version)
        body = {k: v for k, v in merge_patch.items() if k != "status"}
        data = apply_merge_patch(old, body)
        for field in _SYSTEM_METADATA:
            if field in old["metadata"]:
                data["metadata"][field] = old["metadata"][field]
            else:
                data["metadata"].pop(field, None)
        self._bump_generation(old, data)
        self._record("patch", cls, data)
        return self._store(cls, data, old)

    async def update_status(self, obj: R) -> R:
        cls = type(obj)
        old = self._load(cls, obj.namespace, obj.name)
        self._check_version(cls.kind, old, obj.metadata.resource_version)
        data = copy.deepcopy(old)
        status = obj.to_dict().get("status")
        if status is None:
            data.pop("status", None)
        else:
            data["status"] = status
        self._record("update_status", cls, data)
        return self._store(cls, data, old)

    async def delete(self, obj: Resource) -> None:
        cls = type(obj)
        old = self._load(cls, obj.namespace, obj.name)
        self._record("delete", cls, old)
        if old["metadata"].get("finalizers"):
            if old["metadata"].get("deletionTimestamp"):
                return
            data = copy.deepcopy(old)
            data["metadata"]["deletionTimestamp"] = utc_now().isoformat()
            # the API server bumps the generation when deletion starts
            data["metadata"]["generation"] = old["metadata"].get("generation", 0) + 1
            self._store(cls, data, old)
            return
        del self._objects[self._key(cls.kind, obj.namespace, obj.name)]
        self._emit(EventType.DELETED, cls, old, None)

    def watch(self, cls: type[Resource], namespace: str | None = None) -> Subscription:
        """Subscribe to changes of ``cls`` objects; events are buffered from this call on."""
        sub = Subscription(self, cls.kind, namespace)
        self._subscriptions[cls.kind].append(sub)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        subs = self._subscriptions.get(sub.kind, [])
        if sub in subs:
            subs.remove(sub)

    def writes(self, verb: str | None = None, kind: str | None = None) -> list[tuple[str, str, str]]:
        """Recorded writes, optionally filtered by verb and kind."""
        return [
            action
            for action in self.actions
            if (verb is None or action[0] == verb) and (kind is None or action[1] == kind)
        ]
