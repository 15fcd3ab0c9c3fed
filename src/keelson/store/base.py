"""Object store protocol and helpers shared by all store implementations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, AsyncIterator, Callable, Protocol, TypeVar, runtime_checkable

import structlog

from keelson.api.types import Resource
from keelson.core.errors import NotFoundError

logger = structlog.get_logger()

R = TypeVar("R", bound=Resource)


class EventType(StrEnum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass
class WatchEvent:
    """A change to a stored object; ``old`` is only known to the in-memory store."""

    type: EventType
    obj: Resource
    old: Resource | None = None


@runtime_checkable
class ObjectStore(Protocol):
    """Versioned object store with optimistic concurrency and a status subresource.

    Writes return the object as stored. ``update`` and ``patch`` never touch
    ``status``; ``update_status`` only touches ``status``. A non-empty
    ``metadata.resourceVersion`` on ``update``/``update_status`` and an explicit
    ``resource_version`` on ``patch`` are compared against the stored object
    and a mismatch raises ConflictError.
    """

    async def get(self, cls: type[R], namespace: str, name: str) -> R: ...

    async def list(
        self,
        cls: type[R],
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[R]: ...

    async def create(self, obj: R) -> R: ...

    async def update(self, obj: R) -> R: ...

    async def patch(
        self, obj: R, merge_patch: dict[str, Any], resource_version: str | None = None
    ) -> R: ...

    async def update_status(self, obj: R) -> R: ...

    async def delete(self, obj: Resource) -> None: ...

    def watch(self, cls: type[Resource], namespace: str | None = None) -> AsyncIterator[WatchEvent]: ...


def matches_labels(obj: Resource, selector: dict[str, str] | None) -> bool:
    if not selector:
        return True
    labels = obj.metadata.labels
    return all(labels.get(key) == value for key, value in selector.items())


async def get_or_none(store: ObjectStore, cls: type[R], namespace: str, name: str) -> R | None:
    """Fetch an object, returning None instead of raising when it does not exist."""
    try:
        return await store.get(cls, namespace, name)
    except NotFoundError:
        return None


class OperationResult(StrEnum):
    NONE = "unchanged"
    CREATED = "created"
    UPDATED = "updated"


async def create_or_update(
    store: ObjectStore, obj: R, mutate: Callable[[R], None]
) -> tuple[R, OperationResult]:
    """Create ``obj`` or update the stored version of it.

    ``mutate`` is applied to the stored object (or to ``obj`` when nothing is
    stored yet) and must bring it into the desired state. No write happens when
    the mutation does not change anything.
    """
    existing = await get_or_none(store, type(obj), obj.namespace, obj.name)
    if existing is None:
        mutate(obj)
        created = await store.create(obj)
        logger.debug("object_created", kind=obj.kind, resource=str(obj.key()))
        return created, OperationResult.CREATED

    before = existing.to_dict()
    mutate(existing)
    if existing.to_dict() == before:
        return existing, OperationResult.NONE
    updated = await store.update(existing)
    logger.debug("object_updated", kind=obj.kind, resource=str(obj.key()))
    return updated, OperationResult.UPDATED
