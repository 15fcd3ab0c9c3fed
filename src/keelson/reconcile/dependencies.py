"""Dependency finalizers.

A component that depends on another one puts its dependency finalizer
(``dependency.openmcp.cloud/<lowercased type>``) on the depended-on resource.
The depended-on resource cannot disappear while any such finalizer is
present, and only the dependent removes its own finalizer again.
"""

from __future__ import annotations

from typing import Iterable, Iterator

import structlog

from keelson.api.constants import DEPENDENCY_FINALIZER_PREFIX
from keelson.api.types import ComponentResource, ComponentType, Resource
from keelson.context import OperatorContext

logger = structlog.get_logger()


class FinalizerSet:
    """Finalizer list with set semantics that keeps the original order."""

    def __init__(self, finalizers: Iterable[str] = ()) -> None:
        self._items: list[str] = []
        for fin in finalizers:
            self.add(fin)

    def add(self, finalizer: str) -> bool:
        if finalizer in self._items:
            return False
        self._items.append(finalizer)
        return True

    def remove(self, finalizer: str) -> bool:
        if finalizer not in self._items:
            return False
        self._items = [fin for fin in self._items if fin != finalizer]
        return True

    def has(self, finalizer: str) -> bool:
        return finalizer in self._items

    def to_list(self) -> list[str]:
        return list(self._items)

    def __contains__(self, finalizer: object) -> bool:
        return finalizer in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)


def get_dependents(requirement: Resource) -> set[str]:
    """Dependency finalizers on ``requirement``, with the prefix removed."""
    return {
        fin[len(DEPENDENCY_FINALIZER_PREFIX):]
        for fin in requirement.metadata.finalizers
        if fin.startswith(DEPENDENCY_FINALIZER_PREFIX)
    }


def has_any_dependency_finalizer(obj: Resource | None) -> bool:
    if obj is None:
        return False
    return any(fin.startswith(DEPENDENCY_FINALIZER_PREFIX) for fin in obj.metadata.finalizers)


def has_dependency_finalizer(obj: Resource | None, component: ComponentType) -> bool:
    if obj is None:
        return False
    return component.dependency_finalizer() in obj.metadata.finalizers


def _log_finalizers(obj: Resource) -> None:
    logger.debug(
        "finalizers",
        resource=str(obj.key()),
        kind=obj.kind,
        finalizers=",".join(obj.metadata.finalizers) or "none",
    )


async def ensure_dependency_finalizer(
    ctx: OperatorContext,
    requirement: ComponentResource,
    dependent: ComponentType | ComponentResource,
    expected: bool,
) -> ComponentResource:
    """Make sure the dependency finalizer of ``dependent`` is present on ``requirement`` or not.

    The requirement is re-fetched under the context's finalizer lock and the
    patch carries the fetched resourceVersion, so a concurrent change makes the
    store reject the write instead of losing another component's finalizer.
    Store errors propagate unchanged. Returns the latest version of the
    requirement.
    """
    dep_type = dependent.type() if isinstance(dependent, ComponentResource) else dependent
    async with ctx.finalizer_lock:
        current = await ctx.store.get(type(requirement), requirement.namespace, requirement.name)
        _log_finalizers(current)

        finalizer = dep_type.dependency_finalizer()
        if has_dependency_finalizer(current, dep_type) == expected:
            return current

        if expected:
            fins = current.metadata.finalizers + [finalizer]
        else:
            fins = [fin for fin in current.metadata.finalizers if fin != finalizer]
        logger.debug(
            "dependency_finalizer_changed",
            resource=str(current.key()),
            kind=current.kind,
            dependent=str(dep_type),
            present=expected,
        )
        return await ctx.store.patch(
            current,
            {"metadata": {"finalizers": fins}},
            resource_version=current.metadata.resource_version,
        )
