"""Event filters deciding which watch events trigger a reconcile."""

from __future__ import annotations

from typing import Callable

from keelson.api.constants import OPERATION_ANNOTATION, OPERATION_IGNORE, OPERATION_RECONCILE
from keelson.api.types import Resource
from keelson.core.errors import InvalidGenerationLabelError, MissingGenerationLabelError
from keelson.reconcile.generations import get_created_from_generation
from keelson.store.base import EventType, WatchEvent

Predicate = Callable[[WatchEvent], bool]


def _is_update(event: WatchEvent) -> bool:
    return event.type == EventType.MODIFIED and event.old is not None


def generation_changed(event: WatchEvent) -> bool:
    if not _is_update(event):
        return True
    return event.old.metadata.generation != event.obj.metadata.generation


def labels_changed(event: WatchEvent) -> bool:
    if not _is_update(event):
        return True
    return event.old.metadata.labels != event.obj.metadata.labels


def _has_annotation(obj: Resource | None, key: str, value: str | None) -> bool:
    if obj is None or key not in obj.metadata.annotations:
        return False
    return value is None or obj.metadata.annotations[key] == value


def got_annotation(key: str, value: str | None = None) -> Predicate:
    """Matches objects that newly carry the annotation (with ``value``, if given)."""

    def predicate(event: WatchEvent) -> bool:
        if event.type == EventType.DELETED:
            return False
        if event.type == EventType.ADDED or event.old is None:
            return _has_annotation(event.obj, key, value)
        return not _has_annotation(event.old, key, value) and _has_annotation(event.obj, key, value)

    return predicate


def lost_annotation(key: str, value: str | None = None) -> Predicate:
    """Matches updates that removed the annotation (with ``value``, if given)."""

    def predicate(event: WatchEvent) -> bool:
        if not _is_update(event):
            return False
        return _has_annotation(event.old, key, value) and not _has_annotation(event.obj, key, value)

    return predicate


def has_annotation(key: str, value: str | None = None) -> Predicate:
    def predicate(event: WatchEvent) -> bool:
        return _has_annotation(event.obj, key, value)

    return predicate


def _created_from(obj: Resource) -> tuple[int, int]:
    try:
        return get_created_from_generation(obj)
    except (MissingGenerationLabelError, InvalidGenerationLabelError):
        return -1, -1


def generation_labels_changed(event: WatchEvent) -> bool:
    if not _is_update(event):
        return True
    return _created_from(event.old) != _created_from(event.obj)


def status_changed(event: WatchEvent) -> bool:
    if not _is_update(event):
        return True
    return getattr(event.old, "status", None) != getattr(event.obj, "status", None)


def any_of(*predicates: Predicate) -> Predicate:
    def predicate(event: WatchEvent) -> bool:
        return any(p(event) for p in predicates)

    return predicate


def all_of(*predicates: Predicate) -> Predicate:
    def predicate(event: WatchEvent) -> bool:
        return all(p(event) for p in predicates)

    return predicate


def negate(pred: Predicate) -> Predicate:
    def predicate(event: WatchEvent) -> bool:
        return not pred(event)

    return predicate


def default_component_predicates() -> Predicate:
    """Events a component controller reacts to, unless the resource is ignored."""
    return all_of(
        any_of(
            generation_changed,
            got_annotation(OPERATION_ANNOTATION, OPERATION_RECONCILE),
            lost_annotation(OPERATION_ANNOTATION, OPERATION_IGNORE),
            generation_labels_changed,
        ),
        negate(has_annotation(OPERATION_ANNOTATION, OPERATION_IGNORE)),
    )


def default_parent_predicates() -> Predicate:
    """Events on the ManagedControlPlane that trigger its reconcile."""
    return any_of(
        generation_changed,
        labels_changed,
        got_annotation(OPERATION_ANNOTATION, OPERATION_RECONCILE),
        lost_annotation(OPERATION_ANNOTATION, OPERATION_IGNORE),
    )
