"""Single-annotation patching."""

from __future__ import annotations

from enum import StrEnum

from keelson.api.types import Resource
from keelson.core.errors import AnnotationAlreadyExistsError
from keelson.store.base import ObjectStore


class AnnotationMode(StrEnum):
    OVERWRITE = "overwrite"
    DELETE = "delete"


async def patch_annotation(
    store: ObjectStore,
    obj: Resource,
    key: str,
    value: str,
    *modes: AnnotationMode,
) -> Resource:
    """Add, overwrite or delete annotation ``key`` on ``obj`` with a merge patch.

    Without OVERWRITE, an existing annotation with a different value raises
    AnnotationAlreadyExistsError. With DELETE the annotation is removed and
    ``value`` is ignored. Returns ``obj`` unchanged when nothing had to be
    written, the patched object otherwise.
    """
    delete = AnnotationMode.DELETE in modes
    overwrite = AnnotationMode.OVERWRITE in modes
    annotations = obj.metadata.annotations
    patch_value: str | None = value
    if key in annotations:
        if delete:
            patch_value = None
        else:
            actual = annotations[key]
            if actual == value:
                return obj
            if not overwrite:
                raise AnnotationAlreadyExistsError(key, value, actual)
    elif delete:
        return obj
    return await store.patch(obj, {"metadata": {"annotations": {key: patch_value}}})
