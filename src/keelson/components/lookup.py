"""Fetching component resources by type."""

from __future__ import annotations

from keelson.api.types import ComponentType
from keelson.components.registry import ComponentHandler, ComponentRegistry
from keelson.core.errors import NotFoundError, StoreInteractionError
from keelson.store.base import ObjectStore


async def get_components(
    registry: ComponentRegistry, store: ObjectStore, namespace: str, name: str
) -> dict[ComponentType, ComponentHandler]:
    """Handlers for every known component whose resource exists, holding the stored resource."""
    result: dict[ComponentType, ComponentHandler] = {}
    for component, handler in registry.get_all().items():
        try:
            stored = await store.get(type(handler.resource()), namespace, name)
        except NotFoundError:
            continue
        except StoreInteractionError as exc:
            raise StoreInteractionError(
                f"error getting resource '{namespace}/{name}' for component type '{component}': {exc}",
                exc.details,
            ) from exc
        handler.set_resource(stored)
        result[component] = handler
    return result


async def get_component(
    registry: ComponentRegistry,
    store: ObjectStore,
    component: ComponentType,
    namespace: str,
    name: str,
) -> ComponentHandler | None:
    """Handler holding the stored resource of ``component``, or None if it does not exist."""
    handler = registry.get(component)
    if handler is None:
        raise KeyError(f"component '{component}' is not in the list of known components")
    try:
        handler.set_resource(await store.get(type(handler.resource()), namespace, name))
    except NotFoundError:
        return None
    return handler
