"""Wiring of all controllers against one operator context."""

from __future__ import annotations

import asyncio

import structlog

from keelson.api.managedcontrolplane import InternalConfiguration, ManagedControlPlane
from keelson.context import OperatorContext
from keelson.controllers.component import component_reconcilers
from keelson.controllers.managedcontrolplane import ManagedControlPlaneController
from keelson.controllers.runtime import Controller
from keelson.reconcile.predicates import (
    default_component_predicates,
    default_parent_predicates,
    generation_changed,
    status_changed,
)

logger = structlog.get_logger()


def setup_controllers(ctx: OperatorContext) -> list[Controller]:
    """The ManagedControlPlane controller plus one controller per registered component kind."""
    settings = ctx.settings
    namespace = settings.namespace

    def new_controller(name: str, reconciler) -> Controller:
        return Controller(
            name,
            reconciler,
            max_concurrent_reconciles=settings.max_concurrent_reconciles,
            backoff_base=settings.backoff_base_seconds,
            backoff_max=settings.backoff_max_seconds,
        )

    mcp_controller = new_controller(ManagedControlPlaneController.name, ManagedControlPlaneController(ctx))
    mcp_controller.watch(ctx.store, ManagedControlPlane, default_parent_predicates(), namespace=namespace)
    mcp_controller.owns(ctx.store, InternalConfiguration, ManagedControlPlane, generation_changed, namespace)
    for handler in ctx.registry.get_all().values():
        mcp_controller.owns(ctx.store, type(handler.resource()), ManagedControlPlane, status_changed, namespace)

    controllers = [mcp_controller]
    for reconciler in component_reconcilers(ctx):
        controller = new_controller(reconciler.name, reconciler)
        controller.watch(ctx.store, reconciler.resource_type, default_component_predicates(), namespace=namespace)
        controllers.append(controller)
    logger.info("controllers_configured", controllers=[controller.name for controller in controllers])
    return controllers


async def run_controllers(controllers: list[Controller], stop: asyncio.Event) -> None:
    await asyncio.gather(*(controller.start(stop) for controller in controllers))
