"""Assembling and running the operator."""

from __future__ import annotations

import asyncio

import structlog

from keelson.components.registry import ComponentRegistry, default_registry
from keelson.config import Settings, get_settings
from keelson.context import OperatorContext
from keelson.controllers.manager import run_controllers, setup_controllers
from keelson.logging import configure_logging
from keelson.store.base import ObjectStore
from keelson.store.kubernetes import KubernetesStore
from keelson.store.memory import InMemoryStore
from keelson.workers.apiserver import APIServerWorker, ClientFactory, Task

logger = structlog.get_logger()


def build_context(
    settings: Settings | None = None,
    store: ObjectStore | None = None,
    registry: ComponentRegistry | None = None,
) -> OperatorContext:
    """Operator context with the built-in component kinds.

    Without an explicit store, development environments get an in-memory
    store and every other environment talks to Kubernetes.
    """
    settings = settings or get_settings()
    if store is None:
        if settings.environment == "development" and settings.kubeconfig is None:
            store = InMemoryStore()
        else:
            store = KubernetesStore.from_settings(settings)
    return OperatorContext(store=store, registry=registry or default_registry(), settings=settings)


async def run_operator(
    stop: asyncio.Event,
    ctx: OperatorContext | None = None,
    tasks: dict[str, Task] | None = None,
    new_client: ClientFactory | None = None,
) -> None:
    """Run all controllers and the APIServer worker until ``stop`` is set."""
    if ctx is None:
        settings = get_settings()
        configure_logging(settings.log_level, json_logs=settings.environment != "development")
        ctx = build_context(settings)

    controllers = setup_controllers(ctx)
    worker = APIServerWorker.from_settings(ctx.store, ctx.settings, new_client)
    for name, task in (tasks or {}).items():
        worker.register_task(name, task)
    worker_task = worker.start(stop)

    logger.info("operator_started", store=type(ctx.store).__name__, components=[str(ct) for ct in ctx.registry.types()])
    await run_controllers(controllers, stop)
    await worker_task
    logger.info("operator_stopped")
