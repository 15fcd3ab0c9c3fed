"""
Periodic tasks against every APIServer's cluster.

The worker lists all APIServer resources once per interval, builds a client
from the admin kubeconfig in each one's status and runs every registered
task for every APIServer on a bounded pool. Tasks are expected to be
idempotent. A task still running for an APIServer from an earlier interval
is not started again for it.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable

import structlog
import yaml

from keelson.api.components import APIServer
from keelson.config import Settings
from keelson.core.errors import KeelsonError, StoreInteractionError
from keelson.store.base import ObjectStore
from keelson.store.kubernetes import _check_kubernetes_available

logger = structlog.get_logger()

Task = Callable[[APIServer, ObjectStore, Any], Awaitable[None]]
ClientFactory = Callable[[dict[str, Any]], Any]
Signal = asyncio.Event | Callable[[], Any]

DEFAULT_MAX_WORKERS = 1
DEFAULT_INTERVAL = 10.0


def default_client_factory(config: dict[str, Any]) -> Any:
    """Build a kubernetes ApiClient from a parsed kubeconfig."""
    if not _check_kubernetes_available():
        raise KeelsonError("kubernetes package not installed. Install with: pip install kubernetes")
    from kubernetes import config as k8s_config

    return k8s_config.new_client_from_config_dict(config)


class APIServerAccess:
    """Admin access to the cluster behind an APIServer resource."""

    def __init__(self, new_client: ClientFactory | None = None) -> None:
        self.new_client = new_client or default_client_factory

    def get_admin_access_raw(self, api_server: APIServer) -> str:
        access = api_server.status.admin_access
        if access is None or not access.kubeconfig:
            raise KeelsonError(
                "no admin access found in APIServer status", {"apiserver": str(api_server.key())}
            )
        return access.kubeconfig

    def get_admin_access_config(self, api_server: APIServer) -> dict[str, Any]:
        raw = self.get_admin_access_raw(api_server)
        try:
            config = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise KeelsonError(f"error parsing admin kubeconfig: {exc}") from exc
        if not isinstance(config, dict):
            raise KeelsonError("admin kubeconfig is not a mapping", {"apiserver": str(api_server.key())})
        return config

    def get_admin_access_client(self, api_server: APIServer) -> Any:
        config = self.get_admin_access_config(api_server)
        try:
            return self.new_client(config)
        except KeelsonError:
            raise
        except Exception as exc:
            raise KeelsonError(f"error creating client from admin kubeconfig: {exc}") from exc


async def _signal(target: Signal | None) -> None:
    if target is None:
        return
    if isinstance(target, asyncio.Event):
        target.set()
        return
    result = target()
    if inspect.isawaitable(result):
        await result


async def _wait_for(waitable: asyncio.Event | Awaitable[Any]) -> None:
    if isinstance(waitable, asyncio.Event):
        await waitable.wait()
    else:
        await waitable


class APIServerWorker:
    """Runs registered tasks for every APIServer once per interval."""

    def __init__(
        self,
        store: ObjectStore,
        max_workers: int = DEFAULT_MAX_WORKERS,
        interval: float = DEFAULT_INTERVAL,
        new_client: ClientFactory | None = None,
    ) -> None:
        self.store = store
        self.max_workers = max(1, max_workers)
        self.interval = interval
        self.access = APIServerAccess(new_client)
        self._tasks: dict[str, Task] = {}
        self._in_flight: dict[tuple[str, str], asyncio.Task[None]] = {}

    @classmethod
    def from_settings(
        cls, store: ObjectStore, settings: Settings, new_client: ClientFactory | None = None
    ) -> APIServerWorker:
        return cls(
            store,
            max_workers=settings.worker_max_workers,
            interval=settings.worker_interval_seconds,
            new_client=new_client,
        )

    def register_task(self, name: str, task: Task) -> None:
        """Register ``task`` under ``name``; an already registered name is kept."""
        if name in self._tasks:
            return
        self._tasks[name] = task
        logger.debug("task_registered", task=name)

    def unregister_task(self, name: str) -> None:
        if self._tasks.pop(name, None) is not None:
            logger.debug("task_unregistered", task=name)

    @property
    def task_names(self) -> list[str]:
        return list(self._tasks)

    def start(
        self,
        stop: asyncio.Event,
        on_exit: Signal | None = None,
        on_next_interval: Signal | None = None,
        wait_for: asyncio.Event | Awaitable[Any] | None = None,
    ) -> asyncio.Task[None]:
        """Start the worker loop in the background and return its task."""
        return asyncio.create_task(self._run(stop, on_exit, on_next_interval, wait_for))

    async def _run(
        self,
        stop: asyncio.Event,
        on_exit: Signal | None,
        on_next_interval: Signal | None,
        wait_for: asyncio.Event | Awaitable[Any] | None,
    ) -> None:
        if wait_for is not None:
            await _wait_for(wait_for)
        logger.info("worker_started", max_workers=self.max_workers, interval=self.interval)
        semaphore = asyncio.Semaphore(self.max_workers)
        try:
            while True:
                if self._tasks:
                    await self.run_interval(semaphore)
                try:
                    await asyncio.wait_for(stop.wait(), timeout=self.interval)
                    break
                except asyncio.TimeoutError:
                    pass
                await _signal(on_next_interval)
        finally:
            if self._in_flight:
                await asyncio.gather(*self._in_flight.values())
            logger.info("worker_stopped")
            await _signal(on_exit)

    async def run_interval(self, semaphore: asyncio.Semaphore) -> None:
        """Submit every registered task for every APIServer."""
        logger.debug("listing_apiservers")
        try:
            api_servers = await self.store.list(APIServer)
        except StoreInteractionError as exc:
            logger.error("apiserver_list_failed", error=str(exc))
            return

        tasks = list(self._tasks.items())
        for api_server in api_servers:
            target = str(api_server.key())
            try:
                client = self.access.get_admin_access_client(api_server)
            except KeelsonError as exc:
                logger.error("apiserver_client_failed", apiserver=target, error=str(exc))
                continue
            for name, task in tasks:
                key = (target, name)
                if key in self._in_flight:
                    logger.warning("task_still_running", apiserver=target, task=name)
                    continue
                logger.debug("task_submitted", apiserver=target, task=name)
                running = asyncio.create_task(self._execute(semaphore, name, task, api_server, client))
                self._in_flight[key] = running
                running.add_done_callback(lambda _, key=key: self._in_flight.pop(key, None))

    async def _execute(
        self,
        semaphore: asyncio.Semaphore,
        name: str,
        task: Task,
        api_server: APIServer,
        client: Any,
    ) -> None:
        async with semaphore:
            with structlog.contextvars.bound_contextvars(task=name, apiserver=str(api_server.key())):
                try:
                    await task(api_server, self.store, client)
                except Exception as exc:
                    logger.error("task_failed", error=str(exc))
