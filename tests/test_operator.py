"""End-to-end tests running the whole operator against the in-memory store."""

import asyncio

import pytest

from keelson.api import (
    APIServer,
    APIServerAccess,
    Authentication,
    Landscaper,
    LandscaperConfiguration,
    ManagedControlPlane,
    MCPStatus,
)
from keelson.config import Settings, get_settings
from keelson.controllers import setup_controllers
from keelson.operator import build_context, run_operator
from keelson.store import InMemoryStore


def _fast_settings(**overrides) -> Settings:
    values = {
        "dependency_requeue_seconds": 0.02,
        "deletion_requeue_seconds": 0.02,
        "worker_interval_seconds": 0.02,
        "backoff_base_seconds": 0.01,
        "backoff_max_seconds": 0.05,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


async def _eventually(check, timeout: float = 5.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        if await check():
            return
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.worker_interval_seconds == 10.0
        assert settings.worker_max_workers == 1
        assert settings.dependency_requeue_seconds == 60.0
        assert settings.max_concurrent_reconciles == 4

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("KEELSON_WORKER_MAX_WORKERS", "8")
        monkeypatch.setenv("KEELSON_NAMESPACE", "crate")

        settings = Settings(_env_file=None)

        assert settings.worker_max_workers == 8
        assert settings.namespace == "crate"

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestBuildContext:
    def test_development_uses_memory_store(self):
        ctx = build_context(Settings(_env_file=None))

        assert isinstance(ctx.store, InMemoryStore)
        assert len(ctx.registry.types()) == 5

    def test_explicit_store(self, store):
        ctx = build_context(Settings(_env_file=None, environment="production"), store=store)

        assert ctx.store is store

    def test_controller_per_component(self, ctx):
        controllers = setup_controllers(ctx)

        assert [controller.name for controller in controllers] == [
            "ManagedControlPlane",
            "APIServer",
            "Landscaper",
            "CloudOrchestrator",
            "Authentication",
            "Authorization",
        ]
        # parent, InternalConfiguration and five component kinds
        assert len(controllers[0].sources) == 7


class TestRunOperator:
    """Tests for the fully wired operator."""

    @pytest.mark.asyncio
    async def test_lifecycle(self, store, mcp):
        ctx = build_context(_fast_settings(), store)
        visited = []

        async def record(api_server, task_store, client):
            visited.append(api_server.name)

        stop = asyncio.Event()
        operator = asyncio.create_task(
            run_operator(stop, ctx, tasks={"record": record}, new_client=lambda config: config["kind"])
        )

        mcp.spec.components.landscaper = LandscaperConfiguration(deployers=["helm"])
        await store.create(mcp)

        async def api_server_reconciled():
            objs = await store.list(APIServer)
            return bool(objs) and bool(objs[0].status.conditions)

        await _eventually(api_server_reconciled)
        api_server = await store.get(APIServer, "default", "test")
        api_server.status.admin_access = APIServerAccess(kubeconfig="apiVersion: v1\nkind: Config\n")
        await store.update_status(api_server)

        async def mcp_ready():
            parent = await store.get(ManagedControlPlane, "default", "test")
            return parent.status.status == MCPStatus.READY

        await _eventually(mcp_ready)

        async def task_ran():
            return "test" in visited

        await _eventually(task_ran)

        await store.delete(await store.get(ManagedControlPlane, "default", "test"))

        async def all_gone():
            for cls in (ManagedControlPlane, APIServer, Authentication, Landscaper):
                if await store.list(cls):
                    return False
            return True

        await _eventually(all_gone)
        stop.set()
        await asyncio.wait_for(operator, 5)
