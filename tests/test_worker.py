"""Tests for the periodic APIServer worker."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from keelson.api import APIServer, APIServerAccess as AdminAccess
from keelson.core.errors import KeelsonError, StoreInteractionError
from keelson.workers import APIServerAccess, APIServerWorker

KUBECONFIG = """
apiVersion: v1
kind: Config
clusters:
- name: test
  cluster:
    server: https://api.test.example.com
"""


async def _api_server(store, name: str, kubeconfig: str | None = KUBECONFIG) -> APIServer:
    obj = await store.create(APIServer.new(name, "default"))
    if kubeconfig is not None:
        obj.status.admin_access = AdminAccess(kubeconfig=kubeconfig)
        obj = await store.update_status(obj)
    return obj


def _worker(store, **kwargs) -> APIServerWorker:
    return APIServerWorker(store, interval=0.01, new_client=lambda config: config["clusters"][0]["name"], **kwargs)


async def _run_one_interval(worker: APIServerWorker) -> None:
    await worker.run_interval(asyncio.Semaphore(worker.max_workers))
    if worker._in_flight:
        await asyncio.gather(*worker._in_flight.values())


class TestAPIServerAccess:
    """Tests for reading admin access out of an APIServer status."""

    def test_parses_kubeconfig(self):
        api_server = APIServer.new("test", "default")
        api_server.status.admin_access = AdminAccess(kubeconfig=KUBECONFIG)
        new_client = MagicMock(return_value="client")

        client = APIServerAccess(new_client).get_admin_access_client(api_server)

        assert client == "client"
        assert new_client.call_args.args[0]["clusters"][0]["cluster"]["server"] == "https://api.test.example.com"

    def test_missing_access(self):
        with pytest.raises(KeelsonError, match="no admin access"):
            APIServerAccess(MagicMock()).get_admin_access_raw(APIServer.new("test", "default"))

    def test_invalid_kubeconfig(self):
        api_server = APIServer.new("test", "default")
        api_server.status.admin_access = AdminAccess(kubeconfig="just a string")

        with pytest.raises(KeelsonError, match="not a mapping"):
            APIServerAccess(MagicMock()).get_admin_access_config(api_server)

    def test_client_factory_failure_is_wrapped(self):
        api_server = APIServer.new("test", "default")
        api_server.status.admin_access = AdminAccess(kubeconfig=KUBECONFIG)

        with pytest.raises(KeelsonError, match="error creating client"):
            APIServerAccess(MagicMock(side_effect=ValueError("bad"))).get_admin_access_client(api_server)


class TestTaskRegistration:
    def test_first_registration_wins(self, store):
        worker = _worker(store)
        first, second = AsyncMock(), AsyncMock()

        worker.register_task("sync", first)
        worker.register_task("sync", second)

        assert worker.task_names == ["sync"]
        assert worker._tasks["sync"] is first

    def test_unregister(self, store):
        worker = _worker(store)
        worker.register_task("sync", AsyncMock())

        worker.unregister_task("sync")
        worker.unregister_task("missing")

        assert worker.task_names == []

    def test_from_settings(self, store, settings):
        worker = APIServerWorker.from_settings(store, settings)

        assert worker.max_workers == settings.worker_max_workers
        assert worker.interval == settings.worker_interval_seconds


class TestRunInterval:
    """Tests for a single worker interval."""

    @pytest.mark.asyncio
    async def test_every_task_runs_for_every_apiserver(self, store):
        await _api_server(store, "a")
        await _api_server(store, "b")
        worker = _worker(store, max_workers=2)
        calls = []

        async def record(name):
            async def task(api_server, task_store, client):
                assert task_store is store
                calls.append((name, api_server.name, client))

            return task

        worker.register_task("first", await record("first"))
        worker.register_task("second", await record("second"))

        await _run_one_interval(worker)

        assert sorted(calls) == [
            ("first", "a", "test"),
            ("first", "b", "test"),
            ("second", "a", "test"),
            ("second", "b", "test"),
        ]

    @pytest.mark.asyncio
    async def test_apiserver_without_access_is_skipped(self, store):
        await _api_server(store, "ready")
        await _api_server(store, "pending", kubeconfig=None)
        task = AsyncMock()
        worker = _worker(store)
        worker.register_task("sync", task)

        await _run_one_interval(worker)

        assert [call.args[0].name for call in task.await_args_list] == ["ready"]

    @pytest.mark.asyncio
    async def test_failing_task_does_not_stop_others(self, store):
        await _api_server(store, "a")
        healthy = AsyncMock()
        worker = _worker(store)
        worker.register_task("broken", AsyncMock(side_effect=RuntimeError("boom")))
        worker.register_task("healthy", healthy)

        await _run_one_interval(worker)

        healthy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_list_failure(self, store):
        store.list = AsyncMock(side_effect=StoreInteractionError("connection refused"))
        task = AsyncMock()
        worker = _worker(store)
        worker.register_task("sync", task)

        await _run_one_interval(worker)

        task.assert_not_called()

    @pytest.mark.asyncio
    async def test_pool_bounds_concurrency(self, store):
        await _api_server(store, "a")
        await _api_server(store, "b")
        await _api_server(store, "c")
        active = 0
        max_active = 0

        async def task(api_server, task_store, client):
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.01)
            active -= 1

        worker = _worker(store, max_workers=2)
        worker.register_task("slow", task)

        await _run_one_interval(worker)

        assert max_active == 2

    @pytest.mark.asyncio
    async def test_task_still_running_is_not_started_again(self, store):
        await _api_server(store, "a")
        release = asyncio.Event()
        started = 0

        async def slow(api_server, task_store, client):
            nonlocal started
            started += 1
            await release.wait()

        worker = _worker(store, max_workers=2)
        worker.register_task("slow", slow)
        semaphore = asyncio.Semaphore(worker.max_workers)

        await worker.run_interval(semaphore)
        await asyncio.sleep(0)
        await worker.run_interval(semaphore)
        await asyncio.sleep(0)

        assert started == 1
        assert list(worker._in_flight) == [("default/a", "slow")]

        release.set()
        await asyncio.gather(*worker._in_flight.values())
        await worker.run_interval(semaphore)
        await asyncio.gather(*worker._in_flight.values())

        assert started == 2
        assert not worker._in_flight


class TestWorkerLoop:
    """Tests for the background worker loop."""

    @pytest.mark.asyncio
    async def test_no_tasks_no_listing(self, store):
        store.list = AsyncMock(return_value=[])
        worker = _worker(store)
        stop = asyncio.Event()
        next_interval = asyncio.Event()

        running = worker.start(stop, on_next_interval=next_interval)
        await asyncio.wait_for(next_interval.wait(), 1)
        stop.set()
        await asyncio.wait_for(running, 1)

        store.list.assert_not_called()

    @pytest.mark.asyncio
    async def test_runs_every_interval_until_stopped(self, store):
        await _api_server(store, "a")
        task = AsyncMock()
        worker = _worker(store)
        worker.register_task("sync", task)
        stop = asyncio.Event()
        exited = asyncio.Event()
        intervals = 0

        def on_next_interval():
            nonlocal intervals
            intervals += 1
            if intervals == 2:
                stop.set()

        running = worker.start(stop, on_exit=exited, on_next_interval=on_next_interval)
        await asyncio.wait_for(running, 1)

        assert exited.is_set()
        assert task.await_count == 3

    @pytest.mark.asyncio
    async def test_unregistered_task_is_not_invoked_again(self, store):
        """A task unregistered between intervals keeps its call count."""
        await _api_server(store, "a")
        await _api_server(store, "b")
        kept, dropped = AsyncMock(), AsyncMock()
        worker = _worker(store, max_workers=2)
        worker.register_task("kept", kept)
        worker.register_task("dropped", dropped)
        stop = asyncio.Event()
        first_interval_calls = []
        intervals = 0

        def on_next_interval():
            nonlocal intervals
            intervals += 1
            if intervals == 1:
                first_interval_calls.extend([kept.await_count, dropped.await_count])
                worker.unregister_task("dropped")
            if intervals == 3:
                stop.set()

        running = worker.start(stop, on_next_interval=on_next_interval)
        await asyncio.wait_for(running, 1)

        assert first_interval_calls == [2, 2]
        assert dropped.await_count == 2
        assert kept.await_count == 8

    @pytest.mark.asyncio
    async def test_waits_before_starting(self, store):
        task = AsyncMock()
        await _api_server(store, "a")
        worker = _worker(store)
        worker.register_task("sync", task)
        stop = asyncio.Event()
        ready = asyncio.Event()

        running = worker.start(stop, wait_for=ready)
        await asyncio.sleep(0.02)
        task.assert_not_called()

        ready.set()
        await asyncio.sleep(0)
        stop.set()
        await asyncio.wait_for(running, 1)

        task.assert_awaited_once()
