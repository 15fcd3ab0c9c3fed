"""Tests for the in-memory object store and merge patches."""

import pytest

from keelson.api import APIServer, APIServerSpec, ComponentCondition, ConditionStatus
from keelson.api.components import APIServerType
from keelson.core.errors import AlreadyExistsError, ConflictError, NotFoundError
from keelson.store import EventType, OperationResult, apply_merge_patch, create_merge_patch, create_or_update


class TestMergePatch:
    def test_apply_merges_nested_and_deletes_none(self):
        target = {"metadata": {"labels": {"a": "1", "b": "2"}, "name": "x"}}

        result = apply_merge_patch(target, {"metadata": {"labels": {"a": None, "c": "3"}}})

        assert result == {"metadata": {"labels": {"b": "2", "c": "3"}, "name": "x"}}
        assert target["metadata"]["labels"] == {"a": "1", "b": "2"}

    def test_lists_are_replaced(self):
        result = apply_merge_patch({"finalizers": ["a", "b"]}, {"finalizers": ["c"]})

        assert result == {"finalizers": ["c"]}

    def test_create_merge_patch(self):
        original = {"metadata": {"labels": {"a": "1", "b": "2"}}, "spec": {"x": 1}}
        modified = {"metadata": {"labels": {"a": "1", "c": "3"}}, "spec": {"x": 1}}

        patch = create_merge_patch(original, modified)

        assert patch == {"metadata": {"labels": {"b": None, "c": "3"}}}
        assert apply_merge_patch(original, patch) == modified


class TestInMemoryStore:
    """Tests for InMemoryStore."""

    @pytest.mark.asyncio
    async def test_create_assigns_system_metadata(self, store):
        created = await store.create(APIServer.new("test", "default"))

        assert created.metadata.generation == 1
        assert created.metadata.uid
        assert created.metadata.resource_version
        assert created.metadata.creation_timestamp is not None

    @pytest.mark.asyncio
    async def test_create_twice(self, store):
        await store.create(APIServer.new("test", "default"))

        with pytest.raises(AlreadyExistsError):
            await store.create(APIServer.new("test", "default"))

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        with pytest.raises(NotFoundError):
            await store.get(APIServer, "default", "missing")

    @pytest.mark.asyncio
    async def test_generation_bumps_on_spec_change_only(self, store):
        created = await store.create(APIServer.new("test", "default"))

        created.metadata.labels["x"] = "y"
        relabeled = await store.update(created)
        relabeled.spec = APIServerSpec(type=APIServerType.GARDENER)
        respecced = await store.update(relabeled)

        assert relabeled.metadata.generation == 1
        assert respecced.metadata.generation == 2

    @pytest.mark.asyncio
    async def test_update_with_stale_resource_version(self, store):
        created = await store.create(APIServer.new("test", "default"))
        await store.patch(created, {"metadata": {"labels": {"a": "b"}}})

        with pytest.raises(ConflictError):
            await store.update(created)

    @pytest.mark.asyncio
    async def test_status_subresource_is_separate(self, store):
        """update never touches status, update_status only touches status."""
        created = await store.create(APIServer.new("test", "default"))
        created.status.conditions = [ComponentCondition(type="Ready", status=ConditionStatus.TRUE)]
        created.metadata.labels["ignored"] = "true"

        await store.update_status(created)
        stored = await store.get(APIServer, "default", "test")
        assert stored.status.conditions[0].type == "Ready"
        assert "ignored" not in stored.metadata.labels

        stored.status.conditions = []
        await store.update(stored)
        assert (await store.get(APIServer, "default", "test")).status.conditions[0].type == "Ready"

    @pytest.mark.asyncio
    async def test_delete_with_finalizers_marks_terminating(self, store):
        obj = APIServer.new("test", "default")
        obj.metadata.finalizers = ["keep"]
        created = await store.create(obj)

        await store.delete(created)
        terminating = await store.get(APIServer, "default", "test")
        assert terminating.is_terminating
        assert terminating.metadata.generation == 2

        await store.patch(terminating, {"metadata": {"finalizers": []}})
        with pytest.raises(NotFoundError):
            await store.get(APIServer, "default", "test")
        assert store.writes("remove", "APIServer") == [("remove", "APIServer", "default/test")]

    @pytest.mark.asyncio
    async def test_list_by_labels(self, store):
        first = APIServer.new("a", "default")
        first.metadata.labels["team"] = "x"
        await store.create(first)
        await store.create(APIServer.new("b", "other"))

        assert [obj.name for obj in await store.list(APIServer)] == ["a", "b"]
        assert [obj.name for obj in await store.list(APIServer, labels={"team": "x"})] == ["a"]
        assert [obj.name for obj in await store.list(APIServer, namespace="other")] == ["b"]

    @pytest.mark.asyncio
    async def test_watch_events(self, store):
        subscription = store.watch(APIServer)
        created = await store.create(APIServer.new("test", "default"))
        await store.patch(created, {"metadata": {"labels": {"a": "b"}}})
        await store.delete(created)

        events = [subscription.queue.get_nowait() for _ in range(3)]
        subscription.close()

        assert [event.type for event in events] == [EventType.ADDED, EventType.MODIFIED, EventType.DELETED]
        assert events[1].old.metadata.labels == {}
        assert events[1].obj.metadata.labels == {"a": "b"}


class TestCreateOrUpdate:
    @pytest.mark.asyncio
    async def test_create_then_unchanged(self, store):
        def mutate(obj):
            obj.metadata.labels["a"] = "b"

        _, first = await create_or_update(store, APIServer.new("test", "default"), mutate)
        _, second = await create_or_update(store, APIServer.new("test", "default"), mutate)

        assert first == OperationResult.CREATED
        assert second == OperationResult.NONE
        assert store.writes("update") == []

    @pytest.mark.asyncio
    async def test_update(self, store):
        await store.create(APIServer.new("test", "default"))

        def mutate(obj):
            obj.spec = APIServerSpec(type=APIServerType.GARDENER)

        stored, result = await create_or_update(store, APIServer.new("test", "default"), mutate)

        assert result == OperationResult.UPDATED
        assert stored.metadata.generation == 2
