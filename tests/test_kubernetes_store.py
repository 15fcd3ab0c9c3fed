"""Tests for the Kubernetes-backed object store."""

from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.exceptions import ApiException

from keelson.api import APIServer
from keelson.core.errors import AlreadyExistsError, ConflictError, NotFoundError, StoreInteractionError
from keelson.store.kubernetes import (
    KubernetesStore,
    RetryableStoreError,
    _check_kubernetes_available,
    translate_api_exception,
)

API_SERVER = {
    "apiVersion": "core.openmcp.cloud/v1alpha1",
    "kind": "APIServer",
    "metadata": {"name": "test", "namespace": "default", "resourceVersion": "7", "generation": 2},
    "spec": {"type": "GardenerDedicated"},
}


def _store(api: MagicMock) -> KubernetesStore:
    store = KubernetesStore(max_retries=3, backoff_factor=0)
    store._custom_api = MagicMock(return_value=api)
    return store


class TestAvailability:
    def test_check_kubernetes_available(self):
        assert _check_kubernetes_available() is True


class TestTranslateApiException:
    """Tests for mapping API status codes onto store errors."""

    @pytest.mark.parametrize(
        "status,verb,expected",
        [
            (404, "get", NotFoundError),
            (409, "create", AlreadyExistsError),
            (409, "update", ConflictError),
            (503, "get", RetryableStoreError),
            (429, "patch", RetryableStoreError),
            (403, "get", StoreInteractionError),
        ],
    )
    def test_status_codes(self, status, verb, expected):
        error = translate_api_exception(ApiException(status=status, reason="Nope"), "APIServer", "default/test", verb)

        assert type(error) is expected
        assert error.details["status"] == status
        assert "Nope" in str(error)


class TestKubernetesStore:
    """Tests for KubernetesStore against a mocked CustomObjectsApi."""

    def test_from_settings(self, settings):
        store = KubernetesStore.from_settings(settings)

        assert store.timeout == settings.store_timeout
        assert store.max_retries == settings.store_max_retries

    @pytest.mark.asyncio
    async def test_get(self):
        api = MagicMock()
        api.get_namespaced_custom_object.return_value = API_SERVER

        obj = await _store(api).get(APIServer, "default", "test")

        assert obj.metadata.resource_version == "7"
        args = api.get_namespaced_custom_object.call_args.args
        assert args == ("core.openmcp.cloud", "v1alpha1", "default", "apiservers", "test")

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self):
        api = MagicMock()
        api.get_namespaced_custom_object.side_effect = [ApiException(status=503), API_SERVER]

        obj = await _store(api).get(APIServer, "default", "test")

        assert obj.name == "test"
        assert api.get_namespaced_custom_object.call_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        api = MagicMock()
        api.get_namespaced_custom_object.side_effect = ApiException(status=503)

        with pytest.raises(RetryableStoreError):
            await _store(api).get(APIServer, "default", "test")

        assert api.get_namespaced_custom_object.call_count == 3

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self):
        api = MagicMock()
        api.get_namespaced_custom_object.side_effect = ApiException(status=404)

        with pytest.raises(NotFoundError):
            await _store(api).get(APIServer, "default", "test")

        assert api.get_namespaced_custom_object.call_count == 1

    @pytest.mark.asyncio
    async def test_list_with_label_selector(self):
        api = MagicMock()
        api.list_cluster_custom_object.return_value = {"items": [API_SERVER]}

        result = await _store(api).list(APIServer, labels={"b": "2", "a": "1"})

        assert [obj.name for obj in result] == ["test"]
        assert api.list_cluster_custom_object.call_args.kwargs["label_selector"] == "a=1,b=2"

    @pytest.mark.asyncio
    async def test_patch_with_resource_version(self):
        api = MagicMock()
        api.patch_namespaced_custom_object.return_value = API_SERVER

        await _store(api).patch(APIServer.new("test", "default"), {"metadata": {"finalizers": ["x"]}}, "7")

        call = api.patch_namespaced_custom_object.call_args
        assert call.args[-1] == {"metadata": {"finalizers": ["x"], "resourceVersion": "7"}}
        assert call.kwargs["_content_type"] == "application/merge-patch+json"

    @pytest.mark.asyncio
    async def test_watch_hands_out_old_object(self):
        updated = {**API_SERVER, "metadata": {**API_SERVER["metadata"], "resourceVersion": "8"}}
        events = iter([{"type": "ADDED", "object": API_SERVER}, {"type": "MODIFIED", "object": updated}])
        watcher = MagicMock()
        watcher.stream.return_value = events

        with patch("kubernetes.watch.Watch", return_value=watcher):
            received = [event async for event in _store(MagicMock()).watch(APIServer)]

        assert [event.type for event in received] == ["ADDED", "MODIFIED"]
        assert received[0].old is None
        assert received[1].old.metadata.resource_version == "7"
        watcher.stop.assert_called_once()
