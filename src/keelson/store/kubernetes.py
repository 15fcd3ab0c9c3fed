"""
Kubernetes-backed object store.

Talks to the crate cluster through the CustomObjectsApi of the official
``kubernetes`` client. The client is synchronous, so every call runs in the
event loop's default executor. Transient API failures (throttling, server
errors, connection problems) are retried with exponential backoff.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from functools import partial
from typing import Any, AsyncIterator

import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from keelson.api.types import Resource
from keelson.core.errors import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    StoreInteractionError,
)
from keelson.store.base import EventType, R, WatchEvent

logger = structlog.get_logger()

# Lazy import kubernetes to allow optional installation
_kubernetes_available: bool | None = None


def _check_kubernetes_available() -> bool:
    """Check if kubernetes package is installed."""
    global _kubernetes_available
    if _kubernetes_available is None:
        try:
            import kubernetes  # noqa: F401

            _kubernetes_available = True
        except ImportError:
            _kubernetes_available = False
    return _kubernetes_available


class KubernetesStoreError(StoreInteractionError):
    """Raised when the Kubernetes store cannot be set up or used."""


class RetryableStoreError(StoreInteractionError):
    """API errors that should be retried."""


def is_retryable_status(status_code: int) -> bool:
    """Determine if an API status code is retryable."""
    return status_code in (408, 429, 500, 502, 503, 504)


def translate_api_exception(exc: Any, kind: str, key: str, verb: str) -> StoreInteractionError:
    """Map a kubernetes ApiException onto the store error taxonomy."""
    status = getattr(exc, "status", 0) or 0
    details = {"kind": kind, "resource": key, "verb": verb, "status": status}
    message = f"{verb} {kind} '{key}' failed: {getattr(exc, 'reason', exc)}"
    if status == 404:
        return NotFoundError(message, details)
    if status == 409:
        if verb == "create":
            return AlreadyExistsError(message, details)
        return ConflictError(message, details)
    if is_retryable_status(status):
        return RetryableStoreError(message, details)
    return StoreInteractionError(message, details)


@dataclass
class KubernetesStore:
    """
    ObjectStore implementation on top of the Kubernetes API.

    Configuration:
        kubeconfig: Path to kubeconfig file (optional)
        context: Kubeconfig context to use (optional)
        timeout: API request timeout in seconds
        max_retries: Attempts for retryable API errors
        backoff_factor: Multiplier of the exponential retry wait
    """

    kubeconfig: str | None = None
    context: str | None = None
    timeout: float = 30.0
    max_retries: int = 3
    backoff_factor: float = 0.5
    api_client: Any = None

    _initialized: bool = field(default=False, repr=False, compare=False)

    @classmethod
    def from_settings(cls, settings: Any) -> KubernetesStore:
        return cls(
            kubeconfig=settings.kubeconfig,
            context=settings.kube_context,
            timeout=settings.store_timeout,
            max_retries=settings.store_max_retries,
            backoff_factor=settings.store_retry_backoff_factor,
        )

    def _ensure_initialized(self) -> None:
        """Initialize the Kubernetes client if not already done."""
        if self._initialized:
            return

        if not _check_kubernetes_available():
            raise KubernetesStoreError("kubernetes package not installed")

        if self.api_client is None:
            from kubernetes import client, config

            # Try in-cluster config first, then kubeconfig
            try:
                config.load_incluster_config()
            except config.ConfigException:
                try:
                    config.load_kube_config(config_file=self.kubeconfig, context=self.context)
                except config.ConfigException as e:
                    raise KubernetesStoreError(f"Failed to load Kubernetes config: {e}") from e
            self.api_client = client.ApiClient()
        self._initialized = True

    def _custom_api(self) -> Any:
        self._ensure_initialized()
        from kubernetes import client

        return client.CustomObjectsApi(self.api_client)

    async def _run_sync(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Run synchronous kubernetes API call in executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def _call(self, verb: str, cls: type[Resource], key: str, method: str, *args: Any, **kwargs: Any) -> Any:
        from kubernetes.client.exceptions import ApiException
        from urllib3.exceptions import HTTPError

        api = self._custom_api()
        func = getattr(api, method)
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(RetryableStoreError),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.backoff_factor, min=self.backoff_factor, max=30),
            reraise=True,
        ):
            with attempt:
                try:
                    return await self._run_sync(func, *args, _request_timeout=self.timeout, **kwargs)
                except ApiException as exc:
                    error = translate_api_exception(exc, cls.kind, key, verb)
                    if isinstance(error, RetryableStoreError):
                        logger.warning("store_retryable_error", verb=verb, kind=cls.kind, resource=key, status=exc.status)
                    raise error from exc
                except HTTPError as exc:
                    logger.warning("store_network_error", verb=verb, kind=cls.kind, resource=key, error=str(exc))
                    raise RetryableStoreError(str(exc), {"kind": cls.kind, "resource": key}) from exc

    @staticmethod
    def _coords(cls: type[Resource]) -> tuple[str, str, str]:
        return cls.group, cls.version, cls.plural

    async def get(self, cls: type[R], namespace: str, name: str) -> R:
        group, version, plural = self._coords(cls)
        data = await self._call(
            "get", cls, f"{namespace}/{name}", "get_namespaced_custom_object",
            group, version, namespace, plural, name,
        )
        return cls.from_dict(data)

    async def list(
        self,
        cls: type[R],
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[R]:
        group, version, plural = self._coords(cls)
        kwargs: dict[str, Any] = {}
        if labels:
            kwargs["label_selector"] = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        if namespace:
            data = await self._call(
                "list", cls, namespace, "list_namespaced_custom_object",
                group, version, namespace, plural, **kwargs,
            )
        else:
            data = await self._call(
                "list", cls, "", "list_cluster_custom_object", group, version, plural, **kwargs
            )
        return [cls.from_dict(item) for item in data.get("items", [])]

    async def create(self, obj: R) -> R:
        group, version, plural = self._coords(type(obj))
        data = await self._call(
            "create", type(obj), str(obj.key()), "create_namespaced_custom_object",
            group, version, obj.namespace, plural, obj.to_dict(),
        )
        return type(obj).from_dict(data)

    async def update(self, obj: R) -> R:
        group, version, plural = self._coords(type(obj))
        data = await self._call(
            "update", type(obj), str(obj.key()), "replace_namespaced_custom_object",
            group, version, obj.namespace, plural, obj.name, obj.to_dict(),
        )
        return type(obj).from_dict(data)

    async def patch(
        self, obj: R, merge_patch: dict[str, Any], resource_version: str | None = None
    ) -> R:
        group, version, plural = self._coords(type(obj))
        body = dict(merge_patch)
        if resource_version:
            # The API server rejects the patch if the object changed in between.
            metadata = dict(body.get("metadata") or {})
            metadata["resourceVersion"] = resource_version
            body["metadata"] = metadata
        data = await self._call(
            "patch", type(obj), str(obj.key()), "patch_namespaced_custom_object",
            group, version, obj.namespace, plural, obj.name, body,
            _content_type="application/merge-patch+json",
        )
        return type(obj).from_dict(data)

    async def update_status(self, obj: R) -> R:
        group, version, plural = self._coords(type(obj))
        data = await self._call(
            "update_status", type(obj), str(obj.key()), "replace_namespaced_custom_object_status",
            group, version, obj.namespace, plural, obj.name, obj.to_dict(),
        )
        return type(obj).from_dict(data)

    async def delete(self, obj: Resource) -> None:
        group, version, plural = self._coords(type(obj))
        await self._call(
            "delete", type(obj), str(obj.key()), "delete_namespaced_custom_object",
            group, version, obj.namespace, plural, obj.name,
        )

    async def watch(self, cls: type[Resource], namespace: str | None = None) -> AsyncIterator[WatchEvent]:
        """Stream watch events; the blocking stream is advanced in the executor."""
        from kubernetes import watch

        api = self._custom_api()
        group, version, plural = self._coords(cls)
        watcher = watch.Watch()
        if namespace:
            stream = watcher.stream(api.list_namespaced_custom_object, group, version, namespace, plural)
        else:
            stream = watcher.stream(api.list_cluster_custom_object, group, version, plural)
        # last seen version of every object, to hand out the old object on updates
        seen: dict[Any, Resource] = {}
        try:
            while True:
                raw = await self._run_sync(next, stream, None)
                if raw is None:
                    return
                if raw.get("type") not in EventType.__members__:
                    continue
                event_type = EventType(raw["type"])
                obj = cls.from_dict(raw["object"])
                old = seen.pop(obj.key(), None)
                if event_type != EventType.DELETED:
                    seen[obj.key()] = obj
                if event_type != EventType.MODIFIED:
                    old = None
                yield WatchEvent(type=event_type, obj=obj, old=old)
        finally:
            watcher.stop()
