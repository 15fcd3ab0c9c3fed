"""
Minimal controller runtime.

A Controller turns watch events into object keys on a WorkQueue and runs a
bounded number of reconcile workers on it. The queue hands out each key to
at most one worker at a time; a key added while it is being processed is
reconciled again afterwards.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol

import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, wait_exponential

from keelson.api.types import ObjectKey, Resource
from keelson.core.errors import reason_of
from keelson.reconcile.predicates import Predicate
from keelson.reconcile.status import Result
from keelson.store.base import EventType, ObjectStore, WatchEvent

logger = structlog.get_logger()

Mapper = Callable[[WatchEvent], Iterable[ObjectKey]]


class Reconciler(Protocol):
    name: str

    async def reconcile(self, key: ObjectKey) -> Result: ...


class WorkQueue:
    """Deduplicating work queue with delayed and rate-limited adds."""

    def __init__(self, backoff_base: float = 0.5, backoff_max: float = 300.0) -> None:
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._queue: deque[ObjectKey] = deque()
        self._dirty: set[ObjectKey] = set()
        self._processing: set[ObjectKey] = set()
        self._failures: dict[ObjectKey, int] = {}
        self._timers: set[asyncio.TimerHandle] = set()
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def _wakeup(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return

    def add(self, key: ObjectKey) -> None:
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._wakeup()

    def add_after(self, key: ObjectKey, delay: float) -> None:
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle | None = None

        def fire() -> None:
            self._timers.discard(handle)
            self.add(key)

        handle = loop.call_later(delay, fire)
        self._timers.add(handle)

    def backoff(self, key: ObjectKey) -> float:
        return min(self.backoff_base * 2 ** self._failures.get(key, 0), self.backoff_max)

    def add_rate_limited(self, key: ObjectKey) -> float:
        """Requeue ``key`` with exponential per-key backoff and return the delay."""
        delay = self.backoff(key)
        self._failures[key] = self._failures.get(key, 0) + 1
        self.add_after(key, delay)
        return delay

    def forget(self, key: ObjectKey) -> None:
        self._failures.pop(key, None)

    def num_requeues(self, key: ObjectKey) -> int:
        return self._failures.get(key, 0)

    async def get(self) -> ObjectKey | None:
        """Next key to process, or None once the queue is shut down and drained."""
        while not self._queue:
            if self._shutting_down:
                return None
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            await waiter
        key = self._queue.popleft()
        self._processing.add(key)
        self._dirty.discard(key)
        return key

    def done(self, key: ObjectKey) -> None:
        self._processing.discard(key)
        if key in self._dirty:
            self._queue.append(key)
            self._wakeup()

    def shutdown(self) -> None:
        self._shutting_down = True
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)


def own_key(event: WatchEvent) -> list[ObjectKey]:
    return [event.obj.key()]


def controller_owner_mapper(owner_cls: type[Resource]) -> Mapper:
    """Map an object to the key of its controlling owner of kind ``owner_cls``."""

    def mapper(event: WatchEvent) -> list[ObjectKey]:
        obj = event.obj
        return [
            ObjectKey(obj.namespace, ref.name)
            for ref in obj.metadata.owner_references
            if ref.controller and ref.kind == owner_cls.kind
        ]

    return mapper


@dataclass
class Source:
    store: ObjectStore
    cls: type[Resource]
    predicate: Predicate | None
    mapper: Mapper
    namespace: str | None = None


async def _close_stream(stream: Any) -> None:
    aclose = getattr(stream, "aclose", None)
    if callable(aclose):
        await aclose()
        return
    close = getattr(stream, "close", None)
    if callable(close):
        close()


class Controller:
    """Runs a reconciler for every key its watched sources map events to."""

    def __init__(
        self,
        name: str,
        reconciler: Reconciler,
        *,
        max_concurrent_reconciles: int = 1,
        backoff_base: float = 0.5,
        backoff_max: float = 300.0,
    ) -> None:
        self.name = name
        self.reconciler = reconciler
        self.max_concurrent_reconciles = max(1, max_concurrent_reconciles)
        self.queue = WorkQueue(backoff_base, backoff_max)
        self.sources: list[Source] = []

    def watch(
        self,
        store: ObjectStore,
        cls: type[Resource],
        predicate: Predicate | None = None,
        mapper: Mapper | None = None,
        namespace: str | None = None,
    ) -> Controller:
        self.sources.append(Source(store, cls, predicate, mapper or own_key, namespace))
        return self

    def owns(
        self,
        store: ObjectStore,
        cls: type[Resource],
        owner_cls: type[Resource],
        predicate: Predicate | None = None,
        namespace: str | None = None,
    ) -> Controller:
        """Reconcile the controlling owner whenever an owned object changes."""
        return self.watch(store, cls, predicate, controller_owner_mapper(owner_cls), namespace)

    def _enqueue(self, source: Source, event: WatchEvent) -> None:
        if source.predicate is not None and not source.predicate(event):
            return
        for key in source.mapper(event):
            self.queue.add(key)

    async def _watch_source(self, source: Source) -> None:
        """Subscribe, list everything once, then follow the watch until it ends."""
        stream = source.store.watch(source.cls, source.namespace)
        try:
            await self._initial_sync(source)
            async for event in stream:
                self._enqueue(source, event)
        finally:
            await _close_stream(stream)

    def _log_watch_failure(self, source: Source) -> Callable[[RetryCallState], None]:
        def log(retry_state: RetryCallState) -> None:
            logger.warning(
                "watch_failed",
                controller=self.name,
                kind=source.cls.kind,
                error=str(retry_state.outcome.exception()),
                attempt=retry_state.attempt_number,
                retry_in=retry_state.next_action.sleep,
            )

        return log

    async def _pump(self, source: Source) -> None:
        """Keep the watch on ``source`` open; a failed or ended watch is re-established."""
        while True:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(Exception),
                wait=wait_exponential(multiplier=self.queue.backoff_base, max=self.queue.backoff_max),
                before_sleep=self._log_watch_failure(source),
            ):
                with attempt:
                    await self._watch_source(source)
            logger.info("watch_ended", controller=self.name, kind=source.cls.kind)

    async def _initial_sync(self, source: Source) -> None:
        for obj in await source.store.list(source.cls, source.namespace):
            self._enqueue(source, WatchEvent(EventType.ADDED, obj))

    async def start(self, stop: asyncio.Event) -> None:
        """Run until ``stop`` is set; in-flight reconciles are finished before returning."""
        logger.info("controller_starting", controller=self.name, workers=self.max_concurrent_reconciles)
        pumps = [asyncio.create_task(self._pump(source)) for source in self.sources]
        workers = [asyncio.create_task(self._worker()) for _ in range(self.max_concurrent_reconciles)]
        try:
            await stop.wait()
        finally:
            logger.info("controller_stopping", controller=self.name)
            self.queue.shutdown()
            for pump in pumps:
                pump.cancel()
            await asyncio.gather(*pumps, return_exceptions=True)
            await asyncio.gather(*workers)

    async def _worker(self) -> None:
        while True:
            key = await self.queue.get()
            if key is None:
                return
            try:
                await self.process(key)
            finally:
                self.queue.done(key)

    async def process(self, key: ObjectKey) -> None:
        """Reconcile one key and schedule its next reconcile according to the outcome."""
        with structlog.contextvars.bound_contextvars(controller=self.name, resource=str(key)):
            try:
                result = await self.reconciler.reconcile(key)
            except Exception as exc:
                delay = self.queue.add_rate_limited(key)
                logger.error(
                    "reconcile_failed",
                    error=str(exc),
                    reason=reason_of(exc),
                    retry_in=delay,
                )
                return
            self.queue.forget(key)
            if result.requeue_after > 0:
                logger.debug("requeue_after", seconds=result.requeue_after)
                self.queue.add_after(key, result.requeue_after)
            elif result.requeue:
                self.queue.add_rate_limited(key)
