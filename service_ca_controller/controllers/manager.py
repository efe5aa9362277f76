"""
Controller manager.

Watches Services, Secrets, ConfigMaps and the Certificates in the trust
namespace, turns every event into reconcile requests and feeds them to a
pool of workers. Requeue hints and failures are turned into delayed
requests; nothing inside the reconcilers sleeps.
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Set, Tuple

from ..certs.util import parse_owner_annotation
from ..config import ControllerConfig
from ..logger import ReconcileLogger, get_logger
from ..metrics import ReconcileMetrics
from ..models import (
    CERTIFICATE,
    CONFIG_MAP,
    SECRET,
    SERVICE,
    ReconcileRequest,
    ReconcileResult,
    ResourceKind,
    annotations_of,
    object_key,
)
from ..store import ObjectStore
from .configmap import ConfigMapReconciler
from .service import ServiceReconciler

logger = get_logger(__name__)


class ControllerManager:
    """Runs the Service and ConfigMap reconcilers off cluster watch events."""

    def __init__(
        self,
        store: ObjectStore,
        config: ControllerConfig,
        service_reconciler: Optional[ServiceReconciler] = None,
        configmap_reconciler: Optional[ConfigMapReconciler] = None,
        metrics: Optional[ReconcileMetrics] = None,
    ):
        self.store = store
        self.config = config
        self.service_reconciler = service_reconciler or ServiceReconciler(store, config)
        self.configmap_reconciler = configmap_reconciler or ConfigMapReconciler(store, config)
        self.metrics = metrics
        self.running = False

        self._queue: Optional[asyncio.Queue] = None
        self._events: Optional[asyncio.Queue] = None
        self._queued: Set[ReconcileRequest] = set()
        self._active: Set[ReconcileRequest] = set()
        self._dirty: Set[ReconcileRequest] = set()
        self._failures: Dict[ReconcileRequest, int] = {}
        self._timers: Dict[ReconcileRequest, asyncio.TimerHandle] = {}
        self._tasks: List[asyncio.Task] = []
        self._watch_executor: Optional[ThreadPoolExecutor] = None

    # Work queue

    def _ensure_queues(self) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue()
            self._events = asyncio.Queue()

    def enqueue(self, request: ReconcileRequest, after: Optional[float] = None) -> None:
        """Queue ``request`` now or after ``after`` seconds."""
        self._ensure_queues()
        timer = self._timers.pop(request, None)
        if timer is not None:
            timer.cancel()

        if after:
            loop = asyncio.get_running_loop()
            self._timers[request] = loop.call_later(after, self._fire_timer, request)
        else:
            self._add(request)

    def _fire_timer(self, request: ReconcileRequest) -> None:
        self._timers.pop(request, None)
        self._add(request)

    def _add(self, request: ReconcileRequest) -> None:
        if request in self._active:
            # picked up again once the running pass finishes
            self._dirty.add(request)
            return
        if request in self._queued:
            return
        self._queued.add(request)
        self._queue.put_nowait(request)

    @property
    def pending(self) -> int:
        return len(self._queued)

    def backoff(self, request: ReconcileRequest) -> float:
        """Delay before retrying a request that failed."""
        failures = self._failures.get(request, 1)
        delay = self.config.manager.base_backoff * (2 ** (failures - 1))
        return min(delay, self.config.manager.max_backoff)

    async def _worker(self) -> None:
        while True:
            request = await self._queue.get()
            self._queued.discard(request)
            self._active.add(request)
            try:
                await self.process(request)
            finally:
                self._active.discard(request)
                if request in self._dirty:
                    self._dirty.discard(request)
                    self._add(request)
                self._queue.task_done()

    def _reconciler_for(self, kind: ResourceKind):
        if kind == SERVICE:
            return self.service_reconciler
        if kind == CONFIG_MAP:
            return self.configmap_reconciler
        raise ValueError(f"no reconciler registered for {kind.kind}")

    async def process(self, request: ReconcileRequest) -> Optional[ReconcileResult]:
        """
        Run one reconcile pass and schedule whatever follows from it.

        Returns the reconcile result, or None if the pass failed.
        """
        reconciler = self._reconciler_for(request.kind)
        started = time.monotonic()
        try:
            with ReconcileLogger(logger, request.kind.kind, request.namespace, request.name):
                result = await reconciler.reconcile(request.namespace, request.name)
        except Exception:
            # Any failure is retried with backoff; the pass was already logged
            self._failures[request] = self._failures.get(request, 0) + 1
            self.enqueue(request, after=self.backoff(request))
            self._record(reconciler.controller_name, "error", started)
            return None

        self._failures.pop(request, None)
        if result.requeue:
            self.enqueue(request, after=result.requeue_after or self.config.manager.base_backoff)
            self._record(reconciler.controller_name, "requeue", started)
        else:
            self._record(reconciler.controller_name, "success", started)
        return result

    def _record(self, controller: str, outcome: str, started: float) -> None:
        if self.metrics is not None:
            self.metrics.record_reconcile(controller, outcome, time.monotonic() - started)

    # Event mapping

    async def requests_for(self, kind: ResourceKind, obj: Dict[str, Any]) -> List[ReconcileRequest]:
        """Map a changed object to the reconcile requests it affects."""
        key = object_key(obj)

        if kind == SERVICE:
            return [ReconcileRequest(SERVICE, key.name, key.namespace)]

        if kind == CONFIG_MAP:
            return [ReconcileRequest(CONFIG_MAP, key.name, key.namespace)]

        if kind == SECRET:
            owners = (obj.get("metadata") or {}).get("ownerReferences") or []
            return [
                ReconcileRequest(SERVICE, ref["name"], key.namespace)
                for ref in owners
                if ref.get("kind") == SERVICE.kind and ref.get("controller")
            ]

        if kind == CERTIFICATE and key.namespace == self.config.trust_namespace:
            if key.name == self.config.names.ca_certificate:
                return await self._bundle_consumers()
            owner = parse_owner_annotation(annotations_of(obj).get(self.config.labels.owner_annotation))
            if owner is not None:
                namespace, name = owner
                return [ReconcileRequest(SERVICE, name, namespace)]

        return []

    async def _bundle_consumers(self) -> List[ReconcileRequest]:
        # A renewed root CA has to reach every ConfigMap that asked for it
        configmaps = await self.store.list(CONFIG_MAP, labels={self.config.labels.inject_ca_bundle: None})
        return [
            ReconcileRequest(CONFIG_MAP, object_key(cm).name, object_key(cm).namespace)
            for cm in configmaps
        ]

    async def _dispatch(self) -> None:
        while True:
            kind, event_type, obj = await self._events.get()
            try:
                requests = await self.requests_for(kind, obj)
            except Exception as e:
                logger.error("Failed to map watch event", kind=kind.kind, event=event_type, error=str(e))
                continue
            for request in requests:
                self.enqueue(request)

    # Watches

    def watched_kinds(self) -> List[Tuple[ResourceKind, Optional[str]]]:
        return [
            (SERVICE, None),
            (SECRET, None),
            (CONFIG_MAP, None),
            (CERTIFICATE, self.config.trust_namespace),
        ]

    def _pump(self, loop: asyncio.AbstractEventLoop, kind: ResourceKind, namespace: Optional[str]) -> None:
        # Runs in an executor thread; hands events over to the loop
        for event_type, obj in self.store.stream(kind, namespace, timeout_seconds=60):
            if not self.running:
                return
            if event_type == "ERROR":
                raise RuntimeError(f"watch error: {obj.get('message', obj)}")
            loop.call_soon_threadsafe(self._events.put_nowait, (kind, event_type, obj))

    async def _watch(self, kind: ResourceKind, namespace: Optional[str]) -> None:
        loop = asyncio.get_running_loop()
        while self.running:
            try:
                await loop.run_in_executor(self._watch_executor, self._pump, loop, kind, namespace)
            except Exception as e:
                logger.error("Watch error", kind=kind.kind, error=str(e))
                await asyncio.sleep(self.config.manager.watch_restart_delay)

    # Lifecycle

    async def start(self) -> None:
        """Start watches and workers; returns when stopped."""
        self._ensure_queues()
        self.running = True
        logger.info(
            "Starting controller manager",
            workers=self.config.manager.workers,
            trust_namespace=self.config.trust_namespace,
        )

        # one thread per watch, apart from the default executor used by store calls
        self._watch_executor = ThreadPoolExecutor(
            max_workers=len(self.watched_kinds()), thread_name_prefix="service-ca-watch"
        )
        self._tasks = [asyncio.create_task(self._worker()) for _ in range(self.config.manager.workers)]
        self._tasks.append(asyncio.create_task(self._dispatch()))
        self._tasks.extend(
            asyncio.create_task(self._watch(kind, namespace)) for kind, namespace in self.watched_kinds()
        )
        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            pass

    async def stop(self) -> None:
        """Stop the manager."""
        self.running = False
        logger.info("Stopping controller manager")
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self.store.stop_watches()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        if self._watch_executor is not None:
            self._watch_executor.shutdown(wait=False, cancel_futures=True)
            self._watch_executor = None
