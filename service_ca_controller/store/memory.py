"""In-memory object store with resource versions and a write journal."""

import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..exceptions import (
    ObjectAlreadyExistsError,
    ObjectConflictError,
    ObjectNotFoundError,
    StoreError,
)
from ..models import ObjectKey, ResourceKind
from . import ObjectStore, matches_labels

_Key = Tuple[str, Optional[str], str]


class InMemoryObjectStore(ObjectStore):
    """
    Dictionary backed store.

    Behaves like the API server for the parts the controller relies on:
    generated uids, monotonically increasing resource versions, stale
    version rejection and label selection. Every successful write is
    appended to ``writes`` as ``(operation, kind, key)``.
    """

    def __init__(self, objects: Optional[List[Tuple[ResourceKind, Dict[str, Any]]]] = None, metrics=None):
        self._objects: Dict[_Key, Dict[str, Any]] = {}
        self._version = 0
        self.metrics = metrics
        self.writes: List[Tuple[str, str, ObjectKey]] = []
        for kind, obj in objects or []:
            self._insert(kind, copy.deepcopy(obj))

    def _key(self, kind: ResourceKind, name: str, namespace: Optional[str]) -> _Key:
        return (kind.kind, namespace if kind.namespaced else None, name)

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _insert(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        meta = obj.setdefault("metadata", {})
        if not meta.get("name"):
            raise StoreError("object name is required", "create", kind.kind, status=422)
        if kind.namespaced and not meta.get("namespace"):
            raise StoreError(
                "namespace is required", "create", kind.kind, meta.get("name"), status=422
            )
        if not kind.namespaced:
            meta.pop("namespace", None)

        obj.setdefault("apiVersion", kind.api_version)
        obj.setdefault("kind", kind.kind)
        meta.setdefault("uid", str(uuid.uuid4()))
        meta.setdefault("creationTimestamp", datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"))
        meta["resourceVersion"] = self._next_version()
        self._objects[self._key(kind, meta["name"], meta.get("namespace"))] = obj
        return obj

    def _journal(self, operation: str, kind: ResourceKind, obj_key: ObjectKey) -> None:
        self.writes.append((operation, kind.kind, obj_key))
        self._record_write(kind, operation)

    async def get(self, kind: ResourceKind, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        try:
            obj = self._objects[self._key(kind, name, namespace)]
        except KeyError:
            raise ObjectNotFoundError(
                f"{kind.kind} {ObjectKey(name, namespace)} not found",
                "get",
                kind.kind,
                name,
                namespace,
                404,
            )
        return copy.deepcopy(obj)

    async def list(
        self,
        kind: ResourceKind,
        namespace: Optional[str] = None,
        labels: Optional[Dict[str, Optional[str]]] = None,
    ) -> List[Dict[str, Any]]:
        items = []
        for (kind_name, obj_namespace, _), obj in sorted(self._objects.items(), key=lambda i: str(i[0])):
            if kind_name != kind.kind:
                continue
            if namespace is not None and kind.namespaced and obj_namespace != namespace:
                continue
            if matches_labels(obj, labels):
                items.append(copy.deepcopy(obj))
        return items

    async def create(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        obj = copy.deepcopy(obj)
        meta = obj.get("metadata") or {}
        name, namespace = meta.get("name"), meta.get("namespace")
        if name and self._key(kind, name, namespace) in self._objects:
            raise ObjectAlreadyExistsError(
                f"{kind.kind} {ObjectKey(name, namespace)} already exists",
                "create",
                kind.kind,
                name,
                namespace,
                409,
            )
        for field in ("uid", "resourceVersion", "creationTimestamp"):
            meta.pop(field, None)
        stored = self._insert(kind, obj)
        self._journal("create", kind, ObjectKey(name, stored["metadata"].get("namespace")))
        return copy.deepcopy(stored)

    async def update(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        obj = copy.deepcopy(obj)
        meta = obj.setdefault("metadata", {})
        name, namespace = meta.get("name"), meta.get("namespace")
        key = self._key(kind, name, namespace)
        current = self._objects.get(key)
        if current is None:
            raise ObjectNotFoundError(
                f"{kind.kind} {ObjectKey(name, namespace)} not found",
                "update",
                kind.kind,
                name,
                namespace,
                404,
            )

        current_meta = current["metadata"]
        version = meta.get("resourceVersion")
        if version and version != current_meta["resourceVersion"]:
            raise ObjectConflictError(
                f"{kind.kind} {ObjectKey(name, namespace)} was modified concurrently",
                "update",
                kind.kind,
                name,
                namespace,
                409,
            )

        meta["uid"] = current_meta["uid"]
        meta["creationTimestamp"] = current_meta.get("creationTimestamp")
        meta["resourceVersion"] = self._next_version()
        obj.setdefault("apiVersion", kind.api_version)
        obj.setdefault("kind", kind.kind)
        self._objects[key] = obj
        self._journal("update", kind, ObjectKey(name, namespace))
        return copy.deepcopy(obj)

    async def delete(self, kind: ResourceKind, name: str, namespace: Optional[str] = None) -> None:
        key = self._key(kind, name, namespace)
        if key not in self._objects:
            raise ObjectNotFoundError(
                f"{kind.kind} {ObjectKey(name, namespace)} not found",
                "delete",
                kind.kind,
                name,
                namespace,
                404,
            )
        del self._objects[key]
        self._journal("delete", kind, ObjectKey(name, namespace))

    def objects(self, kind: ResourceKind) -> List[Dict[str, Any]]:
        """Synchronous snapshot of every stored object of ``kind``."""
        return [
            copy.deepcopy(obj)
            for (kind_name, _, _), obj in self._objects.items()
            if kind_name == kind.kind
        ]

    def reset_writes(self) -> None:
        self.writes.clear()

    def stream(
        self,
        kind: ResourceKind,
        namespace: Optional[str] = None,
        timeout_seconds: int = 300,
    ) -> Iterator[Tuple[str, Dict[str, Any]]]:
        """Replay the current objects of ``kind`` as ``ADDED`` events."""
        for (kind_name, obj_namespace, _), obj in sorted(self._objects.items(), key=lambda i: str(i[0])):
            if kind_name != kind.kind:
                continue
            if namespace is not None and obj_namespace != namespace:
                continue
            yield "ADDED", copy.deepcopy(obj)
