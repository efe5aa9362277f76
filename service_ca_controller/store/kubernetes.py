"""
Kubernetes object store.

Core kinds go through ``CoreV1Api``, CRDs through ``ApiextensionsV1Api`` and
cert-manager kinds through ``CustomObjectsApi``. The client is synchronous,
so calls are pushed onto the default executor.
"""

import asyncio
import threading
from functools import partial
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple

import urllib3
from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException

from ..exceptions import (
    ObjectAlreadyExistsError,
    ObjectConflictError,
    ObjectNotFoundError,
    StoreError,
)
from ..logger import get_logger
from ..models import ObjectKey, ResourceKind
from . import ObjectStore, label_selector

logger = get_logger(__name__)

# metadata fields the API server owns; never sent back on create
_SERVER_FIELDS = ("uid", "resourceVersion", "creationTimestamp", "managedFields", "selfLink", "generation")


def load_client_config(kubeconfig_path: Optional[str] = None) -> None:
    """Load in-cluster configuration, falling back to a kubeconfig file."""
    if kubeconfig_path:
        config.load_kube_config(config_file=kubeconfig_path)
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


class KubernetesObjectStore(ObjectStore):
    """Object store backed by the Kubernetes API server."""

    def __init__(self, api_client: Optional[client.ApiClient] = None, metrics=None):
        self.api_client = api_client or client.ApiClient()
        self.core_v1 = client.CoreV1Api(self.api_client)
        self.apiextensions_v1 = client.ApiextensionsV1Api(self.api_client)
        self.custom_objects_api = client.CustomObjectsApi(self.api_client)
        self.metrics = metrics
        self._watches: Set[watch.Watch] = set()
        self._watches_lock = threading.Lock()

    @classmethod
    def from_kubeconfig(cls, kubeconfig_path: Optional[str] = None, metrics=None) -> "KubernetesObjectStore":
        load_client_config(kubeconfig_path)
        return cls(client.ApiClient(), metrics=metrics)

    # Plumbing

    def _typed_api(self, kind: ResourceKind):
        if kind.group == "apiextensions.k8s.io":
            return self.apiextensions_v1
        return self.core_v1

    def _typed_method(self, kind: ResourceKind, verb: str) -> Callable[..., Any]:
        scope = "namespaced_" if kind.namespaced else ""
        return getattr(self._typed_api(kind), f"{verb}_{scope}{kind.singular}")

    def _to_dict(self, kind: ResourceKind, obj: Any) -> Dict[str, Any]:
        if isinstance(obj, dict):
            data = obj
        else:
            data = self.api_client.sanitize_for_serialization(obj)
        data.setdefault("apiVersion", kind.api_version)
        data.setdefault("kind", kind.kind)
        return data

    def _translate(
        self,
        error: Exception,
        operation: str,
        kind: ResourceKind,
        name: Optional[str],
        namespace: Optional[str],
    ) -> StoreError:
        key = ObjectKey(name or "", namespace)
        if isinstance(error, ApiException):
            if error.status == 404:
                return ObjectNotFoundError(
                    f"{kind.kind} {key} not found", operation, kind.kind, name, namespace, 404
                )
            if error.status == 409 and operation == "create":
                return ObjectAlreadyExistsError(
                    f"{kind.kind} {key} already exists", operation, kind.kind, name, namespace, 409
                )
            if error.status == 409:
                return ObjectConflictError(
                    f"{kind.kind} {key} was modified concurrently",
                    operation,
                    kind.kind,
                    name,
                    namespace,
                    409,
                )
            return StoreError(
                f"{operation} {kind.kind} {key} failed: {error.reason}",
                operation,
                kind.kind,
                name,
                namespace,
                error.status,
            )
        return StoreError(
            f"{operation} {kind.kind} {key} failed: {error}", operation, kind.kind, name, namespace
        )

    async def _call(
        self,
        operation: str,
        kind: ResourceKind,
        name: Optional[str],
        namespace: Optional[str],
        func: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(func, *args, **kwargs))
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            raise self._translate(e, operation, kind, name, namespace) from e

    # ObjectStore

    async def get(self, kind: ResourceKind, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        if kind.is_custom:
            api = self.custom_objects_api
            if kind.namespaced:
                func = partial(
                    api.get_namespaced_custom_object, kind.group, kind.version, namespace, kind.plural, name
                )
            else:
                func = partial(api.get_cluster_custom_object, kind.group, kind.version, kind.plural, name)
        elif kind.namespaced:
            func = partial(self._typed_method(kind, "read"), name, namespace)
        else:
            func = partial(self._typed_method(kind, "read"), name)

        result = await self._call("get", kind, name, namespace, func)
        return self._to_dict(kind, result)

    async def list(
        self,
        kind: ResourceKind,
        namespace: Optional[str] = None,
        labels: Optional[Dict[str, Optional[str]]] = None,
    ) -> List[Dict[str, Any]]:
        func, kwargs = self._list_call(kind, namespace)
        selector = label_selector(labels)
        if selector:
            kwargs["label_selector"] = selector

        result = await self._call("list", kind, None, namespace, func, **kwargs)
        items = result.get("items", []) if isinstance(result, dict) else result.items
        return [self._to_dict(kind, item) for item in items]

    def _list_call(self, kind: ResourceKind, namespace: Optional[str]) -> Tuple[Callable[..., Any], Dict[str, Any]]:
        if kind.is_custom:
            api = self.custom_objects_api
            if kind.namespaced and namespace:
                return (
                    partial(api.list_namespaced_custom_object, kind.group, kind.version, namespace, kind.plural),
                    {},
                )
            return partial(api.list_cluster_custom_object, kind.group, kind.version, kind.plural), {}

        api = self._typed_api(kind)
        if not kind.namespaced:
            return getattr(api, f"list_{kind.singular}"), {}
        if namespace:
            return partial(getattr(api, f"list_namespaced_{kind.singular}"), namespace), {}
        return getattr(api, f"list_{kind.singular}_for_all_namespaces"), {}

    async def create(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        body = dict(obj)
        meta = dict(body.get("metadata") or {})
        for field in _SERVER_FIELDS:
            meta.pop(field, None)
        body["metadata"] = meta
        body.setdefault("apiVersion", kind.api_version)
        body.setdefault("kind", kind.kind)
        name, namespace = meta.get("name"), meta.get("namespace")

        if kind.is_custom:
            api = self.custom_objects_api
            if kind.namespaced:
                func = partial(
                    api.create_namespaced_custom_object, kind.group, kind.version, namespace, kind.plural, body
                )
            else:
                func = partial(api.create_cluster_custom_object, kind.group, kind.version, kind.plural, body)
        elif kind.namespaced:
            func = partial(self._typed_method(kind, "create"), namespace, body)
        else:
            func = partial(self._typed_method(kind, "create"), body)

        result = await self._call("create", kind, name, namespace, func)
        self._record_write(kind, "create")
        return self._to_dict(kind, result)

    async def update(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        meta = obj.get("metadata") or {}
        name, namespace = meta.get("name"), meta.get("namespace")

        if kind.is_custom:
            api = self.custom_objects_api
            if kind.namespaced:
                func = partial(
                    api.replace_namespaced_custom_object,
                    kind.group,
                    kind.version,
                    namespace,
                    kind.plural,
                    name,
                    obj,
                )
            else:
                func = partial(api.replace_cluster_custom_object, kind.group, kind.version, kind.plural, name, obj)
        elif kind.namespaced:
            func = partial(self._typed_method(kind, "replace"), name, namespace, obj)
        else:
            func = partial(self._typed_method(kind, "replace"), name, obj)

        result = await self._call("update", kind, name, namespace, func)
        self._record_write(kind, "update")
        return self._to_dict(kind, result)

    async def delete(self, kind: ResourceKind, name: str, namespace: Optional[str] = None) -> None:
        if kind.is_custom:
            api = self.custom_objects_api
            if kind.namespaced:
                func = partial(
                    api.delete_namespaced_custom_object, kind.group, kind.version, namespace, kind.plural, name
                )
            else:
                func = partial(api.delete_cluster_custom_object, kind.group, kind.version, kind.plural, name)
        elif kind.namespaced:
            func = partial(self._typed_method(kind, "delete"), name, namespace)
        else:
            func = partial(self._typed_method(kind, "delete"), name)

        await self._call("delete", kind, name, namespace, func)
        self._record_write(kind, "delete")

    # Watch

    def stream(
        self,
        kind: ResourceKind,
        namespace: Optional[str] = None,
        timeout_seconds: int = 300,
    ) -> Iterator[Tuple[str, Dict[str, Any]]]:
        """
        Blocking generator of ``(event_type, object)`` pairs.

        Runs one watch request until the server closes it; callers restart it.
        """
        func, kwargs = self._list_call(kind, namespace)
        w = watch.Watch()
        with self._watches_lock:
            self._watches.add(w)
        try:
            for event in w.stream(func, timeout_seconds=timeout_seconds, **kwargs):
                obj = event.get("raw_object") or event["object"]
                yield event["type"], self._to_dict(kind, obj)
        finally:
            w.stop()
            with self._watches_lock:
                self._watches.discard(w)

    def stop_watches(self) -> None:
        """Stop every running watch; closing the response unblocks the reading thread."""
        with self._watches_lock:
            watches = list(self._watches)
        for w in watches:
            w.stop()
        if watches:
            logger.debug("Stopped watches", count=len(watches))
