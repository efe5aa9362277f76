"""
Object store interface for the service CA controller.

Reconcilers only talk to the cluster through this interface. Every
operation distinguishes "not found" (``ObjectNotFoundError``) from any other
failure (``StoreError``) so callers can treat absence as a normal state.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models import ResourceKind


class ObjectStore(ABC):
    """
    Interface for object store backends.

    Objects are Kubernetes-shaped dictionaries. Writes are full replacements
    checked against ``metadata.resourceVersion``.
    """

    metrics = None

    @abstractmethod
    async def get(self, kind: ResourceKind, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        """
        Fetch one object.

        Args:
            kind: Resource type
            name: Object name
            namespace: Object namespace, None for cluster scoped kinds

        Returns:
            The stored object

        Raises:
            ObjectNotFoundError: if the object does not exist
            StoreError: on any other failure
        """
        pass

    @abstractmethod
    async def list(
        self,
        kind: ResourceKind,
        namespace: Optional[str] = None,
        labels: Optional[Dict[str, Optional[str]]] = None,
    ) -> List[Dict[str, Any]]:
        """
        List objects matching a label selector.

        Args:
            kind: Resource type
            namespace: Namespace to search, None for all namespaces
            labels: Required labels; a None value only requires the key

        Returns:
            Matching objects, possibly empty
        """
        pass

    @abstractmethod
    async def create(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create an object.

        Raises:
            ObjectAlreadyExistsError: if the name is taken
            StoreError: on any other failure
        """
        pass

    @abstractmethod
    async def update(self, kind: ResourceKind, obj: Dict[str, Any]) -> Dict[str, Any]:
        """
        Replace an existing object.

        Raises:
            ObjectNotFoundError: if the object does not exist
            ObjectConflictError: if ``metadata.resourceVersion`` is stale
            StoreError: on any other failure
        """
        pass

    @abstractmethod
    async def delete(self, kind: ResourceKind, name: str, namespace: Optional[str] = None) -> None:
        """
        Delete an object.

        Raises:
            ObjectNotFoundError: if the object does not exist
            StoreError: on any other failure
        """
        pass

    def stop_watches(self) -> None:
        """Interrupt any blocking watch streams so their threads return."""

    def _record_write(self, kind: ResourceKind, operation: str) -> None:
        if self.metrics is not None:
            self.metrics.record_write(kind.kind, operation)


def label_selector(labels: Optional[Dict[str, Optional[str]]]) -> Optional[str]:
    """Render a label mapping as a Kubernetes label selector string."""
    if not labels:
        return None
    parts = []
    for key, value in sorted(labels.items()):
        parts.append(key if value is None else f"{key}={value}")
    return ",".join(parts)


def matches_labels(obj: Dict[str, Any], labels: Optional[Dict[str, Optional[str]]]) -> bool:
    """Return True when ``obj`` satisfies the label mapping."""
    if not labels:
        return True
    actual = (obj.get("metadata") or {}).get("labels") or {}
    for key, value in labels.items():
        if key not in actual:
            return False
        if value is not None and actual[key] != value:
            return False
    return True


__all__ = ["ObjectStore", "label_selector", "matches_labels"]
