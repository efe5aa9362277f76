"""
Data models for the service CA controller.

Objects are handled as decoded Kubernetes records (plain dictionaries); the
types here describe where those records live and what a reconcile pass
reports back to its caller.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

CERT_MANAGER_GROUP = "cert-manager.io"
CERT_MANAGER_VERSION = "v1"


@dataclass(frozen=True)
class ResourceKind:
    """API coordinates of one resource type."""

    kind: str
    plural: str
    singular: str
    group: str = ""
    version: str = "v1"
    namespaced: bool = True

    @property
    def api_version(self) -> str:
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version

    @property
    def is_custom(self) -> bool:
        """True for kinds served through the custom objects API."""
        return self.group not in ("", "apiextensions.k8s.io")

    def __str__(self) -> str:
        return self.kind


SERVICE = ResourceKind(kind="Service", plural="services", singular="service")
SECRET = ResourceKind(kind="Secret", plural="secrets", singular="secret")
CONFIG_MAP = ResourceKind(kind="ConfigMap", plural="configmaps", singular="config_map")
CUSTOM_RESOURCE_DEFINITION = ResourceKind(
    kind="CustomResourceDefinition",
    plural="customresourcedefinitions",
    singular="custom_resource_definition",
    group="apiextensions.k8s.io",
    namespaced=False,
)
CERTIFICATE = ResourceKind(
    kind="Certificate",
    plural="certificates",
    singular="certificate",
    group=CERT_MANAGER_GROUP,
    version=CERT_MANAGER_VERSION,
)
ISSUER = ResourceKind(
    kind="Issuer",
    plural="issuers",
    singular="issuer",
    group=CERT_MANAGER_GROUP,
    version=CERT_MANAGER_VERSION,
)
CLUSTER_ISSUER = ResourceKind(
    kind="ClusterIssuer",
    plural="clusterissuers",
    singular="cluster_issuer",
    group=CERT_MANAGER_GROUP,
    version=CERT_MANAGER_VERSION,
    namespaced=False,
)


@dataclass(frozen=True)
class ObjectKey:
    """Namespaced name of an object; namespace is None for cluster scope."""

    name: str
    namespace: Optional[str] = None

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name


@dataclass(frozen=True)
class ReconcileRequest:
    """A reference to an object whose state may have changed."""

    kind: ResourceKind
    name: str
    namespace: Optional[str] = None

@dataclass(frozen=True)
class ReconcileResult:
    """
    Outcome of a reconcile pass that did not fail.

    ``requeue`` asks the caller to invoke the reconciler again for the same
    key after ``requeue_after`` seconds. Failures are raised, not returned.
    """

    requeue: bool = False
    requeue_after: Optional[float] = None

    @classmethod
    def done(cls) -> "ReconcileResult":
        return cls()

    @classmethod
    def retry_after(cls, seconds: float) -> "ReconcileResult":
        return cls(requeue=True, requeue_after=seconds)

    @property
    def is_zero(self) -> bool:
        return not self.requeue and self.requeue_after is None


class InjectDecision(Enum):
    """Parsed value of the CA bundle opt-in label."""

    INJECT = "inject"
    SKIP = "skip"
    MALFORMED = "malformed"


def labels_of(obj: dict[str, Any]) -> dict[str, str]:
    return (obj.get("metadata") or {}).get("labels") or {}


def annotations_of(obj: dict[str, Any]) -> dict[str, str]:
    return (obj.get("metadata") or {}).get("annotations") or {}


def object_key(obj: dict[str, Any]) -> ObjectKey:
    meta = obj.get("metadata") or {}
    return ObjectKey(meta.get("name", ""), meta.get("namespace"))


def controller_reference(owner: dict[str, Any], kind: ResourceKind) -> dict[str, Any]:
    """Build a controller owner reference pointing at ``owner``."""
    meta = owner.get("metadata") or {}
    return {
        "apiVersion": kind.api_version,
        "kind": kind.kind,
        "name": meta.get("name"),
        "uid": meta.get("uid"),
        "controller": True,
        "blockOwnerDeletion": True,
    }
