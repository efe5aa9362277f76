"""
Shared fixtures for the service CA controller tests.

Objects are built as plain Kubernetes-shaped dictionaries and stored in an
``InMemoryObjectStore``, which journals every write.
"""

import base64
from typing import Any, Callable, Optional

import pytest
import pytest_asyncio

from service_ca_controller.config import ControllerConfig
from service_ca_controller.models import CERTIFICATE, SECRET
from service_ca_controller.store.memory import InMemoryObjectStore

TRUST_NAMESPACE = "cert-manager"
CA_PEM = "-----BEGIN CERTIFICATE-----\nMIIBroot\n-----END CERTIFICATE-----\n"


def b64(text: str) -> str:
    return base64.b64encode(text.encode()).decode()


@pytest.fixture
def config() -> ControllerConfig:
    """Default configuration with the standard trust namespace."""
    return ControllerConfig(trust_namespace=TRUST_NAMESPACE)


@pytest.fixture
def store() -> InMemoryObjectStore:
    """Empty in-memory store."""
    return InMemoryObjectStore()


@pytest.fixture
def make_service() -> Callable[..., dict[str, Any]]:
    """Factory for Service objects."""

    def _make(
        name: str = "web",
        namespace: str = "apps",
        secret_name: Optional[str] = "web-tls",
        cluster_ips: Optional[list[str]] = None,
        labels: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        all_labels = dict(labels or {})
        if secret_name is not None:
            all_labels["service.syn.tools/serving-cert-secret-name"] = secret_name
        ips = ["10.96.0.10"] if cluster_ips is None else cluster_ips
        spec: dict[str, Any] = {"clusterIPs": ips}
        if ips:
            spec["clusterIP"] = ips[0]
        return {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {"name": name, "namespace": namespace, "labels": all_labels},
            "spec": spec,
        }

    return _make


@pytest.fixture
def make_certificate() -> Callable[..., dict[str, Any]]:
    """Factory for cert-manager Certificates with a Ready condition."""

    def _make(
        name: str,
        secret_name: str,
        namespace: str = TRUST_NAMESPACE,
        ready: Optional[bool] = True,
        annotations: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        cert: dict[str, Any] = {
            "apiVersion": CERTIFICATE.api_version,
            "kind": CERTIFICATE.kind,
            "metadata": {"name": name, "namespace": namespace, "annotations": dict(annotations or {})},
            "spec": {"secretName": secret_name},
        }
        if ready is not None:
            cert["status"] = {
                "conditions": [{"type": "Ready", "status": "True" if ready else "False"}]
            }
        return cert

    return _make


@pytest.fixture
def make_secret() -> Callable[..., dict[str, Any]]:
    """Factory for Secrets; values in ``data`` are base64 encoded for you."""

    def _make(
        name: str,
        namespace: str = TRUST_NAMESPACE,
        data: Optional[dict[str, str]] = None,
        labels: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "Secret",
            "type": "kubernetes.io/tls",
            "metadata": {"name": name, "namespace": namespace, "labels": dict(labels or {})},
            "data": {key: b64(value) for key, value in (data or {}).items()},
        }

    return _make


@pytest.fixture
def make_configmap() -> Callable[..., dict[str, Any]]:
    """Factory for ConfigMaps carrying the inject label."""

    def _make(
        name: str = "bundle",
        namespace: str = "apps",
        inject: Optional[str] = "true",
        data: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        labels = {}
        if inject is not None:
            labels["service.syn.tools/inject-ca-bundle"] = inject
        return {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": name, "namespace": namespace, "labels": labels},
            "data": dict(data or {}),
        }

    return _make


@pytest.fixture
def crd() -> dict[str, Any]:
    """The cert-manager Certificate CRD."""
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": "certificates.cert-manager.io"},
    }


@pytest_asyncio.fixture
async def ready_ca_store(store, config, make_certificate, make_secret):
    """Store holding an issued root CA certificate and its secret."""
    await store.create(
        CERTIFICATE,
        make_certificate(config.names.ca_certificate, config.names.ca_secret),
    )
    await store.create(
        SECRET,
        make_secret(config.names.ca_secret, data={"tls.crt": CA_PEM, "tls.key": "key", "ca.crt": CA_PEM}),
    )
    store.reset_writes()
    return store


@pytest.fixture
def ca_pem() -> str:
    """PEM text stored in the root CA secret."""
    return CA_PEM
