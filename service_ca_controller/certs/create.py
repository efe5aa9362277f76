"""
Per-service Certificate intents.

Each labeled Service gets one Certificate in the trust namespace, issued by
the service CA ClusterIssuer. The Service and the Certificate live in
different namespaces, so the link between them is a label and an
annotation rather than an owner reference.
"""

import copy
from typing import Any

from ..config import ControllerConfig
from ..durations import same_duration
from ..exceptions import ObjectNotFoundError
from ..logger import get_logger
from ..models import CERT_MANAGER_GROUP, CERTIFICATE, CLUSTER_ISSUER, annotations_of, labels_of
from ..store import ObjectStore
from .util import certificate_name, owner_annotation_value, service_dns_names

logger = get_logger(__name__)


def service_cluster_ips(service: dict[str, Any]) -> list[str]:
    """Cluster IPs of a service; headless services have none."""
    spec = service.get("spec") or {}
    ips = spec.get("clusterIPs")
    if ips is None:
        ips = [spec["clusterIP"]] if spec.get("clusterIP") else []
    return [ip for ip in ips if ip and ip != "None"]


class CertificateIntentSynchronizer:
    """Creates or updates the Certificate backing a labeled service."""

    def __init__(self, store: ObjectStore, config: ControllerConfig):
        self.store = store
        self.config = config

    def certificate_name(self, service: dict[str, Any]) -> str:
        meta = service["metadata"]
        return certificate_name(self.config, meta["name"], meta["namespace"])

    def desired_fields(self, service: dict[str, Any], cert_name: str) -> dict[str, Any]:
        """Fields derived from the service, compared on every pass."""
        meta = service["metadata"]
        policy = self.config.certificate
        return {
            "labels": {self.config.labels.certificate: cert_name},
            "annotations": {
                self.config.labels.owner_annotation: owner_annotation_value(meta["namespace"], meta["name"])
            },
            "spec": {
                "dnsNames": service_dns_names(self.config, meta["name"], meta["namespace"]),
                "ipAddresses": service_cluster_ips(service),
                "duration": policy.duration_string,
                "renewBefore": policy.renew_before_string,
                "secretTemplate": {"labels": {self.config.labels.certificate: cert_name}},
            },
        }

    def build_certificate(self, service: dict[str, Any], secret_name: str) -> dict[str, Any]:
        """A new Certificate for ``service`` storing its key pair in ``secret_name``."""
        cert_name = self.certificate_name(service)
        cert = {
            "apiVersion": CERTIFICATE.api_version,
            "kind": CERTIFICATE.kind,
            "metadata": {"name": cert_name, "namespace": self.config.trust_namespace},
            "spec": {
                "secretName": secret_name,
                "isCA": False,
                "issuerRef": {
                    "name": self.config.names.cluster_issuer,
                    "kind": CLUSTER_ISSUER.kind,
                    "group": CERT_MANAGER_GROUP,
                },
            },
        }
        apply_fields(cert, self.desired_fields(service, cert_name))
        return cert

    async def sync(self, service: dict[str, Any], secret_name: str) -> dict[str, Any]:
        """
        Converge the service's Certificate to its desired state.

        Returns:
            The stored Certificate after the pass

        Raises:
            StoreError: on any store failure other than the expected absence
        """
        cert_name = self.certificate_name(service)
        log = logger.bind(certificate=cert_name)

        try:
            cert = await self.store.get(CERTIFICATE, cert_name, self.config.trust_namespace)
        except ObjectNotFoundError:
            log.debug("Certificate resource doesn't exist, creating")
            return await self.store.create(CERTIFICATE, self.build_certificate(service, secret_name))

        desired = self.desired_fields(service, cert_name)
        if not needs_update(cert, desired):
            return cert

        log.info("Applying changes to existing certificate")
        updated = copy.deepcopy(cert)
        apply_fields(updated, desired)
        return await self.store.update(CERTIFICATE, updated)


def apply_fields(cert: dict[str, Any], desired: dict[str, Any]) -> None:
    """Write the computed fields into ``cert`` in place."""
    meta = cert.setdefault("metadata", {})
    meta["labels"] = {**(meta.get("labels") or {}), **desired["labels"]}
    meta["annotations"] = {**(meta.get("annotations") or {}), **desired["annotations"]}

    spec = cert.setdefault("spec", {})
    for field, value in desired["spec"].items():
        spec[field] = copy.deepcopy(value)


def needs_update(cert: dict[str, Any], desired: dict[str, Any]) -> bool:
    """True when any computed field differs from the stored value."""
    labels = labels_of(cert)
    if any(labels.get(key) != value for key, value in desired["labels"].items()):
        return True
    annotations = annotations_of(cert)
    if any(annotations.get(key) != value for key, value in desired["annotations"].items()):
        return True

    spec = cert.get("spec") or {}
    wanted = desired["spec"]
    if (spec.get("dnsNames") or []) != wanted["dnsNames"]:
        return True
    if (spec.get("ipAddresses") or []) != wanted["ipAddresses"]:
        return True
    if not same_duration(spec.get("duration"), wanted["duration"]):
        return True
    if not same_duration(spec.get("renewBefore"), wanted["renewBefore"]):
        return True
    template_labels = (spec.get("secretTemplate") or {}).get("labels") or {}
    return template_labels != wanted["secretTemplate"]["labels"]
