"""
Trust anchor bootstrap.

The service CA is a chain of three cert-manager objects created once per
cluster: a self-signed Issuer, a root CA Certificate issued by it, and a
ClusterIssuer signing with the root's secret. Existing objects are never
modified.
"""

import base64
import binascii
from typing import Any

from ..config import ControllerConfig
from ..exceptions import CertificateDataError, ObjectNotFoundError, PreconditionError, StoreError
from ..logger import get_logger
from ..models import (
    CERT_MANAGER_GROUP,
    CERTIFICATE,
    CLUSTER_ISSUER,
    CUSTOM_RESOURCE_DEFINITION,
    ISSUER,
    SECRET,
    ReconcileResult,
)
from ..store import ObjectStore
from .watch import is_certificate_ready

logger = get_logger(__name__)

CA_CERTIFICATE_KEY = "tls.crt"


class TrustAnchorBootstrapper:
    """Creates the service CA objects and reads the root certificate back."""

    def __init__(self, store: ObjectStore, config: ControllerConfig):
        self.store = store
        self.config = config

    @property
    def namespace(self) -> str:
        return self.config.trust_namespace

    async def check_issuance_capability(self) -> None:
        """
        Verify the cert-manager Certificate CRD is installed.

        Raises:
            PreconditionError: if the CRD does not exist
            StoreError: on any other lookup failure
        """
        try:
            await self.store.get(CUSTOM_RESOURCE_DEFINITION, self.config.issuance_crd)
        except ObjectNotFoundError:
            raise PreconditionError(
                f"CRD `{self.config.issuance_crd}` missing, is cert-manager installed?",
                "ISSUANCE_BACKEND_MISSING",
                {"crd": self.config.issuance_crd},
            )

    async def ensure_trust_anchor(self) -> None:
        """Ensure that the service CA is completely set up on the cluster."""
        log = logger.bind(ca_namespace=self.namespace)
        await self._ensure_self_signed_issuer(log)
        await self._ensure_ca_certificate(log)
        await self._ensure_cluster_issuer(log)

    async def _ensure_self_signed_issuer(self, log) -> None:
        name = self.config.names.self_signed_issuer
        try:
            await self.store.get(ISSUER, name, self.namespace)
            return
        except ObjectNotFoundError:
            pass
        except StoreError as e:
            log.error("Failed to fetch self-signed issuer", error=str(e))
            raise

        log.info("Self-signed issuer doesn't exist, creating", issuer=name)
        await self.store.create(
            ISSUER,
            {
                "apiVersion": ISSUER.api_version,
                "kind": ISSUER.kind,
                "metadata": {"name": name, "namespace": self.namespace},
                "spec": {"selfSigned": {}},
            },
        )

    async def _ensure_ca_certificate(self, log) -> None:
        name = self.config.names.ca_certificate
        try:
            await self.store.get(CERTIFICATE, name, self.namespace)
            return
        except ObjectNotFoundError:
            pass
        except StoreError as e:
            log.error("Failed to fetch service CA certificate", error=str(e))
            raise

        log.info("Service CA certificate doesn't exist, creating", certificate=name)
        await self.store.create(CERTIFICATE, self.build_ca_certificate())

    async def _ensure_cluster_issuer(self, log) -> None:
        name = self.config.names.cluster_issuer
        try:
            await self.store.get(CLUSTER_ISSUER, name)
            return
        except ObjectNotFoundError:
            pass
        except StoreError as e:
            log.error("Failed to fetch service CA cluster issuer", error=str(e))
            raise

        log.info("Service CA cluster issuer doesn't exist, creating", issuer=name)
        await self.store.create(
            CLUSTER_ISSUER,
            {
                "apiVersion": CLUSTER_ISSUER.api_version,
                "kind": CLUSTER_ISSUER.kind,
                "metadata": {"name": name},
                "spec": {"ca": {"secretName": self.config.names.ca_secret}},
            },
        )

    def build_ca_certificate(self) -> dict[str, Any]:
        """Desired root CA Certificate."""
        names = self.config.names
        policy = self.config.certificate
        return {
            "apiVersion": CERTIFICATE.api_version,
            "kind": CERTIFICATE.kind,
            "metadata": {"name": names.ca_certificate, "namespace": self.namespace},
            "spec": {
                "isCA": True,
                "commonName": names.ca_common_name,
                "secretName": names.ca_secret,
                "privateKey": {
                    "algorithm": policy.key_algorithm,
                    "size": policy.key_size,
                },
                "issuerRef": {
                    "name": names.self_signed_issuer,
                    "kind": ISSUER.kind,
                    "group": CERT_MANAGER_GROUP,
                },
            },
        }

    async def get_service_ca(self) -> tuple[str | None, ReconcileResult]:
        """
        Return the root CA certificate as PEM text.

        Returns ``(None, retry hint)`` while the root certificate is missing
        or not yet issued.

        Raises:
            CertificateDataError: if the CA secret lacks a UTF-8 ``tls.crt``
            StoreError: on any store failure other than a missing certificate
        """
        retry = ReconcileResult.retry_after(self.config.certificate.requeue_after)
        try:
            ca_cert = await self.store.get(CERTIFICATE, self.config.names.ca_certificate, self.namespace)
        except ObjectNotFoundError:
            logger.info("CA certificate doesn't exist yet", ca_namespace=self.namespace)
            return None, retry

        if not is_certificate_ready(ca_cert):
            logger.info("CA certificate not yet ready", ca_namespace=self.namespace)
            return None, retry

        secret_name = ca_cert.get("spec", {}).get("secretName") or self.config.names.ca_secret
        secret = await self.store.get(SECRET, secret_name, self.namespace)
        return decode_ca_certificate(secret), ReconcileResult.done()


def decode_ca_certificate(secret: dict[str, Any]) -> str:
    """Extract the PEM text of ``tls.crt`` from a CA secret."""
    encoded = (secret.get("data") or {}).get(CA_CERTIFICATE_KEY)
    if encoded is None:
        raise CertificateDataError(f"key `{CA_CERTIFICATE_KEY}` missing in CA secret", "CA_KEY_MISSING")

    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise CertificateDataError(f"`{CA_CERTIFICATE_KEY}` in CA secret is not valid base64", "CA_NOT_BASE64")

    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        raise CertificateDataError(f"`{CA_CERTIFICATE_KEY}` in CA secret is not valid UTF-8", "CA_NOT_UTF8")
