"""Cleanup of certificates issued for services that no longer exist."""

from ..config import ControllerConfig
from ..exceptions import ObjectNotFoundError
from ..logger import get_logger
from ..models import CERTIFICATE, SECRET, ResourceKind, annotations_of
from ..store import ObjectStore
from .util import certificate_name, owner_annotation_value

logger = get_logger(__name__)


class TeardownHandler:
    """
    Deletes the Certificate and backing secret of a deleted service.

    The certificate is found by its derived name. The copy in the service
    namespace is owned by the Service and left to the garbage collector.
    """

    def __init__(self, store: ObjectStore, config: ControllerConfig):
        self.store = store
        self.config = config

    async def teardown(self, service_namespace: str, service_name: str) -> None:
        """
        Remove what was issued for ``service_namespace/service_name``.

        Safe to call for services that never had a certificate and safe to
        repeat.

        Raises:
            StoreError: on any failure other than an already missing object
        """
        name = certificate_name(self.config, service_name, service_namespace)
        namespace = self.config.trust_namespace
        log = logger.bind(certificate=name)

        try:
            cert = await self.store.get(CERTIFICATE, name, namespace)
        except ObjectNotFoundError:
            log.debug("No certificate issued for service, nothing to clean up")
            return

        owner = annotations_of(cert).get(self.config.labels.owner_annotation)
        if owner and owner != owner_annotation_value(service_namespace, service_name):
            # Only reachable with the name-only policy: another namespace reuses the name
            log.info("Certificate is owned by another service, keeping it", owner=owner)
            return

        log.info("Deleting certificate")
        await self._delete(CERTIFICATE, name, namespace)

        secret_name = (cert.get("spec") or {}).get("secretName")
        if not secret_name:
            return
        if await self._secret_in_use(secret_name, namespace):
            log.info("Certificate secret is still used by another certificate, keeping it", secret=secret_name)
            return
        log.info("Deleting certificate secret", secret=secret_name)
        await self._delete(SECRET, secret_name, namespace)

    async def _secret_in_use(self, secret_name: str, namespace: str) -> bool:
        # Backing secrets share the trust namespace; requested names can collide
        remaining = await self.store.list(CERTIFICATE, namespace)
        return any((cert.get("spec") or {}).get("secretName") == secret_name for cert in remaining)

    async def _delete(self, kind: ResourceKind, name: str, namespace: str) -> None:
        try:
            await self.store.delete(kind, name, namespace)
        except ObjectNotFoundError:
            pass
