"""
Issuance readiness.

cert-manager reports progress through the ``Ready`` condition on a
Certificate. Until it turns ``True`` the backing secret may be missing or
stale, so callers get a retry hint instead of key material.
"""

from typing import Any

from ..config import ControllerConfig
from ..exceptions import ObjectNotFoundError
from ..logger import get_logger
from ..models import CERTIFICATE, SECRET, ReconcileResult
from ..store import ObjectStore
from .util import certificate_name

logger = get_logger(__name__)

READY_CONDITION = "Ready"
CONDITION_TRUE = "True"


def is_certificate_ready(certificate: dict[str, Any]) -> bool:
    """True iff the Ready condition is present with status True."""
    conditions = (certificate.get("status") or {}).get("conditions") or []
    for condition in conditions:
        if condition.get("type") == READY_CONDITION:
            return condition.get("status") == CONDITION_TRUE
    return False


class ReadinessPoller:
    """Looks up the issued secret for a service once its certificate is ready."""

    def __init__(self, store: ObjectStore, config: ControllerConfig):
        self.store = store
        self.config = config

    async def fetch_ready_key_material(
        self, service: dict[str, Any]
    ) -> tuple[dict[str, Any] | None, ReconcileResult]:
        """
        Fetch the backing secret of the service's certificate.

        Returns:
            ``(secret, done)`` when issued, ``(None, retry hint)`` while the
            certificate is missing or not ready

        Raises:
            StoreError: if the certificate or secret lookup fails otherwise
        """
        meta = service["metadata"]
        name = certificate_name(self.config, meta["name"], meta["namespace"])
        namespace = self.config.trust_namespace
        retry = ReconcileResult.retry_after(self.config.certificate.requeue_after)

        try:
            cert = await self.store.get(CERTIFICATE, name, namespace)
        except ObjectNotFoundError:
            logger.debug("Certificate not created yet", certificate=name)
            return None, retry

        if not is_certificate_ready(cert):
            logger.debug("Certificate not ready yet", certificate=name)
            return None, retry

        secret = await self.store.get(SECRET, cert["spec"]["secretName"], namespace)
        return secret, ReconcileResult.done()
