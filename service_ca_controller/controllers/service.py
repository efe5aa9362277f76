"""Service reconciler."""

from typing import Any

from ..certs import CertificateIntentSynchronizer, ReadinessPoller, SecretPropagator, TeardownHandler
from ..config import ControllerConfig
from ..exceptions import ObjectNotFoundError
from ..logger import get_logger
from ..models import SERVICE, ReconcileResult, labels_of
from ..store import ObjectStore

logger = get_logger(__name__)


class ServiceReconciler:
    """
    Provisions the serving certificate secret a Service asks for.

    A Service opts in with the secret-name label. Each pass creates or
    updates its Certificate, waits for issuance and copies the issued secret
    into the Service's namespace. Deleted services are torn down.
    """

    controller_name = "service"

    def __init__(
        self,
        store: ObjectStore,
        config: ControllerConfig,
        synchronizer: CertificateIntentSynchronizer | None = None,
        poller: ReadinessPoller | None = None,
        propagator: SecretPropagator | None = None,
        teardown: TeardownHandler | None = None,
    ):
        self.store = store
        self.config = config
        self.synchronizer = synchronizer or CertificateIntentSynchronizer(store, config)
        self.poller = poller or ReadinessPoller(store, config)
        self.propagator = propagator or SecretPropagator(store, config)
        self.teardown = teardown or TeardownHandler(store, config)

    def requested_secret_name(self, service: dict[str, Any]) -> str | None:
        """The secret name from the opt-in label, None when not requested."""
        return labels_of(service).get(self.config.labels.serving_cert_secret_name) or None

    async def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        try:
            service = await self.store.get(SERVICE, name, namespace)
        except ObjectNotFoundError:
            await self.teardown.teardown(namespace, name)
            return ReconcileResult.done()

        secret_name = self.requested_secret_name(service)
        if secret_name is None:
            # not labeled, nothing to do
            return ReconcileResult.done()

        logger.info("Ensuring certificate for service", secret=secret_name)
        await self.synchronizer.sync(service, secret_name)

        key_material, result = await self.poller.fetch_ready_key_material(service)
        if key_material is None:
            logger.info("Certificate not issued yet, requeuing", requeue_after=result.requeue_after)
            return result

        logger.info("Copying secret to service namespace", secret=secret_name)
        await self.propagator.propagate(key_material, service, secret_name)
        return ReconcileResult.done()
