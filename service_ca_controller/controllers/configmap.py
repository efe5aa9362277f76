"""ConfigMap reconciler injecting the service CA bundle."""

import copy
from typing import Any

from ..certs import TrustAnchorBootstrapper
from ..config import ControllerConfig
from ..exceptions import ObjectNotFoundError
from ..logger import get_logger
from ..models import CONFIG_MAP, InjectDecision, ReconcileResult, labels_of
from ..store import ObjectStore

logger = get_logger(__name__)

# Spellings accepted by Go's strconv.ParseBool
_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_VALUES = frozenset({"0", "f", "F", "FALSE", "false", "False"})


def parse_inject_label(labels: dict[str, str] | None, key: str) -> InjectDecision:
    """Evaluate the opt-in label; absence and false both mean skip."""
    if not labels or key not in labels:
        return InjectDecision.SKIP
    value = labels[key]
    if value in _TRUE_VALUES:
        return InjectDecision.INJECT
    if value in _FALSE_VALUES:
        return InjectDecision.SKIP
    return InjectDecision.MALFORMED


def inject_if_requested(configmap: dict[str, Any], ca_text: str, data_key: str) -> bool:
    """
    Put ``ca_text`` under ``data_key``.

    Returns:
        True if the ConfigMap changed and needs to be written
    """
    data = configmap.get("data") or {}
    if data.get(data_key) == ca_text:
        return False
    configmap["data"] = {**data, data_key: ca_text}
    return True


class ConfigMapReconciler:
    """
    Injects the service CA certificate into opted-in ConfigMaps.

    Injected data is never removed, also not when the label is later set
    to false.
    """

    controller_name = "configmap"

    def __init__(
        self,
        store: ObjectStore,
        config: ControllerConfig,
        bootstrapper: TrustAnchorBootstrapper | None = None,
    ):
        self.store = store
        self.config = config
        self.bootstrapper = bootstrapper or TrustAnchorBootstrapper(store, config)

    async def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        try:
            configmap = await self.store.get(CONFIG_MAP, name, namespace)
        except ObjectNotFoundError:
            return ReconcileResult.done()

        label_key = self.config.labels.inject_ca_bundle
        decision = parse_inject_label(labels_of(configmap), label_key)
        if decision is InjectDecision.MALFORMED:
            logger.warning(
                "Failed to parse label value as boolean, not injecting CA",
                label=label_key,
                value=labels_of(configmap)[label_key],
            )
            return ReconcileResult.done()
        if decision is InjectDecision.SKIP:
            return ReconcileResult.done()

        ca_text, result = await self.bootstrapper.get_service_ca()
        if ca_text is None:
            logger.info("Service CA not ready yet, requeuing", requeue_after=result.requeue_after)
            return result

        updated = copy.deepcopy(configmap)
        data_key = self.config.certificate.ca_bundle_key
        if inject_if_requested(updated, ca_text, data_key):
            logger.info("Updating service CA", key=data_key)
            await self.store.update(CONFIG_MAP, updated)
        return ReconcileResult.done()
