"""Copying issued key material into the namespace of the consuming service."""

import copy
from typing import Any

from ..config import ControllerConfig
from ..exceptions import ObjectNotFoundError, StoreError
from ..logger import get_logger
from ..models import SECRET, SERVICE, controller_reference
from ..store import ObjectStore

logger = get_logger(__name__)

# Identity and version metadata that must not be carried into a new object
_IDENTITY_FIELDS = (
    "uid",
    "resourceVersion",
    "creationTimestamp",
    "managedFields",
    "ownerReferences",
    "selfLink",
    "generation",
)


def set_owning_service(secret: dict[str, Any], service: dict[str, Any]) -> None:
    """
    Make ``service`` the controller owner of ``secret``.

    A previous controller reference is replaced; other owner references are
    kept since Kubernetes allows at most one controller.
    """
    meta = secret.setdefault("metadata", {})
    reference = controller_reference(service, SERVICE)
    kept = [
        ref
        for ref in meta.get("ownerReferences") or []
        if not ref.get("controller") and ref.get("uid") != reference["uid"]
    ]
    meta["ownerReferences"] = kept + [reference]


class SecretPropagator:
    """Writes the service's copy of its issued secret."""

    def __init__(self, store: ObjectStore, config: ControllerConfig):
        self.store = store
        self.config = config

    async def propagate(
        self,
        key_material: dict[str, Any],
        service: dict[str, Any],
        secret_name: str,
    ) -> dict[str, Any]:
        """
        Create or merge-update ``secret_name`` in the service namespace.

        Keys of the issued secret overwrite the destination's keys of the
        same name; every other destination key is preserved.

        Raises:
            StoreError: if the write fails
        """
        namespace = service["metadata"]["namespace"]
        log = logger.bind(secret=secret_name)

        try:
            existing = await self.store.get(SECRET, secret_name, namespace)
        except ObjectNotFoundError:
            existing = None

        if existing is not None:
            updated = copy.deepcopy(existing)
            data = updated.get("data") or {}
            data.update(key_material.get("data") or {})
            updated["data"] = data
            set_owning_service(updated, service)
            if updated == existing:
                return existing

            log.info("Secret exists already, updating data")
            try:
                return await self.store.update(SECRET, updated)
            except StoreError as e:
                log.error("Failed to update copy of secret", error=str(e))
                raise

        log.info("Secret doesn't exist yet, creating")
        copied = build_secret_copy(key_material, service, secret_name)
        try:
            return await self.store.create(SECRET, copied)
        except StoreError as e:
            log.error("Failed to create copy of secret", error=str(e))
            raise


def build_secret_copy(key_material: dict[str, Any], service: dict[str, Any], secret_name: str) -> dict[str, Any]:
    """Clone ``key_material`` as a new secret owned by ``service``."""
    source_meta = key_material.get("metadata") or {}
    meta = {
        key: copy.deepcopy(value)
        for key, value in source_meta.items()
        if key not in _IDENTITY_FIELDS
    }
    meta["name"] = secret_name
    meta["namespace"] = service["metadata"]["namespace"]

    secret = {
        "apiVersion": SECRET.api_version,
        "kind": SECRET.kind,
        "metadata": meta,
        "data": copy.deepcopy(key_material.get("data") or {}),
    }
    if key_material.get("type"):
        secret["type"] = key_material["type"]
    set_owning_service(secret, service)
    return secret
