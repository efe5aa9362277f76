"""Tests for copying key material into the service namespace."""

import pytest
import pytest_asyncio

from service_ca_controller.certs import SecretPropagator, build_secret_copy, set_owning_service
from service_ca_controller.models import SECRET, SERVICE, ObjectKey


@pytest_asyncio.fixture
async def stored_service(store, make_service):
    return await store.create(SERVICE, make_service())


@pytest.fixture
def key_material(make_secret):
    secret = make_secret(
        "web-tls",
        data={"tls.crt": "crt", "tls.key": "key", "ca.crt": "ca"},
        labels={"service.syn.tools/certificate": "web.apps-tls"},
    )
    secret["metadata"].update(
        {
            "uid": "source-uid",
            "resourceVersion": "42",
            "creationTimestamp": "2024-01-01T00:00:00Z",
            "managedFields": [{"manager": "cert-manager"}],
            "ownerReferences": [{"kind": "Certificate", "name": "web.apps-tls", "uid": "cert-uid"}],
            "annotations": {"cert-manager.io/common-name": "web"},
        }
    )
    return secret


class TestBuildSecretCopy:
    """Cloning an issued secret."""

    def test_strips_identity_metadata(self, key_material, make_service):
        service = make_service()
        service["metadata"]["uid"] = "svc-uid"
        copied = build_secret_copy(key_material, service, "web-tls")

        meta = copied["metadata"]
        for field in ("uid", "resourceVersion", "creationTimestamp", "managedFields"):
            assert field not in meta
        assert meta["name"] == "web-tls"
        assert meta["namespace"] == "apps"
        assert meta["labels"] == {"service.syn.tools/certificate": "web.apps-tls"}
        assert meta["annotations"] == {"cert-manager.io/common-name": "web"}
        assert copied["type"] == "kubernetes.io/tls"
        assert copied["data"] == key_material["data"]

    def test_owned_by_service_only(self, key_material, make_service):
        service = make_service()
        service["metadata"]["uid"] = "svc-uid"
        copied = build_secret_copy(key_material, service, "web-tls")

        assert copied["metadata"]["ownerReferences"] == [
            {
                "apiVersion": "v1",
                "kind": "Service",
                "name": "web",
                "uid": "svc-uid",
                "controller": True,
                "blockOwnerDeletion": True,
            }
        ]


class TestSetOwningService:
    """Controller reference handling."""

    def test_replaces_previous_controller(self, make_service):
        service = make_service()
        service["metadata"]["uid"] = "new-uid"
        secret = {
            "metadata": {
                "ownerReferences": [
                    {"kind": "Service", "name": "old", "uid": "old-uid", "controller": True},
                    {"kind": "ConfigMap", "name": "keep", "uid": "keep-uid"},
                ]
            }
        }
        set_owning_service(secret, service)

        refs = secret["metadata"]["ownerReferences"]
        assert [ref["uid"] for ref in refs] == ["keep-uid", "new-uid"]
        assert sum(1 for ref in refs if ref.get("controller")) == 1


class TestPropagate:
    """Creating and updating the service's secret."""

    @pytest.mark.asyncio
    async def test_creates_copy(self, store, config, stored_service, key_material):
        store.reset_writes()
        await SecretPropagator(store, config).propagate(key_material, stored_service, "web-tls")

        assert store.writes == [("create", "Secret", ObjectKey("web-tls", "apps"))]
        secret = await store.get(SECRET, "web-tls", "apps")
        assert secret["data"] == key_material["data"]
        assert secret["metadata"]["uid"] != "source-uid"
        owner = secret["metadata"]["ownerReferences"][0]
        assert owner["uid"] == stored_service["metadata"]["uid"]

    @pytest.mark.asyncio
    async def test_merges_into_existing(self, store, config, stored_service, key_material, make_secret):
        await store.create(
            SECRET, make_secret("web-tls", namespace="apps", data={"tls.crt": "old", "extra": "value"})
        )

        await SecretPropagator(store, config).propagate(key_material, stored_service, "web-tls")

        secret = await store.get(SECRET, "web-tls", "apps")
        assert secret["data"]["tls.crt"] == key_material["data"]["tls.crt"]
        assert secret["data"]["tls.key"] == key_material["data"]["tls.key"]
        assert "extra" in secret["data"]
        assert secret["metadata"]["ownerReferences"][-1]["uid"] == stored_service["metadata"]["uid"]

    @pytest.mark.asyncio
    async def test_no_write_when_up_to_date(self, store, config, stored_service, key_material):
        propagator = SecretPropagator(store, config)
        await propagator.propagate(key_material, stored_service, "web-tls")
        store.reset_writes()

        await propagator.propagate(key_material, stored_service, "web-tls")
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_renewed_material_is_copied(self, store, config, stored_service, key_material):
        propagator = SecretPropagator(store, config)
        await propagator.propagate(key_material, stored_service, "web-tls")

        key_material["data"]["tls.crt"] = "cmVuZXdlZA=="
        await propagator.propagate(key_material, stored_service, "web-tls")

        secret = await store.get(SECRET, "web-tls", "apps")
        assert secret["data"]["tls.crt"] == "cmVuZXdlZA=="
