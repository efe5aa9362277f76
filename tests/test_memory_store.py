"""Tests for the in-memory object store."""

import pytest

from service_ca_controller.exceptions import (
    ObjectAlreadyExistsError,
    ObjectConflictError,
    ObjectNotFoundError,
    StoreError,
)
from service_ca_controller.models import CLUSTER_ISSUER, CONFIG_MAP, SECRET, ObjectKey


class TestInMemoryObjectStore:
    """API server behaviour the controller relies on."""

    @pytest.mark.asyncio
    async def test_create_assigns_identity(self, store, make_secret):
        created = await store.create(SECRET, make_secret("s"))
        meta = created["metadata"]
        assert meta["uid"]
        assert meta["resourceVersion"] == "1"
        assert meta["creationTimestamp"]

    @pytest.mark.asyncio
    async def test_create_twice(self, store, make_secret):
        await store.create(SECRET, make_secret("s"))
        with pytest.raises(ObjectAlreadyExistsError):
            await store.create(SECRET, make_secret("s"))

    @pytest.mark.asyncio
    async def test_namespace_required(self, store):
        with pytest.raises(StoreError) as exc_info:
            await store.create(SECRET, {"metadata": {"name": "s"}})
        assert exc_info.value.status == 422

    @pytest.mark.asyncio
    async def test_cluster_scoped(self, store):
        await store.create(CLUSTER_ISSUER, {"metadata": {"name": "i", "namespace": "ignored"}})
        issuer = await store.get(CLUSTER_ISSUER, "i")
        assert "namespace" not in issuer["metadata"]

    @pytest.mark.asyncio
    async def test_stale_update(self, store, make_secret):
        created = await store.create(SECRET, make_secret("s"))
        await store.update(SECRET, created)
        with pytest.raises(ObjectConflictError):
            await store.update(SECRET, created)

    @pytest.mark.asyncio
    async def test_update_missing(self, store, make_secret):
        with pytest.raises(ObjectNotFoundError):
            await store.update(SECRET, make_secret("s"))

    @pytest.mark.asyncio
    async def test_delete(self, store, make_secret):
        await store.create(SECRET, make_secret("s"))
        await store.delete(SECRET, "s", "cert-manager")
        with pytest.raises(ObjectNotFoundError):
            await store.delete(SECRET, "s", "cert-manager")
        assert store.writes[-1] == ("delete", "Secret", ObjectKey("s", "cert-manager"))

    @pytest.mark.asyncio
    async def test_returned_objects_are_copies(self, store, make_secret):
        await store.create(SECRET, make_secret("s"))
        fetched = await store.get(SECRET, "s", "cert-manager")
        fetched["data"]["x"] = "y"
        assert "x" not in (await store.get(SECRET, "s", "cert-manager"))["data"]

    @pytest.mark.asyncio
    async def test_list_by_namespace_and_label(self, store, make_configmap):
        await store.create(CONFIG_MAP, make_configmap("a", "ns1"))
        await store.create(CONFIG_MAP, make_configmap("b", "ns2"))
        await store.create(CONFIG_MAP, make_configmap("c", "ns1", inject=None))

        assert len(await store.list(CONFIG_MAP)) == 3
        assert [cm["metadata"]["name"] for cm in await store.list(CONFIG_MAP, "ns1")] == ["a", "c"]
        labeled = await store.list(CONFIG_MAP, labels={"service.syn.tools/inject-ca-bundle": "true"})
        assert sorted(cm["metadata"]["name"] for cm in labeled) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_stream_replays_objects(self, store, make_configmap):
        await store.create(CONFIG_MAP, make_configmap("a", "ns1"))
        await store.create(CONFIG_MAP, make_configmap("b", "ns2"))

        events = list(store.stream(CONFIG_MAP, "ns2"))
        assert [(event, obj["metadata"]["name"]) for event, obj in events] == [("ADDED", "b")]
