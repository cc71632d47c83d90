"""
Tests for the Kubernetes-backed store client with the API objects mocked out.
"""

from unittest.mock import MagicMock

import pytest
from kubernetes.client import ApiException

from registry_operator.config import settings
from registry_operator.errors import ConflictError, NotFoundError, StoreError
from registry_operator.models import ObjectKey
from registry_operator.store import KubeObjectStore, set_owner_link, translate_api_exception

KEY = ObjectKey(namespace="ns1", name="demo")


@pytest.fixture
def kube_store():
    api_client = MagicMock()
    api_client.sanitize_for_serialization.side_effect = lambda o: o
    store = KubeObjectStore(api_client=api_client)
    store.core = MagicMock()
    store.apps = MagicMock()
    store.custom = MagicMock()
    return store


class TestTranslateApiException:
    def test_not_found(self):
        err = translate_api_exception(ApiException(status=404, reason="Not Found"), "Service", KEY)
        assert isinstance(err, NotFoundError)

    def test_conflict(self):
        err = translate_api_exception(ApiException(status=409, reason="Conflict"), "Service", KEY)
        assert isinstance(err, ConflictError)
        assert err.status == 409

    def test_other_status(self):
        err = translate_api_exception(ApiException(status=503, reason="Unavailable"), "Service", KEY)
        assert type(err) is StoreError
        assert err.status == 503


class TestKubeObjectStore:
    def test_get_deployment(self, kube_store, ctx):
        kube_store.apps.read_namespaced_deployment.return_value = {"kind": "Deployment"}
        assert kube_store.get("Deployment", KEY, ctx) == {"kind": "Deployment"}
        kube_store.apps.read_namespaced_deployment.assert_called_once_with(
            "demo", "ns1", _request_timeout=None)

    def test_get_registry_uses_custom_objects(self, kube_store, ctx):
        kube_store.custom.get_namespaced_custom_object.return_value = {"kind": settings.CRD_KIND}
        kube_store.get(settings.CRD_KIND, KEY, ctx)
        kube_store.custom.get_namespaced_custom_object.assert_called_once_with(
            settings.CRD_GROUP, settings.CRD_VERSION, "ns1", settings.CRD_PLURAL, "demo",
            _request_timeout=None)

    def test_not_found_is_translated(self, kube_store, ctx):
        kube_store.core.read_namespaced_service.side_effect = ApiException(status=404)
        with pytest.raises(NotFoundError):
            kube_store.get("Service", KEY, ctx)

    def test_update_conflict_is_translated(self, kube_store, ctx):
        kube_store.core.replace_namespaced_service.side_effect = ApiException(status=409)
        obj = {"kind": "Service", "metadata": {"name": "demo", "namespace": "ns1"}}
        with pytest.raises(ConflictError):
            kube_store.update(obj, ctx)

    def test_create_sends_body(self, kube_store, ctx):
        obj = {"kind": "ServiceAccount", "metadata": {"name": "demo", "namespace": "ns1"}}
        kube_store.create(obj, ctx)
        kube_store.core.create_namespaced_service_account.assert_called_once_with(
            "ns1", obj, _request_timeout=None)

    def test_status_write_on_registry(self, kube_store, ctx):
        obj = {"kind": settings.CRD_KIND, "metadata": {"name": "demo", "namespace": "ns1"}}
        kube_store.update_status(obj, ctx)
        kube_store.custom.replace_namespaced_custom_object_status.assert_called_once()

    def test_status_write_unsupported_for_service_account(self, kube_store, ctx):
        obj = {"kind": "ServiceAccount", "metadata": {"name": "demo", "namespace": "ns1"}}
        with pytest.raises(StoreError, match="no status subresource"):
            kube_store.update_status(obj, ctx)

    def test_unsupported_kind(self, kube_store, ctx):
        with pytest.raises(StoreError, match="unsupported kind"):
            kube_store.get("ConfigMap", KEY, ctx)


def test_set_owner_link(make_registry):
    parent = make_registry(uid="uid-1")
    child = {"apiVersion": "v1", "kind": "Service", "metadata": {"name": "demo", "namespace": "ns1"}}
    set_owner_link(child, parent)
    refs = child["metadata"]["ownerReferences"]
    assert len(refs) == 1
    assert refs[0]["uid"] == "uid-1"
    assert refs[0]["kind"] == settings.CRD_KIND
    assert refs[0]["controller"] is True
    assert refs[0]["blockOwnerDeletion"] is True
