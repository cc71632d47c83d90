"""
Object store client — abstracts the Kubernetes API calls the engine needs.

Design principles:
  - Objects are plain dicts in wire (camelCase) form, for every kind
  - Writes are compare-and-swap: `update`/`update_status` send the object's
    resourceVersion and the API server rejects stale versions with 409
  - Clean error handling: translates K8s API exceptions to domain errors
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import kopf
from kubernetes import client, config
from kubernetes.client import ApiException

from registry_operator.config import settings
from registry_operator.errors import ConflictError, NotFoundError, StoreError
from registry_operator.models import ObjectKey, ReconcileContext

logger = logging.getLogger("model-registry-operator")

_k8s_loaded = False


def _ensure_k8s():
    """Load Kubernetes config exactly once."""
    global _k8s_loaded
    if _k8s_loaded:
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config(config_file=settings.KUBECONFIG or None)
    _k8s_loaded = True


def translate_api_exception(e: ApiException, kind: str, key: ObjectKey) -> StoreError:
    """Map an ApiException onto the engine's error taxonomy."""
    if e.status == 404:
        return NotFoundError(f"{kind} {key} not found")
    if e.status == 409:
        return ConflictError(f"{kind} {key} conflict: {e.reason}")
    return StoreError(f"{kind} {key}: {e.status} {e.reason}", status=e.status)


@dataclass(frozen=True)
class _KindOps:
    read: Callable
    create: Callable
    replace: Callable
    replace_status: Callable


class KubeObjectStore:
    """Get / create / update / update_status by kind and key."""

    def __init__(self, api_client: Optional[client.ApiClient] = None):
        if api_client is None:
            _ensure_k8s()
            api_client = client.ApiClient()
        self.api_client = api_client
        self.core = client.CoreV1Api(api_client)
        self.apps = client.AppsV1Api(api_client)
        self.custom = client.CustomObjectsApi(api_client)
        self._ops = {
            "ServiceAccount": _KindOps(
                read=lambda k, **kw: self.core.read_namespaced_service_account(k.name, k.namespace, **kw),
                create=lambda k, body, **kw: self.core.create_namespaced_service_account(k.namespace, body, **kw),
                replace=lambda k, body, **kw: self.core.replace_namespaced_service_account(
                    k.name, k.namespace, body, **kw),
                replace_status=None,
            ),
            "Service": _KindOps(
                read=lambda k, **kw: self.core.read_namespaced_service(k.name, k.namespace, **kw),
                create=lambda k, body, **kw: self.core.create_namespaced_service(k.namespace, body, **kw),
                replace=lambda k, body, **kw: self.core.replace_namespaced_service(
                    k.name, k.namespace, body, **kw),
                replace_status=lambda k, body, **kw: self.core.replace_namespaced_service_status(
                    k.name, k.namespace, body, **kw),
            ),
            "Deployment": _KindOps(
                read=lambda k, **kw: self.apps.read_namespaced_deployment(k.name, k.namespace, **kw),
                create=lambda k, body, **kw: self.apps.create_namespaced_deployment(k.namespace, body, **kw),
                replace=lambda k, body, **kw: self.apps.replace_namespaced_deployment(
                    k.name, k.namespace, body, **kw),
                replace_status=lambda k, body, **kw: self.apps.replace_namespaced_deployment_status(
                    k.name, k.namespace, body, **kw),
            ),
            settings.CRD_KIND: _KindOps(
                read=lambda k, **kw: self.custom.get_namespaced_custom_object(
                    settings.CRD_GROUP, settings.CRD_VERSION, k.namespace, settings.CRD_PLURAL,
                    k.name, **kw),
                create=lambda k, body, **kw: self.custom.create_namespaced_custom_object(
                    settings.CRD_GROUP, settings.CRD_VERSION, k.namespace, settings.CRD_PLURAL,
                    body, **kw),
                replace=lambda k, body, **kw: self.custom.replace_namespaced_custom_object(
                    settings.CRD_GROUP, settings.CRD_VERSION, k.namespace, settings.CRD_PLURAL,
                    k.name, body, **kw),
                replace_status=lambda k, body, **kw: self.custom.replace_namespaced_custom_object_status(
                    settings.CRD_GROUP, settings.CRD_VERSION, k.namespace, settings.CRD_PLURAL,
                    k.name, body, **kw),
            ),
        }

    def _kind_ops(self, kind: str) -> _KindOps:
        try:
            return self._ops[kind]
        except KeyError:
            raise StoreError(f"unsupported kind {kind}") from None

    def _to_dict(self, obj) -> dict:
        # Typed V1* models → camelCase dicts; custom objects already are dicts
        return self.api_client.sanitize_for_serialization(obj)

    def _call(self, fn: Callable, kind: str, key: ObjectKey, ctx: ReconcileContext, *args) -> dict:
        try:
            result = fn(key, *args, _request_timeout=ctx.timeout())
        except ApiException as e:
            raise translate_api_exception(e, kind, key) from e
        return self._to_dict(result)

    def get(self, kind: str, key: ObjectKey, ctx: ReconcileContext) -> dict:
        return self._call(self._kind_ops(kind).read, kind, key, ctx)

    def create(self, obj: dict, ctx: ReconcileContext) -> dict:
        kind = obj["kind"]
        return self._call(self._kind_ops(kind).create, kind, ObjectKey.from_object(obj), ctx, obj)

    def update(self, obj: dict, ctx: ReconcileContext) -> dict:
        kind = obj["kind"]
        return self._call(self._kind_ops(kind).replace, kind, ObjectKey.from_object(obj), ctx, obj)

    def update_status(self, obj: dict, ctx: ReconcileContext) -> dict:
        """Status-only write: spec and metadata changes in `obj` are ignored by the server."""
        kind = obj["kind"]
        ops = self._kind_ops(kind)
        if ops.replace_status is None:
            raise StoreError(f"{kind} has no status subresource")
        return self._call(ops.replace_status, kind, ObjectKey.from_object(obj), ctx, obj)

    @staticmethod
    def set_owner_link(child: dict, parent: dict):
        """Point `child` at `parent` for server-side cascading deletion."""
        set_owner_link(child, parent)


def set_owner_link(child: dict, parent: dict):
    kopf.append_owner_reference(child, owner=parent, controller=True, block_owner_deletion=True)
