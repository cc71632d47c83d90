"""
Kubernetes service layer — abstracts all K8s API interactions for ModelRegistry CRDs.

Design principles:
  - Idempotent: create checks if the registry exists before creating
  - Read-only view of status: conditions are written by the operator only
  - Clean error handling: translates K8s API exceptions to domain errors
"""

import logging
from typing import Optional
from kubernetes import client, config
from kubernetes.client import ApiException

from registry_api.config import settings
from registry_api.models import RegistryResponse
from registry_operator.conditions import CONDITION_AVAILABLE, CONDITION_PROGRESSING, get_condition
from registry_operator.models import Condition, ModelRegistrySpec

logger = logging.getLogger("kubernetes_service")

_k8s_loaded = False


def _ensure_k8s():
    """Load Kubernetes config exactly once."""
    global _k8s_loaded
    if _k8s_loaded:
        return
    if settings.IN_CLUSTER:
        config.load_incluster_config()
    else:
        config.load_kube_config(config_file=settings.KUBECONFIG or None)
    _k8s_loaded = True


def _api() -> client.CustomObjectsApi:
    _ensure_k8s()
    return client.CustomObjectsApi()


def _phase(metadata: dict, conditions: list) -> str:
    if metadata.get("deletionTimestamp"):
        return "Deleting"
    available = get_condition(conditions, CONDITION_AVAILABLE)
    progressing = get_condition(conditions, CONDITION_PROGRESSING)
    if available is None and progressing is None:
        return "Pending"
    if progressing is not None and progressing.get("status") == "False":
        return "Progressing"
    if available is not None and available.get("status") == "True":
        return "Available"
    return "Unavailable"


def _parse_registry(item: dict) -> RegistryResponse:
    """Convert a raw K8s CRD dict into a RegistryResponse model."""
    metadata = item["metadata"]
    status = item.get("status") or {}
    raw_conditions = status.get("conditions") or []
    available = get_condition(raw_conditions, CONDITION_AVAILABLE)
    return RegistryResponse(
        name=metadata["name"],
        namespace=metadata.get("namespace", settings.DEFAULT_NAMESPACE),
        phase=_phase(metadata, raw_conditions),
        available=available is not None and available.get("status") == "True",
        deleting=bool(metadata.get("deletionTimestamp")),
        createdAt=metadata.get("creationTimestamp"),
        spec=ModelRegistrySpec.model_validate(item.get("spec") or {}),
        conditions=[Condition(**c) for c in raw_conditions],
    )


def list_registries(namespace: Optional[str] = None) -> list[RegistryResponse]:
    """List ModelRegistry CRDs in one namespace, or cluster-wide."""
    api = _api()
    if namespace:
        result = api.list_namespaced_custom_object(
            settings.CRD_GROUP, settings.CRD_VERSION, namespace, settings.CRD_PLURAL
        )
    else:
        result = api.list_cluster_custom_object(
            settings.CRD_GROUP, settings.CRD_VERSION, settings.CRD_PLURAL
        )
    return [_parse_registry(item) for item in result.get("items", [])]


def get_registry(namespace: str, name: str) -> Optional[RegistryResponse]:
    """Get a single ModelRegistry CRD by namespace and name."""
    api = _api()
    try:
        item = api.get_namespaced_custom_object(
            settings.CRD_GROUP, settings.CRD_VERSION, namespace, settings.CRD_PLURAL, name
        )
        return _parse_registry(item)
    except ApiException as e:
        if e.status == 404:
            return None
        raise


def create_registry(namespace: str, name: str, spec: ModelRegistrySpec) -> RegistryResponse:
    """Create a ModelRegistry CRD. Idempotent: returns the existing registry if already created."""
    api = _api()

    existing = get_registry(namespace, name)
    if existing:
        logger.info(f"Registry {namespace}/{name} already exists — returning existing (idempotent)")
        return existing

    body = {
        "apiVersion": f"{settings.CRD_GROUP}/{settings.CRD_VERSION}",
        "kind": settings.CRD_KIND,
        "metadata": {
            "name": name,
            "namespace": namespace,
        },
        "spec": spec.model_dump(exclude_none=True),
    }

    try:
        result = api.create_namespaced_custom_object(
            settings.CRD_GROUP, settings.CRD_VERSION, namespace, settings.CRD_PLURAL, body
        )
    except ApiException as e:
        if e.status == 409:
            # Lost a race with a concurrent create
            return get_registry(namespace, name)
        raise
    logger.info(f"Registry {namespace}/{name} created")
    return _parse_registry(result)


def delete_registry(namespace: str, name: str) -> bool:
    """Delete a ModelRegistry CRD. Returns True if deletion started, False if not found."""
    api = _api()
    try:
        api.delete_namespaced_custom_object(
            settings.CRD_GROUP, settings.CRD_VERSION, namespace, settings.CRD_PLURAL, name
        )
        logger.info(f"Registry {namespace}/{name} deletion initiated")
        return True
    except ApiException as e:
        if e.status == 404:
            return False
        raise


def count_registries_by_phase() -> dict:
    """Count registries grouped by phase."""
    registries = list_registries()
    counts = {"total": len(registries), "Available": 0, "Unavailable": 0,
              "Progressing": 0, "Pending": 0, "Deleting": 0}
    for r in registries:
        if r.phase in counts:
            counts[r.phase] += 1
    return counts
