"""
Status condition manager for ModelRegistry resources.

Conditions (at most one entry per type, never removed):
  - Progressing — did the last cycle create/update anything?
  - Available   — mirrors the registry Deployment's own Available condition
  - Degraded    — set while finalizer operations run (see finalizer.py)
"""

import logging
from datetime import datetime, timezone

from registry_operator.apply import OperationResult
from registry_operator.errors import StoreError
from registry_operator.models import ConditionStatus, ObjectKey, ReconcileContext

logger = logging.getLogger("model-registry-operator")

CONDITION_AVAILABLE = "Available"
CONDITION_PROGRESSING = "Progressing"
CONDITION_DEGRADED = "Degraded"

REASON_CREATED = "CreatedDeployment"
REASON_CREATING = "CreatingDeployment"
REASON_UPDATING = "UpdatingDeployment"
REASON_AVAILABLE = "DeploymentAvailable"
REASON_UNAVAILABLE = "DeploymentUnavailable"
REASON_FINALIZING = "Finalizing"

# result → (status, reason, message template)
PROGRESSING_CONDITIONS = {
    OperationResult.UNCHANGED: (
        ConditionStatus.TRUE, REASON_CREATED,
        "Deployment for custom resource {name} was successfully created",
    ),
    OperationResult.CREATED: (
        ConditionStatus.FALSE, REASON_CREATING,
        "Creating deployment for custom resource {name}",
    ),
    OperationResult.UPDATED: (
        ConditionStatus.FALSE, REASON_UPDATING,
        "Updating deployment for custom resource {name}",
    ),
}

_missing = set(OperationResult) - set(PROGRESSING_CONDITIONS)
if _missing:
    raise RuntimeError(f"no Progressing condition mapped for {sorted(r.value for r in _missing)}")


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def set_condition(conditions: list, ctype: str, status, reason: str, message: str):
    """
    Upsert a condition in a conditions list.

    lastTransitionTime only moves when the status value actually changes.
    """
    status = ConditionStatus(status).value
    for c in conditions:
        if c.get("type") == ctype:
            if c.get("status") != status:
                c["status"] = status
                c["lastTransitionTime"] = _now()
            c["reason"] = reason
            c["message"] = message
            return
    conditions.append({
        "type": ctype,
        "status": status,
        "reason": reason,
        "message": message,
        "lastTransitionTime": _now(),
    })


def get_condition(conditions: list, ctype: str):
    for c in conditions:
        if c.get("type") == ctype:
            return c
    return None


def set_object_condition(obj: dict, ctype: str, status, reason: str, message: str):
    """Upsert a condition directly in `obj.status.conditions`."""
    status_obj = obj.get("status") or {}
    conditions = list(status_obj.get("conditions") or [])
    set_condition(conditions, ctype, status, reason, message)
    status_obj["conditions"] = conditions
    obj["status"] = status_obj


def set_progressing(obj: dict, result: OperationResult):
    status, reason, message = PROGRESSING_CONDITIONS[result]
    set_object_condition(obj, CONDITION_PROGRESSING, status, reason,
                         message.format(name=obj["metadata"]["name"]))


def deployment_available(deployment: dict) -> bool:
    for c in (deployment.get("status") or {}).get("conditions") or []:
        if c.get("type") == "Available":
            return c.get("status") == "True"
    return False


def workload_available(store, key: ObjectKey, ctx: ReconcileContext) -> bool:
    """
    Whether the registry Deployment reports itself Available.

    Fails soft: a Deployment that cannot be read (not created yet, API
    hiccup) counts as unavailable so status is still written.
    """
    try:
        deployment = store.get("Deployment", key, ctx)
    except StoreError as e:
        ctx.logger.warning(f"Failed to get model registry deployment {key}: {e}")
        return False
    return deployment_available(deployment)


def set_available(obj: dict, available: bool):
    name = obj["metadata"]["name"]
    if available:
        set_object_condition(obj, CONDITION_AVAILABLE, ConditionStatus.TRUE, REASON_AVAILABLE,
                             f"Deployment for custom resource {name} is available")
    else:
        set_object_condition(obj, CONDITION_AVAILABLE, ConditionStatus.FALSE, REASON_UNAVAILABLE,
                             f"Deployment for custom resource {name} is not available")


def update_registry_status(store, kind: str, key: ObjectKey, result: OperationResult,
                           ctx: ReconcileContext) -> dict:
    """
    Recompute Progressing and Available for the registry and persist them.

    Re-reads the registry first so the status write carries the current
    resourceVersion. Store errors propagate.
    """
    registry = store.get(kind, key, ctx)
    set_progressing(registry, result)
    set_available(registry, workload_available(store, key, ctx))
    return store.update_status(registry, ctx)
