"""
Diff-based apply engine — create-or-update for rendered managed resources.

  absent  → stamp last-applied annotation, create        → Created
  present → three-way diff (last-applied, live, intended)
              empty     → no write                      → Unchanged
              non-empty → refresh annotation, CAS update → Updated

Only fields the intended object sets are compared against the live object,
so server defaults, store-managed metadata and status written by other
controllers never register as drift. Fields that were set in the previous
apply and have since been dropped from the intended object do.
"""

import copy
import json
import logging
from enum import Enum

from registry_operator.config import settings
from registry_operator.errors import ApplyError, NotFoundError
from registry_operator.models import ObjectKey, ReconcileContext

logger = logging.getLogger("model-registry-operator")

# Top-level fields never compared
IGNORED_FIELDS = ("status", "apiVersion", "kind")

# Fields the API server assigns and refuses to have cleared on replace
PRESERVED_FIELDS = {
    "Service": [("spec", "clusterIP"), ("spec", "clusterIPs")],
}


class OperationResult(str, Enum):
    UNCHANGED = "Unchanged"
    CREATED = "Created"
    UPDATED = "Updated"


def _strip(obj: dict) -> dict:
    """Copy of `obj` without ignored fields and without the last-applied annotation."""
    stripped = {k: copy.deepcopy(v) for k, v in obj.items() if k not in IGNORED_FIELDS}
    annotations = stripped.get("metadata", {}).get("annotations")
    if annotations is not None:
        annotations.pop(settings.LAST_APPLIED_ANNOTATION, None)
        if not annotations:
            del stripped["metadata"]["annotations"]
    return stripped


def set_last_applied_annotation(obj: dict):
    """Save the intended body in an annotation, the way `kubectl apply` does."""
    try:
        snapshot = json.dumps(_strip(obj), sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise ApplyError(f"cannot serialize {obj.get('kind')} {ObjectKey.from_object(obj)}: {e}") from e
    meta = obj.setdefault("metadata", {})
    annotations = meta.get("annotations") or {}
    annotations[settings.LAST_APPLIED_ANNOTATION] = snapshot
    meta["annotations"] = annotations


def get_last_applied(obj: dict) -> dict:
    raw = (obj.get("metadata", {}).get("annotations") or {}).get(settings.LAST_APPLIED_ANNOTATION)
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        # Someone edited the annotation by hand; fall back to a two-way diff
        return {}


def _changed(current, modified, path: str, changes: list):
    """Record paths where `modified` sets a value that `current` does not hold."""
    if isinstance(modified, dict):
        if not isinstance(current, dict):
            changes.append(path or ".")
            return
        for key, value in modified.items():
            sub = f"{path}.{key}"
            if key not in current:
                changes.append(sub)
            else:
                _changed(current[key], value, sub, changes)
    elif isinstance(modified, list):
        if not isinstance(current, list) or len(current) != len(modified):
            changes.append(path)
            return
        for i, (cur, mod) in enumerate(zip(current, modified)):
            _changed(cur, mod, f"{path}[{i}]", changes)
    elif current != modified:
        changes.append(path)


def _deleted(original: dict, modified: dict, path: str, deletions: list):
    """Record paths present in the last-applied snapshot but gone from `modified`."""
    for key, value in original.items():
        sub = f"{path}.{key}"
        if key not in modified:
            deletions.append(sub)
        elif isinstance(value, dict) and isinstance(modified[key], dict):
            _deleted(value, modified[key], sub, deletions)


def calculate_diff(current: dict, intended: dict) -> list[str]:
    """
    Paths that differ between the live object and the intended object.

    An empty list means applying `intended` would be a no-op.
    """
    modified = _strip(intended)
    original = _strip(get_last_applied(current)) if current else {}
    changes: list[str] = []
    _changed(_strip(current), modified, "", changes)
    _deleted(original, modified, "", changes)
    return changes


def _preserve_server_fields(current: dict, intended: dict):
    intended.setdefault("metadata", {})["resourceVersion"] = current["metadata"].get("resourceVersion")
    for parent_field, child_field in PRESERVED_FIELDS.get(intended.get("kind"), []):
        value = current.get(parent_field, {}).get(child_field)
        if value is not None:
            intended.setdefault(parent_field, {}).setdefault(child_field, value)


def create_or_update(store, intended: dict, ctx: ReconcileContext) -> OperationResult:
    """
    Converge the live object towards `intended`.

    `intended` must already carry its owner reference. Store errors other
    than "not found" on the initial read propagate unmodified.
    """
    kind = intended.get("kind")
    key = ObjectKey.from_object(intended)

    try:
        current = store.get(kind, key, ctx)
    except NotFoundError:
        ctx.logger.info(f"creating {kind} {key}")
        set_last_applied_annotation(intended)
        store.create(intended, ctx)
        return OperationResult.CREATED

    changes = calculate_diff(current, intended)
    if not changes:
        return OperationResult.UNCHANGED

    ctx.logger.info(f"updating {kind} {key}: {', '.join(changes[:5])}")
    set_last_applied_annotation(intended)
    _preserve_server_fields(current, intended)
    store.update(intended, ctx)
    return OperationResult.UPDATED
