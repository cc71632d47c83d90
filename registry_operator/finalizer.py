"""
Finalizer lifecycle for ModelRegistry resources.

  Absent   → Active     add the finalizer token before any dependent work
  Active   → Deleting   the API server sets metadata.deletionTimestamp
  Deleting → Finalized  Degraded=Unknown, cleanup, re-read, Degraded=True,
                        remove the token
  Finalized → gone      the API server deletes the object and garbage-collects
                        the managed resources through their owner references

While deleting, NotFound means the object is already gone. The cleanup
step still runs; a NotFound after it ends the sequence successfully. A Conflict on a status write is dropped (the re-read
before the second write picks up the fresh version); a Conflict on the
token removal is only benign once a re-read confirms the token is gone.
"""

import logging

from registry_operator.conditions import CONDITION_DEGRADED, REASON_FINALIZING, set_object_condition
from registry_operator.config import settings
from registry_operator.errors import ConflictError, NotFoundError
from registry_operator.models import ConditionStatus, ObjectKey, ReconcileContext

logger = logging.getLogger("model-registry-operator")


def has_finalizer(obj: dict) -> bool:
    return settings.FINALIZER in (obj.get("metadata", {}).get("finalizers") or [])


def is_deleting(obj: dict) -> bool:
    return bool(obj.get("metadata", {}).get("deletionTimestamp"))


def add_finalizer(obj: dict) -> bool:
    """Add the token in place. Returns False if it was already present."""
    meta = obj.setdefault("metadata", {})
    finalizers = list(meta.get("finalizers") or [])
    if settings.FINALIZER in finalizers:
        return False
    finalizers.append(settings.FINALIZER)
    meta["finalizers"] = finalizers
    return True


def remove_finalizer(obj: dict) -> bool:
    """Remove the token in place. Returns False if it was not present."""
    meta = obj.get("metadata", {})
    finalizers = list(meta.get("finalizers") or [])
    if settings.FINALIZER not in finalizers:
        return False
    meta["finalizers"] = [f for f in finalizers if f != settings.FINALIZER]
    return True


def ensure_finalizer(store, obj: dict, ctx: ReconcileContext) -> dict:
    """Persist the finalizer token on a newly observed registry."""
    if not add_finalizer(obj):
        return obj
    ctx.logger.info("Adding Finalizer for ModelRegistry")
    return store.update(obj, ctx)


def cleanup_registry(obj: dict, notifier):
    """
    Operations to run before the registry may be removed.

    Managed resources are not deleted here: they carry owner references
    and the API server garbage-collects them with the registry.
    """
    meta = obj["metadata"]
    notifier.notify(obj, "Warning", "Deleting",
                    f"Custom Resource {meta['name']} is being deleted from the namespace {meta['namespace']}")


def _write_degraded(store, obj: dict, status: ConditionStatus, message: str,
                    ctx: ReconcileContext) -> dict:
    set_object_condition(obj, CONDITION_DEGRADED, status, REASON_FINALIZING, message)
    try:
        return store.update_status(obj, ctx)
    except ConflictError as e:
        ctx.logger.warning(f"Ignoring conflict on Degraded={status.value} status write: {e}")
        return obj


def finalize_registry(store, obj: dict, notifier, ctx: ReconcileContext) -> bool:
    """
    Run the deletion sequence for a registry that carries the token.

    Returns True when the token removal has to be retried on a later
    delivery; any error other than the tolerated NotFound/Conflict cases
    propagates.
    """
    kind = obj["kind"]
    key = ObjectKey.from_object(obj)
    name = obj["metadata"]["name"]
    ctx.logger.info("Performing Finalizer Operations for modelRegistry before delete CR")

    try:
        _write_degraded(store, obj, ConditionStatus.UNKNOWN,
                        f"Performing finalizer operations for the custom resource: {name} ", ctx)
    except NotFoundError:
        ctx.logger.info(f"modelregistry {key} gone before Degraded=Unknown was written")

    # Cleanup runs whatever happened to the first status write
    cleanup_registry(obj, notifier)

    try:
        # Re-read so the following writes don't race our own status update
        obj = store.get(kind, key, ctx)
        obj = _write_degraded(
            store, obj, ConditionStatus.TRUE,
            f"Finalizer operations for custom resource {name} were successfully accomplished", ctx)

        ctx.logger.info("Removing Finalizer for modelRegistry after successfully perform the operations")
        if not remove_finalizer(obj):
            return False
        try:
            store.update(obj, ctx)
        except ConflictError as e:
            ctx.logger.info(f"Conflict removing finalizer from {key}, re-checking: {e}")
            if has_finalizer(store.get(kind, key, ctx)):
                return True
    except NotFoundError:
        ctx.logger.info(f"modelregistry {key} already gone while finalizing")
    return False
