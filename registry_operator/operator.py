"""
Model Registry Operator — kopf wiring for ModelRegistry resources.

Architecture:
  ModelRegistry CRD → kopf watches → ModelRegistryReconciler.reconcile():
    1. Add finalizer (first sight)
    2. Render + apply ServiceAccount, Service, Deployment
    3. Update status conditions → Progressing / Available

  On Delete (finalizer held by the reconciler, not by kopf):
    Degraded=Unknown → cleanup event → Degraded=True → finalizer removed
    Managed resources are garbage-collected through owner references.

  Managed resource watch:
    Events on a registry's Deployment, Service or ServiceAccount (deletion
    included) re-run its owner's reconcile, so Available follows the
    workload and removed or edited resources are restored.

  Requeue:
    A cycle that created or updated anything raises TemporaryError so
    kopf delivers the registry again after REQUEUE_DELAY seconds. Any
    other exception is retried by kopf with backoff.

Run with:  kopf run -m registry_operator.operator
"""

import logging
from functools import lru_cache

import kopf

from registry_operator import metrics
from registry_operator.config import settings as cfg
from registry_operator.errors import OperatorError
from registry_operator.events import Notifier
from registry_operator.models import ObjectKey, ReconcileContext, ReconcileResult
from registry_operator.reconciler import ModelRegistryReconciler
from registry_operator.renderer import TemplateRenderer
from registry_operator.store import KubeObjectStore

logger = logging.getLogger("model-registry-operator")

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"


@lru_cache(maxsize=1)
def get_reconciler() -> ModelRegistryReconciler:
    return ModelRegistryReconciler(
        store=KubeObjectStore(),
        renderer=TemplateRenderer(),
        notifier=Notifier(),
    )


def run_reconcile(namespace: str, name: str, object_logger) -> ReconcileResult:
    """One reconcile attempt with its own deadline, recorded in metrics."""
    ctx = ReconcileContext.with_timeout(object_logger, cfg.RECONCILE_TIMEOUT)
    key = ObjectKey(namespace=namespace, name=name)
    try:
        result = get_reconciler().reconcile(key, ctx)
    except Exception:
        metrics.record_reconcile("error", ctx.elapsed())
        raise
    metrics.record_reconcile("requeue" if result.requeue else "success", ctx.elapsed())
    return result


# ---------------------------------------------------------------------------
# Kopf operator settings
# ---------------------------------------------------------------------------

@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **kwargs):
    settings.posting.enabled = True
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(
        prefix="modelregistry.opendatahub.io"
    )
    settings.execution.max_workers = cfg.MAX_WORKERS
    metrics.start_metrics_server(cfg.METRICS_PORT)
    logger.info(
        f"Model Registry Operator started (max_workers={cfg.MAX_WORKERS}, "
        f"webhooks={cfg.ENABLE_WEBHOOKS})"
    )


# ---------------------------------------------------------------------------
# ModelRegistry handlers: all paths go through the same reconcile
# ---------------------------------------------------------------------------

@kopf.on.create(cfg.CRD_GROUP, cfg.CRD_VERSION, cfg.CRD_PLURAL)
@kopf.on.update(cfg.CRD_GROUP, cfg.CRD_VERSION, cfg.CRD_PLURAL)
@kopf.on.resume(cfg.CRD_GROUP, cfg.CRD_VERSION, cfg.CRD_PLURAL)
@kopf.on.delete(cfg.CRD_GROUP, cfg.CRD_VERSION, cfg.CRD_PLURAL, optional=True)
def reconcile_registry(name, namespace, logger, **kwargs):
    """
    Reconcile a ModelRegistry to its desired state.

    Idempotent: each cycle re-reads the registry and only writes what
    differs. `optional=True` on delete keeps kopf from adding a finalizer
    of its own; the reconciler's finalizer is what holds the object.
    """
    result = run_reconcile(namespace, name, logger)
    if result.requeue:
        raise kopf.TemporaryError(
            f"modelregistry {namespace}/{name} changed, requeueing to update status",
            delay=cfg.REQUEUE_DELAY,
        )


# ---------------------------------------------------------------------------
# Managed resource watch: changes to a registry's Deployment, Service or
# ServiceAccount re-run the owner's reconcile
# ---------------------------------------------------------------------------

def owning_registry(body) -> str:
    """Name of the ModelRegistry controlling this object, or '' if none."""
    for ref in body.get("metadata", {}).get("ownerReferences") or []:
        if ref.get("kind") == cfg.CRD_KIND and ref.get("controller"):
            return ref.get("name", "")
    return ""


@kopf.on.event("apps", "v1", "deployments", labels={MANAGED_BY_LABEL: cfg.OPERATOR_NAME})
@kopf.on.event("", "v1", "services", labels={MANAGED_BY_LABEL: cfg.OPERATOR_NAME})
@kopf.on.event("", "v1", "serviceaccounts", labels={MANAGED_BY_LABEL: cfg.OPERATOR_NAME})
def watch_managed_resource(event, body, namespace, logger, **kwargs):
    """
    Re-run the owner's reconcile when a managed resource changes.

    Deletions count too: a removed Service or ServiceAccount is recreated,
    and a Deployment's readiness flows into Available. Once the registry
    itself is gone the reconcile is a no-op.

    This runs outside kopf's per-object serialization of the registry, so
    it may overlap the registry's own handler. Both sides write with
    resourceVersion compare-and-swap and the loser retries.

    Event handlers are not retried by kopf, so failures are logged and the
    next event (or the owner's own retry) picks the work up again.
    """
    owner = owning_registry(body)
    if not owner:
        return
    kind = body.get("kind") or "managed resource"
    try:
        run_reconcile(namespace, owner, logger)
    except OperatorError as e:
        logger.warning(
            f"Reconcile of modelregistry {namespace}/{owner} after {kind} "
            f"{event.get('type', '').lower()} event failed: {e}"
        )
