"""
Reconcile driver for ModelRegistry resources.

One call converges one registry:
  1. Load the registry (gone → done)
  2. Add the finalizer token on first sight
  3. Deletion timestamp set → run finalizer operations, done
  4. Default the spec, render + apply ServiceAccount → Service → Deployment
  5. Persist Progressing / Available conditions
  6. Ask for a requeue if anything was created or updated, so the next
     cycle can report the converged status

Nothing is cached between calls; every call starts from a fresh read.
"""

import logging
from typing import Optional

from pydantic import ValidationError

from registry_operator import metrics
from registry_operator.apply import OperationResult, create_or_update
from registry_operator.conditions import update_registry_status
from registry_operator.config import settings
from registry_operator.errors import NotFoundError, RenderError
from registry_operator.finalizer import ensure_finalizer, finalize_registry, has_finalizer, is_deleting
from registry_operator.models import ModelRegistrySpec, ObjectKey, ReconcileContext, ReconcileResult
from registry_operator.renderer import RegistryParams

logger = logging.getLogger("model-registry-operator")


class ModelRegistryReconciler:
    def __init__(self, store, renderer, notifier, enable_webhooks: Optional[bool] = None):
        self.store = store
        self.renderer = renderer
        self.notifier = notifier
        self.enable_webhooks = settings.ENABLE_WEBHOOKS if enable_webhooks is None else enable_webhooks

    def reconcile(self, key: ObjectKey, ctx: ReconcileContext) -> ReconcileResult:
        log = ctx.logger

        try:
            registry = self.store.get(settings.CRD_KIND, key, ctx)
        except NotFoundError:
            log.info("modelregistry resource not found. Ignoring since object must be deleted")
            return ReconcileResult(requeue=False)

        if not has_finalizer(registry) and not is_deleting(registry):
            registry = ensure_finalizer(self.store, registry, ctx)

        if is_deleting(registry):
            if has_finalizer(registry):
                requeue = finalize_registry(self.store, registry, self.notifier, ctx)
                return ReconcileResult(requeue=requeue)
            return ReconcileResult(requeue=False)

        try:
            spec = ModelRegistrySpec.model_validate(registry.get("spec") or {})
        except ValidationError as e:
            raise RenderError(f"invalid spec for modelregistry {key}: {e}") from e
        if not self.enable_webhooks:
            spec.default()

        params = RegistryParams(name=key.name, namespace=key.namespace, spec=spec)
        result = self.update_registry_resources(params, registry, ctx)
        log.info(f"service reconciled, status {result.value}")
        self.notifier.log_result(registry, result)

        update_registry_status(self.store, settings.CRD_KIND, key, result, ctx)
        log.info("status reconciled")

        # requeue to update status
        return ReconcileResult(requeue=result != OperationResult.UNCHANGED)

    def update_registry_resources(self, params: RegistryParams, registry: dict,
                                  ctx: ReconcileContext) -> OperationResult:
        """Apply the managed resources in dependency order; the last significant result wins."""
        result = OperationResult.UNCHANGED
        for render in (self.renderer.render_service_account,
                       self.renderer.render_service,
                       self.renderer.render_deployment):
            intended = render(params, ctx)
            self.store.set_owner_link(intended, registry)
            step = create_or_update(self.store, intended, ctx)
            metrics.record_operation(intended["kind"], step.value)
            if step != OperationResult.UNCHANGED:
                result = step
        return result
