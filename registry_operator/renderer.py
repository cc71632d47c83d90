"""
Desired-state renderer — expands Jinja2 manifest templates into objects.

Each managed kind has its own entry point (`render_service_account`,
`render_service`, `render_deployment`) that checks the rendered kind, so
callers get back exactly the object they asked for or a RenderError.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import jinja2
import yaml

from registry_operator.config import settings
from registry_operator.errors import RenderError
from registry_operator.models import ModelRegistrySpec, ReconcileContext

logger = logging.getLogger("model-registry-operator")

SERVICE_ACCOUNT_TEMPLATE = "serviceaccount.yaml.j2"
SERVICE_TEMPLATE = "service.yaml.j2"
DEPLOYMENT_TEMPLATE = "deployment.yaml.j2"


@dataclass
class RegistryParams:
    """Template parameters: identity of the registry plus its (defaulted) spec."""
    name: str
    namespace: str
    spec: ModelRegistrySpec

    def as_context(self) -> dict:
        return {
            "name": self.name,
            "namespace": self.namespace,
            "spec": self.spec.model_dump(exclude_none=True),
            "storage_backend": self.spec.storage_backend,
            "managed_by": settings.OPERATOR_NAME,
        }


class TemplateRenderer:
    def __init__(self, templates_dir: Optional[str] = None):
        templates_dir = templates_dir or settings.TEMPLATES_DIR
        if templates_dir:
            loader = jinja2.FileSystemLoader(templates_dir)
        else:
            loader = jinja2.PackageLoader("registry_operator", "templates")
        self.env = jinja2.Environment(
            loader=loader,
            undefined=jinja2.StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def render(self, template_name: str, params: RegistryParams, ctx: ReconcileContext) -> dict:
        """Execute the named template and parse the result into an object."""
        ctx.timeout()
        try:
            text = self.env.get_template(template_name).render(**params.as_context())
        except jinja2.TemplateError as e:
            raise RenderError(f"error parsing template {template_name}: {e}") from e
        try:
            obj = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise RenderError(
                f"error creating object from {template_name} for model registry "
                f"{params.name} in namespace {params.namespace}: {e}"
            ) from e
        if not isinstance(obj, dict) or "kind" not in obj or "metadata" not in obj:
            raise RenderError(f"template {template_name} did not produce a Kubernetes object")
        return obj

    def _render_kind(self, kind: str, template_name: str, params: RegistryParams,
                     ctx: ReconcileContext) -> dict:
        obj = self.render(template_name, params, ctx)
        if obj["kind"] != kind:
            raise RenderError(f"template {template_name} rendered {obj['kind']}, expected {kind}")
        return obj

    def render_service_account(self, params: RegistryParams, ctx: ReconcileContext) -> dict:
        return self._render_kind("ServiceAccount", SERVICE_ACCOUNT_TEMPLATE, params, ctx)

    def render_service(self, params: RegistryParams, ctx: ReconcileContext) -> dict:
        return self._render_kind("Service", SERVICE_TEMPLATE, params, ctx)

    def render_deployment(self, params: RegistryParams, ctx: ReconcileContext) -> dict:
        return self._render_kind("Deployment", DEPLOYMENT_TEMPLATE, params, ctx)
