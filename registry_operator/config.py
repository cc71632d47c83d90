"""
Operator configuration — all settings from env vars with sensible defaults.
Follows 12-factor app methodology.
"""
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    # Kubernetes
    KUBECONFIG: str = os.environ.get("KUBECONFIG", "")

    # CRD
    CRD_GROUP: str = "modelregistry.opendatahub.io"
    CRD_VERSION: str = "v1alpha1"
    CRD_PLURAL: str = "modelregistries"
    CRD_KIND: str = "ModelRegistry"
    FINALIZER: str = "modelregistry.opendatahub.io/finalizer"
    LAST_APPLIED_ANNOTATION: str = "modelregistry.opendatahub.io/last-applied"
    OPERATOR_NAME: str = "model-registry-operator"

    # Defaulting (skipped when an admission webhook does it for us)
    ENABLE_WEBHOOKS: bool = os.environ.get("ENABLE_WEBHOOKS", "false").lower() == "true"
    REST_IMAGE: str = os.environ.get("REST_IMAGE", "quay.io/opendatahub/model-registry:latest")
    GRPC_IMAGE: str = os.environ.get(
        "GRPC_IMAGE", "gcr.io/tfx-oss-public/ml_metadata_store_server:1.14.0"
    )

    # Rendering
    TEMPLATES_DIR: str = os.environ.get("TEMPLATES_DIR", "")

    # Reconcile loop
    REQUEUE_DELAY: int = int(os.environ.get("REQUEUE_DELAY", "5"))
    RECONCILE_TIMEOUT: float = float(os.environ.get("RECONCILE_TIMEOUT", "60"))
    MAX_WORKERS: int = int(os.environ.get("MAX_WORKERS", "5"))

    # Observability
    REDIS_URL: str = os.environ.get("REDIS_URL", "")
    METRICS_PORT: int = int(os.environ.get("METRICS_PORT", "8081"))

    @property
    def api_version(self) -> str:
        return f"{self.CRD_GROUP}/{self.CRD_VERSION}"


settings = Settings()
