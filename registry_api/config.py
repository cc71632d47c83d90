"""
Intent API settings, read once from the environment.

The custom resource identity comes from the operator's settings so both
processes always agree on group, version and plural.
"""
import os
from dataclasses import dataclass

from registry_operator.config import settings as operator_settings


@dataclass(frozen=True)
class Settings:
    # Cluster access
    KUBECONFIG: str = os.environ.get("KUBECONFIG", "")
    IN_CLUSTER: bool = os.environ.get("IN_CLUSTER", "false").lower() == "true"
    DEFAULT_NAMESPACE: str = os.environ.get("DEFAULT_NAMESPACE", "default")

    CRD_GROUP: str = operator_settings.CRD_GROUP
    CRD_VERSION: str = operator_settings.CRD_VERSION
    CRD_PLURAL: str = operator_settings.CRD_PLURAL
    CRD_KIND: str = operator_settings.CRD_KIND

    # Per-client limit on every /api/registries route
    RATE_LIMIT: str = os.environ.get("RATE_LIMIT", "30/minute")

    # Server
    API_HOST: str = os.environ.get("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.environ.get("API_PORT", "8000"))
    CORS_ORIGINS: str = os.environ.get("CORS_ORIGINS", "*")
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").upper()


settings = Settings()
