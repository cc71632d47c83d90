"""
Typed models for the ModelRegistry custom resource and the engine's call context.

Field names follow the CRD wire format (camelCase) so that `model_dump()`
output can be written back to the API server unchanged.
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from registry_operator.config import settings
from registry_operator.errors import ReconcileCancelled

DEFAULT_REST_PORT = 8080
DEFAULT_GRPC_PORT = 9090
DEFAULT_POSTGRES_PORT = 5432
DEFAULT_MYSQL_PORT = 3306
DEFAULT_CPU = "100m"
DEFAULT_MEMORY = "256Mi"


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class Condition(BaseModel):
    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    lastTransitionTime: Optional[str] = None


class ResourceList(BaseModel):
    cpu: Optional[str] = None
    memory: Optional[str] = None


class ResourceRequirements(BaseModel):
    requests: Optional[ResourceList] = None
    limits: Optional[ResourceList] = None


class RestSpec(BaseModel):
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    image: Optional[str] = None
    resources: Optional[ResourceRequirements] = None


class GrpcSpec(BaseModel):
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    image: Optional[str] = None
    resources: Optional[ResourceRequirements] = None


class SecretKeyValue(BaseModel):
    name: str
    key: str


class PostgresConfig(BaseModel):
    host: str
    port: Optional[int] = None
    database: str
    username: Optional[str] = None
    passwordSecret: Optional[SecretKeyValue] = None
    sslMode: Optional[str] = None


class MySQLConfig(BaseModel):
    host: str
    port: Optional[int] = None
    database: str
    username: Optional[str] = None
    passwordSecret: Optional[SecretKeyValue] = None


class ModelRegistrySpec(BaseModel):
    """Desired state of a model registry."""
    replicas: Optional[int] = Field(default=None, ge=0)
    rest: RestSpec = Field(default_factory=RestSpec)
    grpc: GrpcSpec = Field(default_factory=GrpcSpec)
    postgres: Optional[PostgresConfig] = None
    mysql: Optional[MySQLConfig] = None

    @property
    def storage_backend(self) -> Optional[str]:
        if self.postgres is not None:
            return "postgres"
        if self.mysql is not None:
            return "mysql"
        return None

    def default(self) -> "ModelRegistrySpec":
        """
        Fill unset fields with their defaults, in place.

        Mirrors what the defaulting admission webhook does when it is
        installed, so the operator only calls this with webhooks disabled.
        """
        if self.replicas is None:
            self.replicas = 1

        if self.rest.port is None:
            self.rest.port = DEFAULT_REST_PORT
        if not self.rest.image:
            self.rest.image = settings.REST_IMAGE
        self.rest.resources = _default_resources(self.rest.resources)

        if self.grpc.port is None:
            self.grpc.port = DEFAULT_GRPC_PORT
        if not self.grpc.image:
            self.grpc.image = settings.GRPC_IMAGE
        self.grpc.resources = _default_resources(self.grpc.resources)

        if self.postgres is not None:
            if self.postgres.port is None:
                self.postgres.port = DEFAULT_POSTGRES_PORT
            if not self.postgres.sslMode:
                self.postgres.sslMode = "disable"
        if self.mysql is not None and self.mysql.port is None:
            self.mysql.port = DEFAULT_MYSQL_PORT
        return self


def _default_resources(resources: Optional[ResourceRequirements]) -> ResourceRequirements:
    if resources is None:
        resources = ResourceRequirements()
    for attr in ("requests", "limits"):
        rl = getattr(resources, attr) or ResourceList()
        rl.cpu = rl.cpu or DEFAULT_CPU
        rl.memory = rl.memory or DEFAULT_MEMORY
        setattr(resources, attr, rl)
    return resources


@dataclass(frozen=True)
class ObjectKey:
    namespace: str
    name: str

    @classmethod
    def from_object(cls, obj: dict) -> "ObjectKey":
        meta = obj.get("metadata", {})
        return cls(namespace=meta.get("namespace", ""), name=meta.get("name", ""))

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class ReconcileContext:
    """
    Per-attempt context passed explicitly through every engine call.

    Carries the per-object logger and the attempt deadline. Store and
    render calls ask for `timeout()` before blocking; once the deadline
    has passed the attempt is abandoned with ReconcileCancelled.
    """
    logger: logging.Logger
    deadline: Optional[float] = None
    started: float = field(default_factory=time.monotonic)

    @classmethod
    def with_timeout(cls, logger: logging.Logger, seconds: Optional[float]) -> "ReconcileContext":
        deadline = time.monotonic() + seconds if seconds else None
        return cls(logger=logger, deadline=deadline)

    def timeout(self) -> Optional[float]:
        if self.deadline is None:
            return None
        remaining = self.deadline - time.monotonic()
        if remaining <= 0:
            raise ReconcileCancelled("reconcile deadline exceeded")
        return remaining

    def elapsed(self) -> float:
        return time.monotonic() - self.started


@dataclass
class ReconcileResult:
    requeue: bool = False
