"""
Pydantic models for API request/response validation.
"""
from pydantic import BaseModel, Field
from typing import Optional, List

from registry_operator.models import Condition, ModelRegistrySpec


class RegistryCreateRequest(BaseModel):
    """Request to create a new model registry."""
    name: str = Field(
        ...,
        min_length=3,
        max_length=63,
        pattern=r"^[a-z][a-z0-9-]*[a-z0-9]$",
        description="Registry name (lowercase, alphanumeric with hyphens, 3-63 chars)",
        examples=["demo", "team-registry"],
    )
    namespace: Optional[str] = Field(
        default=None,
        max_length=63,
        description="Target namespace (defaults to DEFAULT_NAMESPACE)",
    )
    spec: ModelRegistrySpec = Field(default_factory=ModelRegistrySpec)


class RegistryResponse(BaseModel):
    """Registry details with its reconciled status."""
    name: str
    namespace: str
    phase: str = "Pending"
    available: bool = False
    deleting: bool = False
    createdAt: Optional[str] = None
    spec: ModelRegistrySpec = Field(default_factory=ModelRegistrySpec)
    conditions: List[Condition] = []


class RegistryListResponse(BaseModel):
    registries: List[RegistryResponse]
    total: int


class ErrorResponse(BaseModel):
    detail: str
    code: str = "UNKNOWN_ERROR"
