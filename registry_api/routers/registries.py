"""
Registry API routes — CRUD endpoints for ModelRegistry CRDs.

Features:
  - Rate limiting per-IP via slowapi
  - Prometheus metrics exposition
  - Deletion is asynchronous: the operator's finalizer runs cleanup first
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from prometheus_client import Counter, Gauge
from slowapi import Limiter
from slowapi.util import get_remote_address

from registry_api.config import settings
from registry_api.models import (
    RegistryCreateRequest, RegistryResponse, RegistryListResponse, ErrorResponse,
)
from registry_api.services import kubernetes_service

logger = logging.getLogger("registries")

router = APIRouter(prefix="/registries", tags=["registries"])
limiter = Limiter(key_func=get_remote_address)

# --- Prometheus metrics ---
REGISTRIES_CREATED = Counter(
    "registry_api_registries_created_total",
    "Total registries created through the API",
    ["namespace"],
)
REGISTRIES_DELETED = Counter(
    "registry_api_registries_deleted_total",
    "Total registry deletions requested through the API",
)
API_FAILURES = Counter(
    "registry_api_failures_total",
    "Total failed Kubernetes API calls",
)
REGISTRIES_TOTAL = Gauge(
    "registry_api_registries",
    "Current registries by phase",
    ["phase"],
)

PHASES = ["Available", "Unavailable", "Progressing", "Pending", "Deleting"]


def update_gauges():
    counts = kubernetes_service.count_registries_by_phase()
    for phase in PHASES:
        REGISTRIES_TOTAL.labels(phase=phase).set(counts.get(phase, 0))


# =========================================================================
# REST Endpoints
# =========================================================================

@router.post("", response_model=RegistryResponse, status_code=201,
             responses={429: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
async def create_registry_endpoint(req: RegistryCreateRequest, request: Request):
    """Create a new registry. Idempotent — returns the existing registry if the name matches."""
    namespace = req.namespace or settings.DEFAULT_NAMESPACE
    try:
        registry = kubernetes_service.create_registry(namespace, req.name, req.spec)
    except Exception as e:
        API_FAILURES.inc()
        logger.error(f"Failed to create registry {namespace}/{req.name}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to create registry: {str(e)}")
    REGISTRIES_CREATED.labels(namespace=namespace).inc()
    return registry


@router.get("", response_model=RegistryListResponse)
@limiter.limit(settings.RATE_LIMIT)
async def list_registries_endpoint(
    request: Request,
    namespace: Optional[str] = Query(None, description="Filter by namespace"),
):
    """List registries, optionally restricted to one namespace."""
    registries = kubernetes_service.list_registries(namespace=namespace)
    return RegistryListResponse(registries=registries, total=len(registries))


@router.get("/{namespace}/{name}", response_model=RegistryResponse,
            responses={404: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
async def get_registry_endpoint(namespace: str, name: str, request: Request):
    """Get a specific registry with its status conditions."""
    registry = kubernetes_service.get_registry(namespace, name)
    if not registry:
        raise HTTPException(status_code=404, detail=f"Registry '{namespace}/{name}' not found")
    return registry


@router.delete("/{namespace}/{name}", status_code=202,
               responses={404: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
async def delete_registry_endpoint(namespace: str, name: str, request: Request):
    """Delete a registry. Returns 202 Accepted (finalizer cleanup runs asynchronously)."""
    deleted = kubernetes_service.delete_registry(namespace, name)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Registry '{namespace}/{name}' not found")
    REGISTRIES_DELETED.inc()
    return {"message": f"Registry '{namespace}/{name}' deletion initiated", "status": "accepted"}
