"""
Model Registry intent API.

FastAPI front end for ModelRegistry resources. Writes registries into the
cluster and reads back the conditions the operator reports; it never touches
the managed ServiceAccount, Service or Deployment itself.

Routes:
  /api/registries   registry CRUD (rate limited)
  /health           process liveness
  /ready            Kubernetes API reachability
  /metrics          Prometheus exposition
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from kubernetes.client import ApiException
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from registry_api.config import settings
from registry_api.routers.registries import limiter, router as registries_router, update_gauges
from registry_api.services import kubernetes_service
from registry_operator import __version__

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("registry-api")

API_VERSION = f"{settings.CRD_GROUP}/{settings.CRD_VERSION}"


def _utcnow() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"Registry API {__version__} serving {settings.CRD_KIND} ({API_VERSION}), "
        f"default namespace {settings.DEFAULT_NAMESPACE}, rate limit {settings.RATE_LIMIT}"
    )
    yield
    logger.info("Registry API stopped")


app = FastAPI(
    title="Model Registry API",
    description="Create, inspect and delete ModelRegistry resources",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(registries_router, prefix="/api")


@app.get("/health")
async def health():
    return {"status": "healthy", "timestamp": _utcnow(), "version": __version__}


@app.get("/ready")
async def ready():
    """Ready once registries can be listed in the default namespace."""
    try:
        kubernetes_service.list_registries(namespace=settings.DEFAULT_NAMESPACE)
    except Exception as e:
        logger.warning(f"Readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "unavailable", "detail": str(e)})
    return {"status": "ready", "resource": API_VERSION}


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    try:
        update_gauges()
    except Exception as e:
        logger.warning(f"Failed to refresh registry gauges: {e}")
    return PlainTextResponse(content=generate_latest().decode("utf-8"), media_type=CONTENT_TYPE_LATEST)


@app.exception_handler(ApiException)
async def kubernetes_exception_handler(request: Request, exc: ApiException):
    logger.error(f"Kubernetes API error on {request.method} {request.url.path}: {exc.status} {exc.reason}")
    return JSONResponse(
        status_code=502,
        content={"detail": f"Kubernetes API error: {exc.reason}", "code": "KUBERNETES_ERROR"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def run():
    uvicorn.run("registry_api.main:app", host=settings.API_HOST, port=settings.API_PORT,
                log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
