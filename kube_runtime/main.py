"""
Kubernetes Runtime — HTTP API

Main entrypoint. Sets up FastAPI with:
  - CORS
  - Rate limiting (slowapi)
  - Prometheus metrics (/metrics)
  - Health check (/health) with runtime state
  - Service routes (/api/services)
  - Namespace + network policy routes (/api/namespaces)
  - Domain errors mapped to HTTP status codes
"""

import logging
import uvicorn
from datetime import datetime, timezone
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from kube_runtime.config import settings
from kube_runtime.dependencies import get_runtime, limiter, shutdown_runtime
from kube_runtime.errors import AlreadyExists, InvalidResource, NotFound, UpstreamError
from kube_runtime.metrics import init_metrics
from kube_runtime.routers.namespaces import router as namespaces_router
from kube_runtime.routers.services import router as services_router
from kube_runtime.services.runtime import KubernetesRuntime

VERSION = "1.0.0"

# --- Logging ---
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("runtime-api")


# --- Lifespan ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Kubernetes Runtime API starting...")
    init_metrics()
    yield
    shutdown_runtime()
    logger.info("Kubernetes Runtime API shutting down...")


# --- FastAPI app ---
app = FastAPI(
    title="Kubernetes Runtime API",
    description="Run and manage services, namespaces and network policies on Kubernetes",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)

# --- Rate Limiting ---
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# --- Routers ---
app.include_router(services_router, prefix="/api")
app.include_router(namespaces_router, prefix="/api")


# --- Health check ---
@app.get("/health")
def health(runtime: KubernetesRuntime = Depends(get_runtime)):
    """Health check with runtime state."""
    return {
        "status": "healthy" if runtime.running else "stopped",
        "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "runtime": str(runtime),
        "namespaceCache": "populated" if runtime.namespaces.cache.populated else "empty",
        "version": VERSION,
    }


# --- Prometheus metrics endpoint ---
@app.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    """Expose Prometheus metrics."""
    return PlainTextResponse(
        content=generate_latest().decode("utf-8"),
        media_type=CONTENT_TYPE_LATEST,
    )


# --- Domain errors ---
def _error(status_code: int, code: str, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": code})


@app.exception_handler(InvalidResource)
async def invalid_resource_handler(request: Request, exc: InvalidResource):
    return _error(400, "INVALID_RESOURCE", exc)


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return _error(404, "NOT_FOUND", exc)


@app.exception_handler(AlreadyExists)
async def already_exists_handler(request: Request, exc: AlreadyExists):
    return _error(409, "ALREADY_EXISTS", exc)


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    logger.error(f"Kubernetes API call failed: {exc}")
    return _error(502, "UPSTREAM_ERROR", exc)


# --- Global exception handler ---
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


def run():
    uvicorn.run(
        "kube_runtime.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=False,
    )


# --- Entry point ---
if __name__ == "__main__":
    run()
