"""
Service API routes: run, list, update, stop and read logs of services.

Features:
  - Rate limiting per-IP via slowapi
  - Prometheus operation counters
  - Logs as a JSON replay or a live plain-text stream (?stream=true)
"""

import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from kube_runtime.config import settings
from kube_runtime.dependencies import get_runtime, limiter
from kube_runtime.metrics import observe
from kube_runtime.models import (
    ErrorResponse, LogsResponse, Service, ServiceCreateRequest,
    ServiceListResponse, ServiceUpdateRequest,
)
from kube_runtime.services.logs import LogStream
from kube_runtime.services.runtime import KubernetesRuntime

logger = logging.getLogger("services")

router = APIRouter(prefix="/services", tags=["services"])

# seconds a streaming response waits for a record before re-checking the client
POLL_INTERVAL = 1.0


async def _lines(stream: LogStream) -> AsyncIterator[str]:
    """Plain-text lines of a followed stream. Stops the stream when the client goes away."""
    try:
        while True:
            try:
                record = await run_in_threadpool(stream.poll, POLL_INTERVAL)
            except EOFError:
                break
            if record is not None:
                yield record.message + "\n"
    finally:
        stream.stop()


# =========================================================================
# REST Endpoints
# =========================================================================

@router.post("", response_model=Service, status_code=201,
             responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse},
                        502: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
def create_service_endpoint(req: ServiceCreateRequest, request: Request,
                            runtime: KubernetesRuntime = Depends(get_runtime)):
    """Run a service. Provisions its namespace on first use."""
    service = Service(name=req.name, version=req.version, source=req.source, metadata=req.metadata)
    with observe("create", "service"):
        created = runtime.create(
            service,
            namespace=req.namespace,
            type=req.type,
            image=req.image,
            source=req.source,
            secrets=req.secrets,
            env=req.env,
            command=req.command,
            args=req.args,
        )
    logger.info(f"Service {req.name}:{req.version} created in {req.namespace}")
    return created


@router.get("", response_model=ServiceListResponse)
@limiter.limit(settings.RATE_LIMIT)
def list_services_endpoint(
    request: Request,
    service: Optional[str] = Query(None, description="Filter by service name"),
    version: Optional[str] = Query(None, description="Filter by version"),
    type: Optional[str] = Query(None, description="Filter by runtime type"),
    namespace: str = Query(settings.DEFAULT_NAMESPACE),
    runtime: KubernetesRuntime = Depends(get_runtime),
):
    """List services, optionally filtered by name, version and type."""
    with observe("read", "service"):
        services = runtime.read(
            service=service or "",
            version=version or "",
            type=type or "",
            namespace=namespace,
        )
    return ServiceListResponse(services=services, total=len(services))


@router.patch("/{name}", responses={404: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
def update_service_endpoint(name: str, req: ServiceUpdateRequest, request: Request,
                            runtime: KubernetesRuntime = Depends(get_runtime)):
    """Merge metadata into a service and roll its pods."""
    service = Service(name=name, version=req.version, metadata=req.metadata)
    with observe("update", "service"):
        runtime.update(service, namespace=req.namespace)
    return {"message": f"Service '{name}' updated", "status": "accepted"}


@router.delete("/{name}", responses={404: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
def delete_service_endpoint(
    name: str,
    request: Request,
    version: str = Query("latest"),
    namespace: str = Query(settings.DEFAULT_NAMESPACE),
    runtime: KubernetesRuntime = Depends(get_runtime),
):
    """Stop a service and remove its credentials."""
    with observe("delete", "service"):
        runtime.delete(Service(name=name, version=version), namespace=namespace)
    return {"message": f"Service '{name}' deleted", "status": "deleted"}


@router.get("/{name}/logs", response_model=LogsResponse)
@limiter.limit(settings.RATE_LIMIT)
def get_service_logs(
    name: str,
    request: Request,
    namespace: str = Query(settings.DEFAULT_NAMESPACE),
    count: int = Query(0, ge=0, description="Most recent lines across all pods, 0 for all"),
    stream: bool = Query(False, description="Follow the logs as plain text"),
    runtime: KubernetesRuntime = Depends(get_runtime),
):
    """Recent log records of a service, or a live tail with ?stream=true."""
    with observe("logs", "service"):
        logs = runtime.logs(Service(name=name), namespace=namespace, count=count, stream=stream)

    if stream:
        return StreamingResponse(_lines(logs), media_type="text/plain")

    try:
        records = list(logs)
    finally:
        logs.stop()
    if logs.error is not None:
        logger.warning(f"Log replay for {name} ended with error: {logs.error}")
    return LogsResponse(service=name, records=records)
