"""
Service correlation: joins independently listed Services, Deployments and
Pods into logical services.

The API server has no multi-kind query, so each kind is listed on its own and
the three views may disagree. The join is a three-map merge keyed by the
(name, version) label pair with a fixed precedence for status:

    pod container state  >  deployment condition  >  service only (unknown)

Pods are applied in pod-name order, so the result does not depend on the
order the API returned the lists in.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Tuple

from kube_runtime.models import Service, ServiceStatus
from kube_runtime.services.status import transform_status
from kube_runtime.services.workload import TYPE_LABEL

logger = logging.getLogger("correlator")

# annotations the runtime writes on deployments it creates
PROVENANCE_ANNOTATIONS = ("name", "version", "source")


@dataclass
class LogicalService:
    """A Service plus the native objects it was built from (used to stage updates)."""
    service: Service
    kservice: Any = None
    kdeploy: Any = None


def _key(obj) -> Tuple[str, str]:
    labels = (obj.metadata.labels if obj.metadata else None) or {}
    return labels.get("name", ""), labels.get("version", "")


def _timestamp(value) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value) if value is not None else ""


def _from_service(kservice) -> LogicalService:
    labels = kservice.metadata.labels or {}
    metadata: Dict[str, str] = {}

    spec = kservice.spec
    if spec is not None and spec.ports:
        metadata["address"] = f"{spec.cluster_ip}:{spec.ports[0].port}"
    metadata["type"] = labels.get(TYPE_LABEL, "")
    metadata.update(kservice.metadata.annotations or {})

    service = Service(
        name=labels.get("name", ""),
        version=labels.get("version", ""),
        metadata=metadata,
    )
    return LogicalService(service=service, kservice=kservice)


def _apply_deployment(svc: LogicalService, kdeploy):
    annotations = dict(kdeploy.metadata.annotations or {})
    service = svc.service

    service.name = annotations.get("name", "")
    service.version = annotations.get("version", "")
    service.source = annotations.get("source", "")
    for key in PROVENANCE_ANNOTATIONS:
        annotations.pop(key, None)
    service.metadata.update(annotations)

    conditions = (kdeploy.status.conditions if kdeploy.status else None) or []
    if conditions:
        service.status = transform_status(conditions[0].type)
        if conditions[0].last_update_time is not None:
            service.metadata["started"] = _timestamp(conditions[0].last_update_time)
    else:
        service.status = ServiceStatus.UNKNOWN

    svc.kdeploy = kdeploy


def _apply_pod(svc: LogicalService, pod):
    status = pod.status
    if status is None or not status.container_statuses:
        return

    result = transform_status(status.phase)
    state = status.container_statuses[0].state
    if state is not None:
        if state.running is not None and state.running.started_at is not None:
            svc.service.metadata["started"] = _timestamp(state.running.started_at)
        if state.waiting is not None:
            result = ServiceStatus.STARTING

    svc.service.status = result


def correlate(services: Iterable, deployments: Iterable, pods: Iterable) -> List[LogicalService]:
    """Join native Services, Deployments and Pods into logical services."""
    by_key: Dict[Tuple[str, str], LogicalService] = {}
    for kservice in services:
        by_key[_key(kservice)] = _from_service(kservice)

    deployed: Dict[Tuple[str, str], LogicalService] = {}
    for kdeploy in deployments:
        key = _key(kdeploy)
        svc = by_key.get(key)
        if svc is None:
            continue
        # not created by this runtime
        if "name" not in (kdeploy.metadata.annotations or {}):
            continue
        _apply_deployment(svc, kdeploy)
        deployed[key] = svc

    for pod in sorted(pods, key=lambda p: (p.metadata.name or "") if p.metadata else ""):
        svc = deployed.get(_key(pod))
        if svc is not None:
            _apply_pod(svc, pod)

    return list(by_key.values())


def get_services(kube, labels: Dict[str, str], namespace: str) -> List[LogicalService]:
    """
    List the three kinds matching labels in a namespace and correlate them.
    Not thread-safe; callers hold the namespace lock.
    """
    services = kube.get("service", labels, namespace=namespace)
    deployments = kube.get("deployment", labels, namespace=namespace)
    pods = kube.get("pod", labels, namespace=namespace)
    logger.debug(
        f"Correlating {len(services)} services, {len(deployments)} deployments, "
        f"{len(pods)} pods in {namespace}"
    )
    return correlate(services, deployments, pods)
