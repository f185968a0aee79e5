"""
Maps Kubernetes condition types, pod phases and container states onto the
runtime's service status.
"""
from typing import Optional

from kube_runtime.models import ServiceStatus

_STATUS_MAP = {
    "pending": ServiceStatus.STARTING,
    "containercreating": ServiceStatus.STARTING,
    "waiting": ServiceStatus.STARTING,
    "running": ServiceStatus.RUNNING,
    "available": ServiceStatus.RUNNING,
    "succeeded": ServiceStatus.STOPPED,
    "terminated": ServiceStatus.STOPPED,
    "imagepullbackoff": ServiceStatus.ERROR,
    "crashloopbackoff": ServiceStatus.ERROR,
    "error": ServiceStatus.ERROR,
    "failed": ServiceStatus.ERROR,
}


def transform_status(token: Optional[str]) -> ServiceStatus:
    """Transform e.g. 'ContainerCreating' into ServiceStatus.STARTING."""
    if not token:
        return ServiceStatus.UNKNOWN
    return _STATUS_MAP.get(token.lower(), ServiceStatus.UNKNOWN)
