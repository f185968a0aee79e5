"""
Pydantic models for runtime resources, call options and API payloads.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Literal
from enum import Enum
from datetime import datetime

from kube_runtime.config import settings


class ServiceStatus(str, Enum):
    UNKNOWN = "unknown"
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


class ResourceType(str, Enum):
    NAMESPACE = "namespace"
    NETWORK_POLICY = "networkpolicy"
    SERVICE = "service"


# =========================================================================
# Resources
# =========================================================================

class Namespace(BaseModel):
    """A cluster namespace."""
    kind: Literal[ResourceType.NAMESPACE] = ResourceType.NAMESPACE
    name: str


class NetworkPolicy(BaseModel):
    """An ingress policy admitting traffic from namespaces with the given labels."""
    kind: Literal[ResourceType.NETWORK_POLICY] = ResourceType.NETWORK_POLICY
    name: str
    namespace: str = settings.DEFAULT_NAMESPACE
    allowed_labels: Dict[str, str] = Field(default_factory=dict)


class Service(BaseModel):
    """A logical service: one name + version workload."""
    kind: Literal[ResourceType.SERVICE] = ResourceType.SERVICE
    name: str
    version: str = ""
    source: str = ""
    metadata: Dict[str, str] = Field(default_factory=dict)
    status: ServiceStatus = ServiceStatus.UNKNOWN
    error: Optional[str] = None


# =========================================================================
# Options
# =========================================================================

class RuntimeOptions(BaseModel):
    """Instance-wide defaults applied to create calls."""
    model_config = ConfigDict(frozen=True)

    type: str = settings.RUNTIME_TYPE
    image: str = settings.RUNTIME_IMAGE
    source: str = settings.RUNTIME_SOURCE


class CreateOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    namespace: str = settings.DEFAULT_NAMESPACE
    type: str = ""
    image: str = ""
    source: str = ""
    secrets: Dict[str, str] = Field(default_factory=dict)
    env: Dict[str, str] = Field(default_factory=dict)
    command: List[str] = Field(default_factory=list)
    args: List[str] = Field(default_factory=list)


class ReadOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    service: str = ""
    version: str = ""
    type: str = ""
    namespace: str = settings.DEFAULT_NAMESPACE


class UpdateOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    namespace: str = settings.DEFAULT_NAMESPACE


class DeleteOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    namespace: str = settings.DEFAULT_NAMESPACE


class LogsOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    stream: bool = False
    count: int = Field(default=0, ge=0)
    since: Optional[datetime] = None
    namespace: str = settings.DEFAULT_NAMESPACE


class LogRecord(BaseModel):
    message: str
    metadata: Dict[str, str] = Field(default_factory=dict)


# =========================================================================
# API payloads
# =========================================================================

class ServiceCreateRequest(BaseModel):
    """Request to run a new service."""
    name: str = Field(..., min_length=1, max_length=200, examples=["api"])
    version: str = Field(default="latest", max_length=100, examples=["v1"])
    source: str = ""
    metadata: Dict[str, str] = Field(default_factory=dict)
    namespace: str = settings.DEFAULT_NAMESPACE
    type: str = ""
    image: str = ""
    secrets: Dict[str, str] = Field(default_factory=dict)
    env: Dict[str, str] = Field(default_factory=dict)
    command: List[str] = Field(default_factory=list)
    args: List[str] = Field(default_factory=list)


class ServiceUpdateRequest(BaseModel):
    version: str = ""
    metadata: Dict[str, str] = Field(default_factory=dict)
    namespace: str = settings.DEFAULT_NAMESPACE


class ServiceListResponse(BaseModel):
    services: List[Service]
    total: int


class NamespaceRequest(BaseModel):
    name: str = Field(..., pattern=r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$", max_length=63)


class NetworkPolicyRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=253)
    allowed_labels: Dict[str, str] = Field(default_factory=dict)


class LogsResponse(BaseModel):
    service: str
    records: List[LogRecord]


class ErrorResponse(BaseModel):
    detail: str
    code: str = "UNKNOWN_ERROR"
