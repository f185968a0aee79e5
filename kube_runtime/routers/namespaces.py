"""
Namespace and network policy API routes.
"""

import logging

from fastapi import APIRouter, Depends, Request

from kube_runtime.config import settings
from kube_runtime.dependencies import get_runtime, limiter
from kube_runtime.metrics import observe
from kube_runtime.models import (
    ErrorResponse, Namespace, NamespaceRequest, NetworkPolicy, NetworkPolicyRequest,
)
from kube_runtime.services.runtime import KubernetesRuntime

logger = logging.getLogger("namespaces_api")

router = APIRouter(prefix="/namespaces", tags=["namespaces"])


@router.post("", status_code=201, responses={409: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
def create_namespace_endpoint(req: NamespaceRequest, request: Request,
                              runtime: KubernetesRuntime = Depends(get_runtime)):
    with observe("create", "namespace"):
        runtime.create(Namespace(name=req.name))
    return {"message": f"Namespace '{req.name}' created", "name": req.name}


@router.delete("/{name}", responses={404: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
def delete_namespace_endpoint(name: str, request: Request,
                              runtime: KubernetesRuntime = Depends(get_runtime)):
    """Delete a namespace (cascades to everything in it)."""
    with observe("delete", "namespace"):
        runtime.delete(Namespace(name=name))
    return {"message": f"Namespace '{name}' deletion initiated", "status": "accepted"}


@router.post("/{namespace}/networkpolicies", status_code=201,
             responses={409: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
def create_network_policy_endpoint(namespace: str, req: NetworkPolicyRequest, request: Request,
                                   runtime: KubernetesRuntime = Depends(get_runtime)):
    policy = NetworkPolicy(name=req.name, namespace=namespace, allowed_labels=req.allowed_labels)
    with observe("create", "networkpolicy"):
        runtime.create(policy)
    return {"message": f"Network policy '{req.name}' created", "namespace": namespace}


@router.put("/{namespace}/networkpolicies/{name}", responses={404: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
def update_network_policy_endpoint(namespace: str, name: str, req: NetworkPolicyRequest,
                                   request: Request,
                                   runtime: KubernetesRuntime = Depends(get_runtime)):
    policy = NetworkPolicy(name=name, namespace=namespace, allowed_labels=req.allowed_labels)
    with observe("update", "networkpolicy"):
        runtime.update(policy)
    return {"message": f"Network policy '{name}' updated", "namespace": namespace}


@router.delete("/{namespace}/networkpolicies/{name}", responses={404: {"model": ErrorResponse}})
@limiter.limit(settings.RATE_LIMIT)
def delete_network_policy_endpoint(namespace: str, name: str, request: Request,
                                   runtime: KubernetesRuntime = Depends(get_runtime)):
    with observe("delete", "networkpolicy"):
        runtime.delete(NetworkPolicy(name=name, namespace=namespace))
    return {"message": f"Network policy '{name}' deleted", "namespace": namespace}
