"""
Service credentials stored as opaque Kubernetes secrets.
"""

import base64
import logging
from typing import Dict

from kubernetes import client

from kube_runtime.models import Service
from kube_runtime.services.kube_client import format_name

logger = logging.getLogger("credentials")


def credentials_name(service: Service) -> str:
    return format_name(f"{service.name}-{service.version}-credentials")


def build_secret(service: Service, secrets: Dict[str, str], namespace: str) -> client.V1Secret:
    data = {
        key: base64.b64encode(value.encode("utf-8")).decode("ascii")
        for key, value in secrets.items()
    }
    return client.V1Secret(
        api_version="v1",
        kind="Secret",
        type="Opaque",
        data=data,
        metadata=client.V1ObjectMeta(
            name=credentials_name(service),
            namespace=namespace,
            labels={"name": format_name(service.name), "version": format_name(service.version)},
        ),
    )


def create_credentials(kube, service: Service, secrets: Dict[str, str], namespace: str):
    """Create the credentials secret for a service. No retry."""
    secret = build_secret(service, secrets, namespace)
    kube.create("secret", secret, namespace=namespace)
    logger.debug(f"Generated auth credentials for service {service.name}")
    return secret


def delete_credentials(kube, service: Service, namespace: str):
    kube.delete("secret", credentials_name(service), namespace=namespace)
