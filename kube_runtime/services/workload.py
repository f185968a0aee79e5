"""
Native objects backing a logical service: one Deployment and one Service,
sharing the name/version/type labels the correlator joins on.
"""

import logging
from typing import Dict

from kubernetes import client

from kube_runtime.config import settings
from kube_runtime.errors import NotFound
from kube_runtime.models import CreateOptions, Service, ServiceStatus
from kube_runtime.services.credentials import credentials_name
from kube_runtime.services.kube_client import format_name

logger = logging.getLogger("workload")

# label carrying the runtime type of a workload, e.g. micro=service
TYPE_LABEL = "micro"
PORT_NAME = "service-port"


def workload_name(service: Service) -> str:
    if service.version:
        return format_name(f"{service.name}-{service.version}")
    return format_name(service.name)


def workload_labels(service: Service, type_: str) -> Dict[str, str]:
    labels = {
        "name": format_name(service.name),
        "version": format_name(service.version),
    }
    if type_:
        labels[TYPE_LABEL] = type_
    return labels


def build_deployment(service: Service, options: CreateOptions, labels: Dict[str, str],
                     owner: str, port: int) -> client.V1Deployment:
    annotations = dict(service.metadata)
    # provenance read back by the correlator
    annotations.update({
        "name": service.name,
        "version": service.version,
        "source": service.source,
        "owner": owner,
        "group": owner,
    })

    env = [client.V1EnvVar(name=k, value=v) for k, v in sorted(options.env.items())]
    env_from = None
    if options.secrets:
        env_from = [client.V1EnvFromSource(
            secret_ref=client.V1SecretEnvSource(name=credentials_name(service))
        )]

    container = client.V1Container(
        name=format_name(service.name),
        image=options.image,
        image_pull_policy="IfNotPresent",
        command=list(options.command) or None,
        args=list(options.args) or None,
        env=env or None,
        env_from=env_from,
        ports=[client.V1ContainerPort(name=PORT_NAME, container_port=port)],
    )

    return client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=client.V1ObjectMeta(
            name=workload_name(service),
            namespace=options.namespace,
            labels=dict(labels),
            annotations=annotations,
        ),
        spec=client.V1DeploymentSpec(
            replicas=1,
            selector=client.V1LabelSelector(match_labels=dict(labels)),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=dict(labels), annotations={}),
                spec=client.V1PodSpec(containers=[container]),
            ),
        ),
    )


def build_service(service: Service, options: CreateOptions, labels: Dict[str, str],
                  port: int) -> client.V1Service:
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(
            name=workload_name(service),
            namespace=options.namespace,
            labels=dict(labels),
        ),
        spec=client.V1ServiceSpec(
            selector=dict(labels),
            ports=[client.V1ServicePort(name=PORT_NAME, port=port, target_port=port)],
        ),
    )


class Workload:
    """The Deployment + Service pair for one logical service."""

    def __init__(self, service: Service, options: CreateOptions,
                 owner: str = settings.OWNER_LABEL, port: int = settings.SERVICE_PORT):
        self.service = service
        self.labels = workload_labels(service, options.type)
        self.deployment = build_deployment(service, options, self.labels, owner, port)
        self.kservice = build_service(service, options, self.labels, port)

    @property
    def name(self) -> str:
        return self.deployment.metadata.name

    def _fail(self, err: Exception):
        self.service.status = ServiceStatus.ERROR
        self.service.error = str(err)

    def start(self, kube, namespace: str):
        """Create the deployment, then the service in front of it."""
        # no deployment, no service
        try:
            kube.create("deployment", self.deployment, namespace=namespace)
        except Exception as e:
            logger.error(f"Runtime failed to create deployment {self.name}: {e}")
            self._fail(e)
            raise

        try:
            kube.create("service", self.kservice, namespace=namespace)
        except Exception as e:
            logger.error(f"Runtime failed to create service {self.name}: {e}")
            self._fail(e)
            raise

        self.service.status = ServiceStatus.RUNNING
        logger.info(f"Service {self.service.name}:{self.service.version} started in {namespace}")

    def stop(self, kube, namespace: str):
        """Delete the service, then the deployment behind it."""
        for kind in ("service", "deployment"):
            try:
                kube.delete(kind, self.name, namespace=namespace)
            except NotFound:
                raise
            except Exception as e:
                logger.error(f"Runtime failed to delete {kind} {self.name}: {e}")
                self._fail(e)
                raise

        self.service.status = ServiceStatus.STOPPED
        logger.info(f"Service {self.service.name}:{self.service.version} stopped in {namespace}")
