"""
Kubernetes runtime: one CRUD + logs surface over namespaces, network
policies and services.

Design principles:
  - One entry point per verb, dispatching on resource.kind
  - Per-namespace locking: calls against different namespaces never wait
    on each other; update takes the same lock as create, read and delete
  - No rollback: a multi-step create (namespace -> credentials -> workload)
    or a multi-match update can fail partway, earlier steps stay committed
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, List, Optional

from kubernetes import client

from kube_runtime.config import settings
from kube_runtime.errors import InvalidResource
from kube_runtime.models import (
    CreateOptions, DeleteOptions, LogsOptions, Namespace, NetworkPolicy,
    ReadOptions, ResourceType, RuntimeOptions, Service, UpdateOptions,
)
from kube_runtime.services.correlator import get_services
from kube_runtime.services.credentials import create_credentials, delete_credentials
from kube_runtime.services.kube_client import ClusterClient, format_name
from kube_runtime.services.logs import LogStream, ServiceLogs, replay
from kube_runtime.services.namespaces import NamespaceManager, build_network_policy
from kube_runtime.services.workload import TYPE_LABEL, Workload

logger = logging.getLogger("runtime")


def _expect(resource, cls):
    if not isinstance(resource, cls):
        raise InvalidResource(f"Expected a {cls.__name__}, got {type(resource).__name__}")
    return resource


def _invalid(resource) -> InvalidResource:
    return InvalidResource(f"Unsupported resource kind {getattr(resource, 'kind', None)!r}")


class KubernetesRuntime:
    """Runs services on Kubernetes and manages their namespaces and policies."""

    def __init__(self, kube=None, options: Optional[RuntimeOptions] = None,
                 namespaces: Optional[NamespaceManager] = None):
        self.kube = kube if kube is not None else ClusterClient()
        self.options = options or RuntimeOptions()
        self.namespaces = namespaces or NamespaceManager(self.kube)
        self.port = settings.SERVICE_PORT
        self._running = False
        self._state_lock = threading.Lock()
        # namespace -> [lock, holders and waiters]
        self._locks: Dict[str, list] = {}
        self._locks_guard = threading.Lock()

    def __str__(self) -> str:
        return "kubernetes"

    @contextmanager
    def _locked(self, namespace: str):
        with self._locks_guard:
            entry = self._locks.setdefault(namespace, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[namespace]

    # --- Lifecycle ---

    def init(self, **options):
        """Update the instance-wide defaults (type, image, source)."""
        with self._state_lock:
            self.options = RuntimeOptions(**{**self.options.model_dump(), **options})

    def start(self):
        with self._state_lock:
            self._running = True

    def stop(self):
        with self._state_lock:
            self._running = False

    @property
    def running(self) -> bool:
        with self._state_lock:
            return self._running

    # --- Create ---

    def create(self, resource, **opts) -> Optional[Service]:
        options = CreateOptions(**opts)
        kind = getattr(resource, "kind", None)

        if kind == ResourceType.NAMESPACE:
            namespace = _expect(resource, Namespace)
            with self._locked(namespace.name):
                self.namespaces.create(namespace)
            return None

        if kind == ResourceType.NETWORK_POLICY:
            policy = _expect(resource, NetworkPolicy)
            with self._locked(policy.namespace):
                self.kube.create(
                    "networkpolicy",
                    build_network_policy(policy, self.namespaces.owner),
                    namespace=policy.namespace,
                )
            logger.info(f"Network policy {policy.name} created in {policy.namespace}")
            return None

        if kind == ResourceType.SERVICE:
            return self._create_service(_expect(resource, Service), options)

        raise _invalid(resource)

    def _create_service(self, service: Service, options: CreateOptions) -> Service:
        # work on a copy; the caller's resource keeps its own values
        service = service.model_copy(deep=True)
        if not service.source:
            service.source = options.source or self.options.source

        namespace = format_name(options.namespace)
        options = options.model_copy(update={
            "namespace": namespace,
            "type": options.type or self.options.type,
            "image": options.image or self.options.image,
        })

        with self._locked(namespace):
            self.namespaces.ensure(namespace)

            if options.secrets:
                try:
                    create_credentials(self.kube, service, options.secrets, namespace)
                except Exception as e:
                    logger.warning(f"Error generating auth credentials for service {service.name}: {e}")
                    raise

            Workload(service, options, owner=self.namespaces.owner, port=self.port).start(self.kube, namespace)

        return service

    # --- Read ---

    def read(self, **opts) -> List[Service]:
        """Return every service matching the optional name/version/type filters."""
        options = ReadOptions(**opts)
        labels: Dict[str, str] = {}
        if options.service:
            labels["name"] = format_name(options.service)
        if options.version:
            labels["version"] = format_name(options.version)
        if options.type:
            labels[TYPE_LABEL] = options.type

        namespace = format_name(options.namespace)
        with self._locked(namespace):
            matches = get_services(self.kube, labels, namespace)
        return [match.service for match in matches]

    # --- Update ---

    def update(self, resource, **opts):
        options = UpdateOptions(**opts)
        kind = getattr(resource, "kind", None)

        if kind == ResourceType.NAMESPACE:
            # namespaces are immutable through the runtime
            _expect(resource, Namespace)
            return

        if kind == ResourceType.NETWORK_POLICY:
            policy = _expect(resource, NetworkPolicy)
            with self._locked(policy.namespace):
                self.kube.update(
                    "networkpolicy",
                    build_network_policy(policy, self.namespaces.owner),
                    namespace=policy.namespace,
                )
            logger.info(f"Network policy {policy.name} updated in {policy.namespace}")
            return

        if kind == ResourceType.SERVICE:
            self._update_service(_expect(resource, Service), format_name(options.namespace))
            return

        raise _invalid(resource)

    def _update_service(self, service: Service, namespace: str):
        labels: Dict[str, str] = {}
        if service.name:
            labels["name"] = format_name(service.name)
        if service.version:
            labels["version"] = format_name(service.version)

        with self._locked(namespace):
            for match in get_services(self.kube, labels, namespace):
                kdeploy = match.kdeploy
                if kdeploy is None:
                    logger.warning(
                        f"Skipping update of {match.service.name}:{match.service.version}: no deployment"
                    )
                    continue

                if kdeploy.metadata.annotations is None:
                    kdeploy.metadata.annotations = {}
                kdeploy.metadata.annotations.update(service.metadata)

                template = kdeploy.spec.template
                if template.metadata is None:
                    template.metadata = client.V1ObjectMeta()
                if template.metadata.annotations is None:
                    template.metadata.annotations = {}
                # a changed pod template rolls the deployment
                template.metadata.annotations["updated"] = str(int(time.time()))

                self.kube.update("deployment", kdeploy, namespace=namespace)
                logger.info(f"Service {match.service.name}:{match.service.version} updated in {namespace}")

    # --- Delete ---

    def delete(self, resource, **opts):
        options = DeleteOptions(**opts)
        kind = getattr(resource, "kind", None)

        if kind == ResourceType.NAMESPACE:
            namespace = _expect(resource, Namespace)
            with self._locked(namespace.name):
                self.namespaces.delete(namespace)
            return

        if kind == ResourceType.NETWORK_POLICY:
            policy = _expect(resource, NetworkPolicy)
            with self._locked(policy.namespace):
                self.kube.delete("networkpolicy", policy.name, namespace=policy.namespace)
            logger.info(f"Network policy {policy.name} deleted from {policy.namespace}")
            return

        if kind == ResourceType.SERVICE:
            self._delete_service(_expect(resource, Service), format_name(options.namespace))
            return

        raise _invalid(resource)

    def _delete_service(self, service: Service, namespace: str):
        workload = Workload(
            service.model_copy(deep=True),
            CreateOptions(type=self.options.type, namespace=namespace),
            owner=self.namespaces.owner,
            port=self.port,
        )
        with self._locked(namespace):
            try:
                delete_credentials(self.kube, service, namespace)
            except Exception as e:
                logger.debug(f"Ignoring credentials cleanup failure for {service.name}: {e}")

            workload.stop(self.kube, namespace)

    # --- Logs ---

    def logs(self, resource, **opts) -> Optional[LogStream]:
        """
        Logs of a service: a replay of recent history, or a live tail when
        stream=True. Namespaces and network policies have no logs.
        """
        options = LogsOptions(**opts)
        kind = getattr(resource, "kind", None)

        if kind in (ResourceType.NAMESPACE, ResourceType.NETWORK_POLICY):
            return None

        if kind == ResourceType.SERVICE:
            service = _expect(resource, Service)
            options = options.model_copy(update={"namespace": format_name(options.namespace)})
            accessor = ServiceLogs(self.kube, service.name, options)
            if options.stream:
                return accessor.stream()
            try:
                records = accessor.read()
            except Exception as e:
                logger.error(f"Failed to get logs for service '{service.name}' from k8s: {e}")
                raise
            return replay(records)

        raise _invalid(resource)
