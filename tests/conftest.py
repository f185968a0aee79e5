"""
Pytest configuration and shared fixtures.

FakeClusterClient keeps Kubernetes model objects in memory behind the same
list/get/create/update/delete contract as ClusterClient, so the runtime can
be exercised end to end without an API server.
"""

import copy
from datetime import datetime, timezone

import pytest
from kubernetes import client

from kube_runtime.errors import AlreadyExists, NotFound
from kube_runtime.models import RuntimeOptions
from kube_runtime.services.runtime import KubernetesRuntime

CLUSTER_SCOPED = {"namespace"}


class FakeTail:
    """Stands in for a live pod log tail."""

    def __init__(self, lines):
        self.lines = list(lines)
        self.closed = False

    def __iter__(self):
        for line in self.lines:
            if self.closed:
                return
            yield line

    def close(self):
        self.closed = True


class FakeClusterClient:
    def __init__(self, namespaces=("default", "kube-system")):
        self.objects = {}
        self.calls = []
        self.failures = {}
        self.pod_logs = {}
        self.tails = []
        for name in namespaces:
            self.add("namespace", client.V1Namespace(metadata=client.V1ObjectMeta(name=name)))

    # --- test helpers ---

    def fail(self, verb, kind, exc):
        """Make every `verb` call on `kind` raise exc."""
        self.failures[(verb, kind)] = exc

    def add(self, kind, obj, namespace="default"):
        self.objects[self._key(kind, obj.metadata.name, namespace)] = obj

    def find(self, kind, name, namespace="default"):
        return self.objects.get(self._key(kind, name, namespace))

    def count(self, verb, kind):
        return sum(1 for call in self.calls if call[0] == verb and call[1] == kind)

    # --- ClusterClient contract ---

    @staticmethod
    def _key(kind, name, namespace):
        return kind, None if kind in CLUSTER_SCOPED else namespace, name

    @staticmethod
    def _matches(obj, labels):
        have = obj.metadata.labels or {}
        return all(have.get(k) == v for k, v in (labels or {}).items())

    def _record(self, verb, kind, namespace=None):
        self.calls.append((verb, kind, namespace))
        exc = self.failures.get((verb, kind))
        if exc is not None:
            raise exc

    def list(self, kind, labels=None):
        self._record("list", kind)
        return [
            copy.deepcopy(obj) for (k, _, _), obj in self.objects.items()
            if k == kind and self._matches(obj, labels)
        ]

    def get(self, kind, labels=None, namespace="default"):
        self._record("get", kind, namespace)
        ns = None if kind in CLUSTER_SCOPED else namespace
        return [
            copy.deepcopy(obj) for (k, n, _), obj in self.objects.items()
            if k == kind and n == ns and self._matches(obj, labels)
        ]

    def create(self, kind, body, namespace="default"):
        self._record("create", kind, namespace)
        key = self._key(kind, body.metadata.name, namespace)
        if key in self.objects:
            raise AlreadyExists(f"{kind} {body.metadata.name} already exists")
        self.objects[key] = copy.deepcopy(body)
        return body

    def update(self, kind, body, namespace="default"):
        self._record("update", kind, namespace)
        key = self._key(kind, body.metadata.name, namespace)
        if key not in self.objects:
            raise NotFound(f"{kind} {body.metadata.name} not found")
        self.objects[key] = copy.deepcopy(body)
        return body

    def delete(self, kind, name, namespace="default"):
        self._record("delete", kind, namespace)
        key = self._key(kind, name, namespace)
        if key not in self.objects:
            raise NotFound(f"{kind} {name} not found")
        del self.objects[key]

    def read_pod_log(self, name, namespace="default", tail_lines=None, since_seconds=None):
        self._record("read_pod_log", "pod", namespace)
        lines = self.pod_logs.get((namespace, name), [])
        if tail_lines:
            lines = lines[-tail_lines:]
        return "\n".join(lines)

    def follow_pod_log(self, name, namespace="default", tail_lines=None, since_seconds=None):
        self._record("follow_pod_log", "pod", namespace)
        tail = FakeTail(self.pod_logs.get((namespace, name), []))
        self.tails.append(tail)
        return tail


# =========================================================================
# Native object builders
# =========================================================================

def make_kservice(name, version, type_="service", annotations=None,
                  cluster_ip="10.0.0.1", port=8080, namespace="default"):
    return client.V1Service(
        metadata=client.V1ObjectMeta(
            name=f"{name}-{version}",
            namespace=namespace,
            labels={"name": name, "version": version, "micro": type_},
            annotations=annotations,
        ),
        spec=client.V1ServiceSpec(
            cluster_ip=cluster_ip,
            ports=[client.V1ServicePort(port=port)],
        ),
    )


def make_deployment(name, version, condition=None, updated_at=None, annotations=None,
                    managed=True, source="github.com/example/src", namespace="default"):
    labels = {"name": name, "version": version, "micro": "service"}
    annotations = dict(annotations or {})
    if managed:
        annotations.update({"name": name, "version": version, "source": source})

    conditions = None
    if condition:
        conditions = [client.V1DeploymentCondition(
            type=condition, status="True", last_update_time=updated_at,
        )]

    return client.V1Deployment(
        metadata=client.V1ObjectMeta(
            name=f"{name}-{version}", namespace=namespace, labels=labels, annotations=annotations,
        ),
        spec=client.V1DeploymentSpec(
            selector=client.V1LabelSelector(match_labels=labels),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=labels, annotations={}),
                spec=client.V1PodSpec(containers=[client.V1Container(name=name)]),
            ),
        ),
        status=client.V1DeploymentStatus(conditions=conditions),
    )


def make_pod(name, version, pod_name=None, phase="Running", state="running",
             started_at=None, reason="ContainerCreating", namespace="default"):
    """state is 'running', 'waiting' or None (no container statuses yet)."""
    container_statuses = None
    if state is not None:
        if state == "running":
            container_state = client.V1ContainerState(
                running=client.V1ContainerStateRunning(
                    started_at=started_at or datetime(2024, 1, 1, tzinfo=timezone.utc),
                )
            )
        else:
            container_state = client.V1ContainerState(
                waiting=client.V1ContainerStateWaiting(reason=reason),
            )
        container_statuses = [client.V1ContainerStatus(
            name=name, image="example/image", image_id="", ready=state == "running",
            restart_count=0, state=container_state,
        )]

    return client.V1Pod(
        metadata=client.V1ObjectMeta(
            name=pod_name or f"{name}-{version}-abc12",
            namespace=namespace,
            labels={"name": name, "version": version, "micro": "service"},
        ),
        status=client.V1PodStatus(phase=phase, container_statuses=container_statuses),
    )


# =========================================================================
# Fixtures
# =========================================================================

@pytest.fixture
def kube():
    return FakeClusterClient()


@pytest.fixture
def runtime(kube):
    options = RuntimeOptions(
        type="service",
        image="registry.example.com/service:latest",
        source="github.com/example/src",
    )
    return KubernetesRuntime(kube=kube, options=options)
