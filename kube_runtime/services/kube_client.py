"""
Kubernetes client layer — the only module that talks to the API server.

Design principles:
  - Uniform verbs: list/get/create/update/delete keyed by object kind
  - Clean error handling: translates K8s API exceptions to domain errors
    (404 -> NotFound, 409 -> AlreadyExists, anything else -> UpstreamError)
  - Config is loaded exactly once, in-cluster or from kubeconfig
"""

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from kubernetes import client, config, watch
from kubernetes.client import ApiException

from kube_runtime.config import settings
from kube_runtime.errors import AlreadyExists, InvalidResource, NotFound, UpstreamError

logger = logging.getLogger("kube_client")

MAX_NAME_LENGTH = 253

# kind -> (api attribute, method suffix, namespaced)
_KINDS = {
    "namespace": ("core", "namespace", False),
    "service": ("core", "service", True),
    "pod": ("core", "pod", True),
    "secret": ("core", "secret", True),
    "deployment": ("apps", "deployment", True),
    "networkpolicy": ("networking", "network_policy", True),
}

_k8s_loaded = False


def _ensure_k8s():
    """Load Kubernetes config exactly once."""
    global _k8s_loaded
    if _k8s_loaded:
        return
    if settings.IN_CLUSTER:
        config.load_incluster_config()
    else:
        config.load_kube_config(config_file=settings.KUBECONFIG or None)
    _k8s_loaded = True


def format_name(value: str) -> str:
    """Format a value into a valid Kubernetes object name or label value."""
    name = value.lower()
    for char in ("/", ".", "_", " "):
        name = name.replace(char, "-")
    return name.strip("-")[:MAX_NAME_LENGTH].rstrip("-")


def label_selector(labels: Optional[Dict[str, str]]) -> str:
    """Render {"name": "api", "version": "v1"} as 'name=api,version=v1'."""
    if not labels:
        return ""
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


@contextmanager
def _translate(verb: str, kind: str, name: str = ""):
    target = f"{kind} {name}".strip()
    try:
        yield
    except ApiException as e:
        if e.status == 404:
            raise NotFound(f"{target} not found") from e
        if e.status == 409:
            raise AlreadyExists(f"{target} already exists") from e
        raise UpstreamError(
            f"Failed to {verb} {target}: {e.status} {e.reason}",
            status=e.status,
            reason=e.reason or "",
        ) from e


class LogTail:
    """A live log tail of one pod. Iterate for lines; close() to stop following."""

    def __init__(self, core: client.CoreV1Api, name: str, namespace: str, **params):
        self.name = name
        self.namespace = namespace
        self._core = core
        self._params = params
        self._watch = watch.Watch()

    def __iter__(self) -> Iterator[str]:
        with _translate("follow logs of", "pod", self.name):
            yield from self._watch.stream(
                self._core.read_namespaced_pod_log,
                name=self.name,
                namespace=self.namespace,
                **self._params,
            )

    def close(self):
        self._watch.stop()


class ClusterClient:
    """Thin, kind-addressed facade over the CoreV1, AppsV1 and NetworkingV1 APIs."""

    def __init__(self, api_client: Optional[client.ApiClient] = None):
        if api_client is None:
            _ensure_k8s()
        self.core = client.CoreV1Api(api_client)
        self.apps = client.AppsV1Api(api_client)
        self.networking = client.NetworkingV1Api(api_client)

    def _resolve(self, kind: str):
        try:
            api_name, suffix, namespaced = _KINDS[kind]
        except KeyError:
            raise InvalidResource(f"Unsupported object kind '{kind}'")
        return getattr(self, api_name), suffix, namespaced

    def list(self, kind: str, labels: Optional[Dict[str, str]] = None) -> List:
        """List objects of a kind across all namespaces."""
        api, suffix, namespaced = self._resolve(kind)
        method = f"list_{suffix}_for_all_namespaces" if namespaced else f"list_{suffix}"
        kwargs = {}
        if labels:
            kwargs["label_selector"] = label_selector(labels)
        with _translate("list", kind):
            result = getattr(api, method)(**kwargs)
        return list(result.items or [])

    def get(self, kind: str, labels: Optional[Dict[str, str]] = None,
            namespace: str = settings.DEFAULT_NAMESPACE) -> List:
        """List objects of a kind in one namespace, filtered by labels."""
        api, suffix, namespaced = self._resolve(kind)
        kwargs = {}
        if labels:
            kwargs["label_selector"] = label_selector(labels)
        with _translate("get", kind):
            if namespaced:
                result = getattr(api, f"list_namespaced_{suffix}")(namespace, **kwargs)
            else:
                result = getattr(api, f"list_{suffix}")(**kwargs)
        return list(result.items or [])

    def create(self, kind: str, body, namespace: str = settings.DEFAULT_NAMESPACE):
        api, suffix, namespaced = self._resolve(kind)
        name = body.metadata.name
        logger.debug(f"Creating {kind} {name} in {namespace}")
        with _translate("create", kind, name):
            if namespaced:
                return getattr(api, f"create_namespaced_{suffix}")(namespace, body)
            return getattr(api, f"create_{suffix}")(body)

    def update(self, kind: str, body, namespace: str = settings.DEFAULT_NAMESPACE):
        api, suffix, namespaced = self._resolve(kind)
        name = body.metadata.name
        logger.debug(f"Updating {kind} {name} in {namespace}")
        with _translate("update", kind, name):
            if namespaced:
                return getattr(api, f"replace_namespaced_{suffix}")(name, namespace, body)
            return getattr(api, f"replace_{suffix}")(name, body)

    def delete(self, kind: str, name: str, namespace: str = settings.DEFAULT_NAMESPACE):
        api, suffix, namespaced = self._resolve(kind)
        logger.debug(f"Deleting {kind} {name} in {namespace}")
        with _translate("delete", kind, name):
            if namespaced:
                return getattr(api, f"delete_namespaced_{suffix}")(name, namespace)
            return getattr(api, f"delete_{suffix}")(name)

    def read_pod_log(self, name: str, namespace: str = settings.DEFAULT_NAMESPACE,
                     tail_lines: Optional[int] = None,
                     since_seconds: Optional[int] = None) -> str:
        kwargs = _log_params(tail_lines, since_seconds)
        with _translate("read logs of", "pod", name):
            return self.core.read_namespaced_pod_log(name=name, namespace=namespace, **kwargs)

    def follow_pod_log(self, name: str, namespace: str = settings.DEFAULT_NAMESPACE,
                       tail_lines: Optional[int] = None,
                       since_seconds: Optional[int] = None) -> LogTail:
        return LogTail(self.core, name, namespace, **_log_params(tail_lines, since_seconds))


def _log_params(tail_lines: Optional[int], since_seconds: Optional[int]) -> dict:
    params = {}
    if tail_lines:
        params["tail_lines"] = tail_lines
    if since_seconds:
        params["since_seconds"] = since_seconds
    return params
