"""
Namespace + isolation helpers.

Keeps a lazily-populated cache of known namespaces and provisions missing
namespaces on demand, each with a default ingress network policy.

The cache is approximate: names are added when the runtime creates a
namespace and never removed, so a namespace deleted out-of-band still
reads as existing until invalidate() or refresh() is called, or the
optional TTL expires.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Set

from kubernetes import client

from kube_runtime.config import settings
from kube_runtime.errors import AlreadyExists
from kube_runtime.models import Namespace, NetworkPolicy

logger = logging.getLogger("namespaces")

DEFAULT_NAMESPACE = "default"
INGRESS_POLICY_NAME = "ingress"


def build_namespace(name: str, owner: str = settings.OWNER_LABEL) -> client.V1Namespace:
    return client.V1Namespace(
        metadata=client.V1ObjectMeta(name=name, labels={"owner": owner})
    )


def build_network_policy(policy: NetworkPolicy,
                         owner: str = settings.OWNER_LABEL) -> client.V1NetworkPolicy:
    """Ingress-only policy for every pod in the namespace, admitting traffic
    from namespaces that carry all of policy.allowed_labels."""
    return client.V1NetworkPolicy(
        api_version="networking.k8s.io/v1",
        kind="NetworkPolicy",
        metadata=client.V1ObjectMeta(
            name=policy.name,
            namespace=policy.namespace,
            labels={"owner": owner},
        ),
        spec=client.V1NetworkPolicySpec(
            pod_selector=client.V1LabelSelector(),
            policy_types=["Ingress"],
            ingress=[
                client.V1NetworkPolicyIngressRule(
                    _from=[
                        client.V1NetworkPolicyPeer(
                            namespace_selector=client.V1LabelSelector(
                                match_labels=dict(policy.allowed_labels) or None,
                            )
                        )
                    ]
                )
            ],
        ),
    )


@dataclass
class NamespaceCache:
    names: Set[str] = field(default_factory=set)
    populated_at: Optional[datetime] = None

    @property
    def populated(self) -> bool:
        return self.populated_at is not None

    def expired(self, ttl: int) -> bool:
        if not self.populated or ttl <= 0:
            return False
        age = datetime.now(timezone.utc) - self.populated_at
        return age.total_seconds() > ttl

    def clear(self):
        self.names = set()
        self.populated_at = None


class NamespaceManager:
    """Existence checks and idempotent provisioning of namespaces."""

    def __init__(self, kube, owner: str = settings.OWNER_LABEL,
                 ttl: int = settings.NAMESPACE_CACHE_TTL):
        self.kube = kube
        self.owner = owner
        self.ttl = ttl
        self.cache = NamespaceCache()
        self._lock = threading.Lock()

    def _populate(self):
        logger.debug("Populating namespace cache")
        items = self.kube.list("namespace")
        self.cache.names = {ns.metadata.name for ns in items}
        self.cache.populated_at = datetime.now(timezone.utc)
        logger.debug(f"Populated namespace cache with {len(self.cache.names)} items")

    def _remember(self, name: str):
        with self._lock:
            if self.cache.populated:
                self.cache.names.add(name)

    def exists(self, name: str) -> bool:
        """Check the cache, populating it with one full list first if needed."""
        with self._lock:
            if not self.cache.populated or self.cache.expired(self.ttl):
                self.cache.clear()
                self._populate()
            return name in self.cache.names

    def invalidate(self):
        with self._lock:
            self.cache.clear()

    def refresh(self):
        with self._lock:
            self.cache.clear()
            self._populate()

    def auto_create(self, name: str):
        """
        Create a namespace plus its default ingress policy.
        Idempotent: an existing namespace or policy counts as success.
        """
        try:
            self.kube.create("namespace", build_namespace(name, self.owner))
            logger.info(f"Namespace {name} created")
        except AlreadyExists:
            logger.debug(f"Ignoring AlreadyExists for namespace {name}")

        self._remember(name)

        policy = NetworkPolicy(
            name=INGRESS_POLICY_NAME,
            namespace=name,
            allowed_labels={"owner": self.owner},
        )
        try:
            self.kube.create("networkpolicy", build_network_policy(policy, self.owner), namespace=name)
            logger.info(f"Network policy {INGRESS_POLICY_NAME} created in {name}")
        except AlreadyExists:
            logger.debug(f"Network policy {INGRESS_POLICY_NAME} already exists in {name}")

    def ensure(self, name: str):
        """Make sure a workload namespace exists. 'default' always does."""
        if name == DEFAULT_NAMESPACE:
            return
        try:
            exists = self.exists(name)
        except Exception as e:
            logger.warning(f"Error checking namespace {name} exists: {e}")
            raise
        if exists:
            return
        try:
            self.auto_create(name)
        except Exception as e:
            logger.warning(f"Error creating namespace {name}: {e}")
            raise

    def create(self, namespace: Namespace):
        self.kube.create("namespace", build_namespace(namespace.name, self.owner))
        logger.info(f"Namespace {namespace.name} created")
        self._remember(namespace.name)

    def delete(self, namespace: Namespace):
        self.kube.delete("namespace", namespace.name)
        logger.info(f"Namespace {namespace.name} deletion initiated")
