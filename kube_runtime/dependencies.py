"""
Shared API dependencies: the runtime instance and the rate limiter.
"""
import logging
import threading
from typing import Optional

from slowapi import Limiter
from slowapi.util import get_remote_address

from kube_runtime.services.runtime import KubernetesRuntime

logger = logging.getLogger("dependencies")

limiter = Limiter(key_func=get_remote_address)

_runtime: Optional[KubernetesRuntime] = None
_runtime_lock = threading.Lock()


def get_runtime() -> KubernetesRuntime:
    """Create and start the runtime on first use."""
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            _runtime = KubernetesRuntime()
            _runtime.start()
            logger.info(f"Runtime {_runtime} started")
        return _runtime


def shutdown_runtime():
    global _runtime
    with _runtime_lock:
        if _runtime is not None:
            _runtime.stop()
            logger.info(f"Runtime {_runtime} stopped")
            _runtime = None
