"""
Configuration module: all settings from env vars with sensible defaults.
Follows 12-factor app methodology.
"""
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    # Kubernetes
    KUBECONFIG: str = os.environ.get("KUBECONFIG", "")
    IN_CLUSTER: bool = os.environ.get("IN_CLUSTER", "false").lower() == "true"
    DEFAULT_NAMESPACE: str = os.environ.get("DEFAULT_NAMESPACE", "default")

    # Runtime defaults (used when a create call leaves them unset)
    RUNTIME_TYPE: str = os.environ.get("RUNTIME_TYPE", "service")
    RUNTIME_IMAGE: str = os.environ.get("RUNTIME_IMAGE", "")
    RUNTIME_SOURCE: str = os.environ.get("RUNTIME_SOURCE", "")

    # Ownership marker stamped on provisioned objects
    OWNER_LABEL: str = os.environ.get("OWNER_LABEL", "micro")
    SERVICE_PORT: int = int(os.environ.get("SERVICE_PORT", "8080"))

    # Namespace cache; 0 keeps entries until invalidated
    NAMESPACE_CACHE_TTL: int = int(os.environ.get("NAMESPACE_CACHE_TTL", "0"))

    # Logging
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    # Rate limiting
    RATE_LIMIT: str = os.environ.get("RATE_LIMIT", "60/minute")

    # API
    API_HOST: str = os.environ.get("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.environ.get("API_PORT", "8080"))
    CORS_ORIGINS: str = os.environ.get("CORS_ORIGINS", "*")


settings = Settings()
