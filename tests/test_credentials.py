import base64

import pytest

from kube_runtime.errors import AlreadyExists, NotFound
from kube_runtime.models import Service
from kube_runtime.services.credentials import (
    build_secret, create_credentials, credentials_name, delete_credentials,
)


def test_name_is_deterministic_and_valid():
    service = Service(name="My.Service", version="v1.0")
    assert credentials_name(service) == "my-service-v1-0-credentials"
    assert credentials_name(service) == credentials_name(Service(name="My.Service", version="v1.0"))


def test_secret_payload_is_base64_encoded():
    secret = build_secret(Service(name="api", version="v1"), {"token": "s3cret"}, "ns1")
    assert secret.type == "Opaque"
    assert secret.metadata.namespace == "ns1"
    assert secret.metadata.labels == {"name": "api", "version": "v1"}
    assert base64.b64decode(secret.data["token"]).decode() == "s3cret"


def test_create_and_delete(kube):
    service = Service(name="api", version="v1")
    create_credentials(kube, service, {"token": "s3cret"}, "ns1")
    assert kube.find("secret", "api-v1-credentials", namespace="ns1") is not None

    with pytest.raises(AlreadyExists):
        create_credentials(kube, service, {"token": "other"}, "ns1")

    delete_credentials(kube, service, "ns1")
    assert kube.find("secret", "api-v1-credentials", namespace="ns1") is None
    with pytest.raises(NotFound):
        delete_credentials(kube, service, "ns1")
