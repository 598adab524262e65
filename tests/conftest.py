"""Pytest configuration and fixtures."""

import base64
import copy
import json
import os
from typing import Any, Dict, List, Tuple

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from cloud_client import CloudAPIError, NotFoundError
from config import Config, LoggingConfig, PollingConfig, CloudConfig
from keys import generate_encryption_key
from resources.registry import register_builtin_resources, reset_registry


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def encrypt_token(public_key, token: str, alg="RSA-OAEP", enc="A256GCM") -> str:
    """Produce a compact JWE the way the control plane publishes tokens."""
    digest = hashes.SHA1 if alg == "RSA-OAEP" else hashes.SHA256
    size = {"A128GCM": 128, "A192GCM": 192, "A256GCM": 256}[enc]

    protected = b64url(json.dumps({"alg": alg, "enc": enc}).encode())
    cek = AESGCM.generate_key(bit_length=size)
    encrypted_key = public_key.encrypt(
        cek,
        padding.OAEP(mgf=padding.MGF1(algorithm=digest()), algorithm=digest(), label=None),
    )
    iv = os.urandom(12)
    sealed = AESGCM(cek).encrypt(iv, token.encode(), protected.encode("ascii"))
    ciphertext, tag = sealed[:-16], sealed[-16:]
    return ".".join(
        [protected, b64url(encrypted_key), b64url(iv), b64url(ciphertext), b64url(tag)]
    )


class FakeClock:
    """Manual clock whose sleep advances time instead of waiting."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


class FakeCloud:
    """
    In-memory stand-in for the control plane.

    ``progress`` scripts the status an object reports on successive reads,
    ``linger`` keeps a deleted object visible for a number of reads and
    ``errors`` makes a method raise.
    """

    def __init__(self):
        self.objects: Dict[Tuple[str, str, str], Dict[str, Any]] = {}
        self.calls: List[Tuple[str, ...]] = []
        self.progress: Dict[Tuple[str, str, str], List[Dict[str, Any]]] = {}
        self.linger: Dict[Tuple[str, str, str], int] = {}
        self.errors: Dict[str, Exception] = {}
        self._generated = 0

    def put(self, namespace: str, plural: str, obj: Dict[str, Any]) -> None:
        obj = copy.deepcopy(obj)
        metadata = obj.setdefault("metadata", {})
        metadata.setdefault("namespace", namespace)
        self.objects[(namespace, plural, metadata["name"])] = obj

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    def _raise_for(self, method: str) -> None:
        if method in self.errors:
            raise self.errors[method]

    async def get(self, namespace: str, plural: str, name: str) -> Dict[str, Any]:
        self.calls.append(("get", namespace, plural, name))
        self._raise_for("get")
        key = (namespace, plural, name)

        if key in self.linger:
            if self.linger[key] <= 0:
                del self.linger[key]
                self.objects.pop(key, None)
            else:
                self.linger[key] -= 1

        if key not in self.objects:
            raise NotFoundError(message=f"{plural} {name} not found")
        if self.progress.get(key):
            self.objects[key]["status"] = self.progress[key].pop(0)
        return copy.deepcopy(self.objects[key])

    async def list(self, namespace: str, plural: str) -> List[Dict[str, Any]]:
        self.calls.append(("list", namespace, plural))
        return [
            copy.deepcopy(obj)
            for (ns, p, _), obj in self.objects.items()
            if ns == namespace and p == plural
        ]

    async def create(
        self, namespace: str, plural: str, obj: Dict[str, Any]
    ) -> Dict[str, Any]:
        self.calls.append(("create", namespace, plural))
        self._raise_for("create")
        obj = copy.deepcopy(obj)
        metadata = obj.setdefault("metadata", {})
        if not metadata.get("name"):
            self._generated += 1
            metadata["name"] = f"generated-{self._generated}"
        if (namespace, plural, metadata["name"]) in self.objects:
            raise CloudAPIError(409, "AlreadyExists", f"{metadata['name']} exists")
        metadata["uid"] = f"uid-{metadata['name']}"
        self.objects[(namespace, plural, metadata["name"])] = obj
        return copy.deepcopy(obj)

    async def update(
        self, namespace: str, plural: str, name: str, obj: Dict[str, Any]
    ) -> Dict[str, Any]:
        self.calls.append(("update", namespace, plural, name))
        self._raise_for("update")
        key = (namespace, plural, name)
        if key not in self.objects:
            raise NotFoundError(message=f"{plural} {name} not found")
        obj = copy.deepcopy(obj)
        if "status" in self.objects[key]:
            obj["status"] = self.objects[key]["status"]
        self.objects[key] = obj
        return copy.deepcopy(obj)

    async def delete(self, namespace: str, plural: str, name: str) -> Dict[str, Any]:
        self.calls.append(("delete", namespace, plural, name))
        self._raise_for("delete")
        key = (namespace, plural, name)
        if key not in self.objects:
            raise NotFoundError(message=f"{plural} {name} not found")
        if key not in self.linger:
            del self.objects[key]
        return {}


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_cloud():
    return FakeCloud()


@pytest.fixture(scope="session")
def rsa_key():
    return generate_encryption_key()


@pytest.fixture
def seal_token():
    """Encrypt a token to a public key as a compact JWE."""
    return encrypt_token


@pytest.fixture
def test_config():
    """Config with a short poll interval and no credentials."""
    return Config(
        cloud=CloudConfig(access_token="test-token"),
        polling=PollingConfig(poll_interval=5),
        logging=LoggingConfig(),
    )


@pytest.fixture
def registry():
    reset_registry()
    yield register_builtin_resources()
    reset_registry()
