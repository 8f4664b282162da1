"""Pytest configuration and fixtures for infinity-client tests.

This file provides:
- make_client: InfinityClient wired to an httpx.MockTransport
- TLS material (RSA key, self-signed certificate) generated per session
- make_mercury_script: throwaway Mercury client adapters for bridge tests
"""

from __future__ import annotations

import stat
import sys
import textwrap
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from infinity_client.auth import apply_auth_chain
from infinity_client.client import InfinityClient
from infinity_client.models import Settings


class RecordingHandler:
    """MockTransport handler that records requests and replays a response.

    Usage:
        handler = RecordingHandler(json_body={"ok": True})
        client = make_client(Settings(), handler)
        client.get_results(query)
        assert handler.requests[0].url == ...
    """

    def __init__(
        self,
        status_code: int = 200,
        content: bytes = b"",
        json_body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status_code = status_code
        self.content = content
        self.json_body = json_body
        self.headers = headers or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.json_body is not None:
            return httpx.Response(self.status_code, json=self.json_body, headers=self.headers)
        return httpx.Response(self.status_code, content=self.content, headers=self.headers)


@pytest.fixture
def make_client() -> Callable[..., InfinityClient]:
    """Factory for clients whose transport is a mock handler.

    The auth chain is installed exactly as InfinityClient.from_settings does.
    """
    clients: list[InfinityClient] = []

    def factory(
        settings: Settings,
        handler: Callable[[httpx.Request], httpx.Response],
        **kwargs: Any,
    ) -> InfinityClient:
        http_client = httpx.Client(transport=httpx.MockTransport(handler))
        apply_auth_chain(http_client, settings)
        client = InfinityClient(settings, http_client, **kwargs)
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.close()


# --- TLS material ---


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_key: rsa.RSAPrivateKey) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture(scope="session")
def public_key_pem(rsa_key: rsa.RSAPrivateKey) -> str:
    return rsa_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


@pytest.fixture(scope="session")
def certificate_pem(rsa_key: rsa.RSAPrivateKey) -> str:
    """Self-signed CA certificate for the session RSA key."""
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    now = datetime.now(timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(rsa_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(rsa_key, hashes.SHA256())
    )
    return certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")


# --- Mercury client adapter stand-ins ---


@pytest.fixture
def make_mercury_script(tmp_path: Path) -> Callable[[str], str]:
    """Write an executable Python script acting as the Mercury client adapter.

    The body receives the adapter arguments in sys.argv[1:].
    """
    counter = {"n": 0}

    def factory(body: str) -> str:
        counter["n"] += 1
        script = tmp_path / f"mercury-client-{counter['n']}"
        script.write_text(f"#!{sys.executable}\nimport sys\n" + textwrap.dedent(body), encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return factory
