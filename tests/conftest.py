"""
Pytest fixtures for Alexa request validation tests.

Certificates are minted locally with cryptography's CertificateBuilder; no
network access is needed.
"""

import base64
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID

from alexaverify.validation.cert_store import InMemoryCertificateCache
from alexaverify.validation.validator import RequestValidator

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
APP_ID = "amzn1.ask.skill.11111111-2222-3333-4444-555555555555"
CERT_URL = "https://s3.amazonaws.com/echo.api/echo-api-cert-12.pem"


def iso(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%dT%H:%M:%SZ")


def make_body(application_id: str = APP_ID, timestamp: datetime = NOW) -> bytes:
    """Alexa LaunchRequest body, serialized once so tests sign the exact bytes."""
    return json.dumps(
        {
            "version": "1.0",
            "session": {
                "new": True,
                "sessionId": "amzn1.echo-api.session.abc",
                "application": {"applicationId": application_id},
                "user": {"userId": "amzn1.ask.account.xyz"},
            },
            "request": {
                "type": "LaunchRequest",
                "requestId": "amzn1.echo-api.request.123",
                "timestamp": iso(timestamp),
                "locale": "en-US",
            },
        }
    ).encode("utf-8")


@pytest.fixture(scope="session")
def rsa_keypair():
    """Generate RSA keypair for testing."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return private_key, private_key.public_key()


@pytest.fixture(scope="session")
def make_cert_pem(rsa_keypair):
    """Factory for PEM certificates signed by the test key."""
    private_key, public_key = rsa_keypair

    def _make(
        sans=("echo-api.amazon.com",),
        not_before: datetime = NOW - timedelta(days=1),
        not_after: datetime = NOW + timedelta(days=365),
    ) -> bytes:
        name = x509.Name(
            [
                x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Amazon.com, Inc."),
                x509.NameAttribute(NameOID.COMMON_NAME, "echo-api.amazon.com"),
            ]
        )
        builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(public_key)
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
        )
        if sans:
            builder = builder.add_extension(
                x509.SubjectAlternativeName([x509.DNSName(s) for s in sans]), critical=False
            )
        cert = builder.sign(private_key, hashes.SHA256())
        return cert.public_bytes(serialization.Encoding.PEM)

    return _make


@pytest.fixture
def cert_pem(make_cert_pem):
    return make_cert_pem()


@pytest.fixture
def sign(rsa_keypair):
    """Sign bytes the way Alexa does (SHA-1 with RSA) and base64 the result."""
    private_key, _ = rsa_keypair

    def _sign(data: bytes) -> str:
        signature = private_key.sign(data, padding.PKCS1v15(), hashes.SHA1())
        return base64.b64encode(signature).decode("ascii")

    return _sign


@pytest.fixture
def fetcher(cert_pem):
    """Fetcher stub returning the test certificate."""
    return Mock(return_value=cert_pem)


@pytest.fixture
def validator(fetcher):
    return RequestValidator(
        APP_ID, cache=InMemoryCertificateCache(), fetcher=fetcher, clock=lambda: NOW
    )


class FakeRedis:
    """Minimal Redis stub with the key ops used by the certificate cache."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ex=None, nx=False):
        if nx and key in self.store:
            return None
        self.store[key] = value
        self.ttls[key] = ex
        return True

    def ping(self):
        return True


@pytest.fixture
def fake_redis():
    return FakeRedis()
