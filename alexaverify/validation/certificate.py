"""X.509 handling for the Alexa signing certificate: parse, validity window, SAN."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from cryptography import x509
from cryptography.x509.oid import ExtensionOID

from alexaverify.validation.errors import (
    CertificateExpired,
    InvalidCertificate,
    InvalidSubjectAltName,
)

logger = logging.getLogger(__name__)

ALEXA_SAN_DOMAIN = "echo-api.amazon.com"

SanMatch = Literal["exact", "substring"]


@dataclass(frozen=True)
class Certificate:
    """Leaf certificate fields the pipeline relies on."""

    subject: str
    subject_alt_names: frozenset[str]
    not_before: datetime
    not_after: datetime
    public_key: Any = field(repr=False)
    chain: tuple[x509.Certificate, ...] = field(default=(), repr=False, compare=False)


def parse_certificate(pem: bytes) -> tuple[Certificate | None, InvalidCertificate | None]:
    """Decode a PEM bundle; the first certificate is the signing (leaf) certificate.

    Expired certificates parse normally. Expiry is checked separately.

    Args:
        pem: PEM bytes from the signature chain URL

    Returns:
        (certificate, None) on success, (None, InvalidCertificate) otherwise
    """
    try:
        chain = tuple(x509.load_pem_x509_certificates(pem))
        leaf = chain[0]
        public_key = leaf.public_key()
        try:
            san_ext = leaf.extensions.get_extension_for_oid(
                ExtensionOID.SUBJECT_ALTERNATIVE_NAME
            )
            sans = frozenset(san_ext.value.get_values_for_type(x509.DNSName))
        except x509.ExtensionNotFound:
            sans = frozenset()

        cert = Certificate(
            subject=leaf.subject.rfc4514_string(),
            subject_alt_names=sans,
            not_before=leaf.not_valid_before_utc,
            not_after=leaf.not_valid_after_utc,
            public_key=public_key,
            chain=chain,
        )
    except Exception as e:
        logger.error(f"Failed to parse signing certificate: {e}")
        err = InvalidCertificate()
        err.__cause__ = e
        return None, err

    return cert, None


def check_validity_window(cert: Certificate, now: datetime) -> CertificateExpired | None:
    """Require ``not_before <= now <= not_after``."""
    if now < cert.not_before:
        return CertificateExpired("Certificate not yet valid")
    if now > cert.not_after:
        return CertificateExpired()
    return None


def check_subject_alt_name(
    cert: Certificate, domain: str = ALEXA_SAN_DOMAIN, match: SanMatch = "exact"
) -> InvalidSubjectAltName | None:
    """Require the Alexa domain among the certificate's SAN entries.

    ``exact`` compares whole entries case-insensitively. ``substring`` keeps
    the legacy containment test, which also accepts names such as
    ``echo-api.amazon.com.attacker.example``.
    """
    domain = domain.lower()
    names = [name.lower() for name in cert.subject_alt_names]
    if match == "substring":
        ok = any(domain in name for name in names)
    else:
        ok = domain in names

    if not ok:
        return InvalidSubjectAltName()
    return None
