"""Alexa skill request validation pipeline.

Checks run in a fixed order and stop at the first failure:
1. Application id matches the configured skill
2. Request timestamp is within the freshness tolerance
3. Signature chain URL is Amazon's certificate location
4. Signing certificate retrieved (cache, else fetch)
5. Certificate parsed
6. Signature verifies against the certificate key
7. Certificate within its validity window
8. Certificate SAN names the Alexa domain
9. Decrypted signature digest equals the SHA-1 of the body

Local checks (1-3) run before any network I/O. Certificate content (7-8) is
only trusted after its key verified the signature (6).

References:
- https://developer.amazon.com/en-US/docs/alexa/custom-skills/host-a-custom-skill-as-a-web-service.html
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from alexaverify.observability.metrics import track_validation
from alexaverify.validation.cert_store import (
    CertificateCache,
    CertificateFetcher,
    HttpCertificateFetcher,
    InMemoryCertificateCache,
    retrieve_pem,
)
from alexaverify.validation.cert_url import check_cert_url
from alexaverify.validation.certificate import (
    ALEXA_SAN_DOMAIN,
    Certificate,
    SanMatch,
    check_subject_alt_name,
    check_validity_window,
    parse_certificate,
)
from alexaverify.validation.errors import (
    AlexaValidationError,
    CertificateExpired,
    IdentityMismatch,
    InvalidSubjectAltName,
    RequestExpired,
    SignatureMismatch,
    UnverifiableSignatureChain,
)
from alexaverify.validation.request import ValidationRequest
from alexaverify.validation.signature import check_hashes_match, verify_signature_chain

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of ``RequestValidator.validate``; truthy only when accepted."""

    accepted: bool
    error: Optional[AlexaValidationError] = None
    certificate: Optional[Certificate] = None

    def __bool__(self) -> bool:
        return self.accepted

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


class RequestValidator:
    """Validates Alexa requests for one skill.

    Holds only fixed configuration; the cache is the sole shared mutable state.
    Each step is public so it can be exercised on its own.
    """

    def __init__(
        self,
        application_id: str,
        cache: CertificateCache | None = None,
        fetcher: CertificateFetcher | None = None,
        clock: Clock = utc_now,
        san_match: SanMatch = "exact",
        san_domain: str = ALEXA_SAN_DOMAIN,
    ):
        self.application_id = application_id
        self.cache = cache if cache is not None else InMemoryCertificateCache()
        self.fetcher = fetcher if fetcher is not None else HttpCertificateFetcher()
        self.clock = clock
        self.san_match = san_match
        self.san_domain = san_domain

    # Steps 1-3: local checks

    def check_application_id(self, request: ValidationRequest) -> IdentityMismatch | None:
        # Exact, case-sensitive comparison
        if request.application_id != self.application_id:
            return IdentityMismatch()
        return None

    def _now(self) -> datetime | None:
        """Clock reading, or None if the clock returned a naive datetime."""
        now = self.clock()
        if now.tzinfo is None or now.utcoffset() is None:
            logger.error("Clock returned a naive datetime; expected timezone-aware UTC")
            return None
        return now

    def check_freshness(self, request: ValidationRequest) -> RequestExpired | None:
        now = self._now()
        if now is None or request.timestamp.tzinfo is None:
            return RequestExpired("Request timeout: timestamp cannot be compared to the clock")
        if request.timestamp + request.freshness_tolerance > now:
            return None
        return RequestExpired(
            f"Request timeout: timestamp older than "
            f"{request.freshness_tolerance.total_seconds():.0f}s"
        )

    def check_cert_url(self, request: ValidationRequest):
        return check_cert_url(request.signature_chain_url)

    # Steps 4-5: certificate

    def retrieve_pem(self, request: ValidationRequest):
        return retrieve_pem(request.signature_chain_url, self.cache, self.fetcher)

    def parse_certificate(self, pem: bytes):
        return parse_certificate(pem)

    # Steps 6-9: trust

    def verify_signature_chain(
        self, request: ValidationRequest, cert: Certificate
    ) -> UnverifiableSignatureChain | None:
        return verify_signature_chain(request.raw_body, request.signature, cert)

    def check_certificate_validity(self, cert: Certificate) -> CertificateExpired | None:
        now = self._now()
        if now is None:
            return CertificateExpired("Certificate validity cannot be compared to the clock")
        return check_validity_window(cert, now)

    def check_subject_alt_name(self, cert: Certificate) -> InvalidSubjectAltName | None:
        return check_subject_alt_name(cert, self.san_domain, self.san_match)

    def check_hashes_match(
        self, request: ValidationRequest, cert: Certificate
    ) -> SignatureMismatch | None:
        return check_hashes_match(request.raw_body, request.signature, cert)

    # Orchestration

    def validate(self, request: ValidationRequest) -> ValidationResult:
        """Run every check in order, stopping at the first failure.

        Args:
            request: Typed request built by ``ValidationRequest.from_http``

        Returns:
            ValidationResult; ``error`` names the failed check when rejected
        """
        try:
            for check in (self.check_application_id, self.check_freshness, self.check_cert_url):
                error = check(request)
                if error is not None:
                    return self._reject(error)

            pem, error = self.retrieve_pem(request)
            if error is not None:
                return self._reject(error)

            cert, error = self.parse_certificate(pem)
            if error is not None:
                return self._reject(error)

            error = (
                self.verify_signature_chain(request, cert)
                or self.check_certificate_validity(cert)
                or self.check_subject_alt_name(cert)
                or self.check_hashes_match(request, cert)
            )
            if error is not None:
                return self._reject(error, cert)
        except AlexaValidationError as e:
            # Collaborators (cache, fetcher, clock) may raise typed errors directly
            return self._reject(e)

        logger.info("Alexa request verified")
        track_validation(accepted=True)
        return ValidationResult(accepted=True, certificate=cert)

    def _reject(
        self, error: AlexaValidationError, cert: Certificate | None = None
    ) -> ValidationResult:
        logger.error(f"Alexa request rejected ({error.reason}): {error.message}")
        track_validation(accepted=False, reason=error.reason)
        return ValidationResult(accepted=False, error=error, certificate=cert)
