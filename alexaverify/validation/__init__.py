"""
Alexa skill request validation.

Verifies that a webhook call was signed by Alexa for the expected skill and is
not a replay: application id, timestamp, certificate URL, certificate and
signature checks, run in a fixed order.
"""

from .cert_store import (
    CertificateCache,
    FileCertificateCache,
    HttpCertificateFetcher,
    InMemoryCertificateCache,
    RedisCertificateCache,
    cache_key,
    retrieve_pem,
)
from .cert_url import check_cert_url, normalize_cert_url
from .certificate import (
    Certificate,
    check_subject_alt_name,
    check_validity_window,
    parse_certificate,
)
from .errors import (
    AlexaValidationError,
    CertificateExpired,
    CertificateIOError,
    CertificateUnavailable,
    IdentityMismatch,
    InvalidCertificate,
    InvalidSubjectAltName,
    MalformedRequest,
    RequestExpired,
    SignatureMismatch,
    UnverifiableSignatureChain,
    UntrustedCertificateUrl,
)
from .request import ValidationRequest
from .schemas import SkillRequestEnvelope, ValidatorSettings
from .signature import check_hashes_match, verify_signature_chain
from .validator import RequestValidator, ValidationResult

__all__ = [
    "RequestValidator",
    "ValidationResult",
    "ValidationRequest",
    "SkillRequestEnvelope",
    "ValidatorSettings",
    "Certificate",
    "CertificateCache",
    "InMemoryCertificateCache",
    "FileCertificateCache",
    "RedisCertificateCache",
    "HttpCertificateFetcher",
    "cache_key",
    "retrieve_pem",
    "check_cert_url",
    "normalize_cert_url",
    "parse_certificate",
    "check_validity_window",
    "check_subject_alt_name",
    "verify_signature_chain",
    "check_hashes_match",
    "AlexaValidationError",
    "MalformedRequest",
    "IdentityMismatch",
    "RequestExpired",
    "UntrustedCertificateUrl",
    "CertificateUnavailable",
    "CertificateIOError",
    "InvalidCertificate",
    "UnverifiableSignatureChain",
    "CertificateExpired",
    "InvalidSubjectAltName",
    "SignatureMismatch",
]
