"""Typed rejection causes for Alexa request validation.

Every check in the pipeline maps to exactly one subclass. Messages are safe to
return to callers; library exceptions are kept on ``__cause__`` for logs only.
"""

from __future__ import annotations


class AlexaValidationError(Exception):
    """Base class for all request rejections (HTTP 400 unless overridden)."""

    reason = "invalid_request"
    default_message = "Invalid Alexa request"
    status_code = 400

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, status_code={self.status_code})"


class MalformedRequest(AlexaValidationError):
    reason = "malformed_request"
    default_message = "Malformed request: required fields missing or invalid"


class IdentityMismatch(AlexaValidationError):
    reason = "identity_mismatch"
    default_message = "Invalid Application Id. Request came from an unknown application."


class RequestExpired(AlexaValidationError):
    reason = "request_expired"
    default_message = "Request timestamp is outside the allowed tolerance"


class UntrustedCertificateUrl(AlexaValidationError):
    reason = "untrusted_cert_url"
    default_message = "Invalid signature chain URL"


class CertificateUnavailable(AlexaValidationError):
    reason = "cert_unavailable"
    default_message = "Unable to retrieve signing certificate"


class CertificateIOError(AlexaValidationError):
    """Certificate cache backend failed to read or write an entry."""

    reason = "cert_io_error"
    default_message = "Certificate cache unavailable"


class InvalidCertificate(AlexaValidationError):
    reason = "invalid_cert"
    default_message = "Invalid PEM certificate"


class UnverifiableSignatureChain(AlexaValidationError):
    reason = "unverifiable_signature_chain"
    default_message = "Unknown SSL chain origin: signature does not verify"


class CertificateExpired(AlexaValidationError):
    reason = "cert_expired"
    default_message = "Certificate no longer valid"


class InvalidSubjectAltName(AlexaValidationError):
    reason = "invalid_san"
    default_message = "Certificate subject alternative names do not include the Alexa domain"


class SignatureMismatch(AlexaValidationError):
    reason = "signature_mismatch"
    default_message = "Invalid request: hashes do not match"


__all__ = [
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
