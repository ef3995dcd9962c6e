"""Alexa skill request verification for webhook endpoints."""

from alexaverify.validation import (
    AlexaValidationError,
    RequestValidator,
    ValidationRequest,
    ValidationResult,
)

__version__ = "0.1.0"

__all__ = [
    "AlexaValidationError",
    "RequestValidator",
    "ValidationRequest",
    "ValidationResult",
    "__version__",
]
