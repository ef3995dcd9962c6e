"""Typed, immutable view of an inbound Alexa request."""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from pydantic import ValidationError

from alexaverify.validation.cert_url import normalize_cert_url
from alexaverify.validation.errors import MalformedRequest
from alexaverify.validation.schemas import (
    DEFAULT_TOLERANCE_SECONDS,
    PLATFORM_MAX_TOLERANCE_SECONDS,
    SkillRequestEnvelope,
)

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_TOLERANCE = timedelta(seconds=DEFAULT_TOLERANCE_SECONDS)
PLATFORM_MAX_FRESHNESS_TOLERANCE = timedelta(seconds=PLATFORM_MAX_TOLERANCE_SECONDS)


@dataclass(frozen=True)
class ValidationRequest:
    """Everything the validation pipeline needs from one webhook call.

    ``raw_body`` is kept byte-exact: hashing and signature checks run on it,
    never on a re-serialized form.
    """

    raw_body: bytes
    application_id: str
    timestamp: datetime
    signature_chain_url: str
    signature: bytes
    freshness_tolerance: timedelta = DEFAULT_FRESHNESS_TOLERANCE
    request_type: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        # The URL that is checked is the URL that is fetched and cached
        normalized = normalize_cert_url(self.signature_chain_url)
        object.__setattr__(self, "signature_chain_url", normalized)

    @classmethod
    def from_http(
        cls,
        raw_body: bytes,
        signature_chain_url: str,
        signature: str,
        freshness_tolerance: timedelta = DEFAULT_FRESHNESS_TOLERANCE,
    ) -> ValidationRequest:
        """Build a request from the raw body and the two signature headers.

        Args:
            raw_body: Request body exactly as received
            signature_chain_url: ``SignatureCertChainUrl`` header value
            signature: ``Signature`` header value (base64)
            freshness_tolerance: Maximum accepted request age

        Returns:
            ValidationRequest with a normalized URL and decoded signature

        Raises:
            MalformedRequest: If the body fails schema validation or the
                signature is not base64
        """
        try:
            envelope = SkillRequestEnvelope.model_validate_json(raw_body)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) or "body" for err in e.errors())
            logger.error(f"Alexa request body failed schema validation: {fields}")
            raise MalformedRequest(f"Malformed request: invalid or missing {fields}") from e

        try:
            decoded_signature = base64.b64decode(signature or "", validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedRequest("Malformed request: Signature header is not valid base64") from e
        if not decoded_signature:
            raise MalformedRequest("Malformed request: Signature header is missing")

        if freshness_tolerance > PLATFORM_MAX_FRESHNESS_TOLERANCE:
            logger.warning(
                f"Freshness tolerance {freshness_tolerance.total_seconds():.0f}s exceeds "
                f"the Alexa maximum of {PLATFORM_MAX_TOLERANCE_SECONDS}s"
            )

        return cls(
            raw_body=raw_body,
            application_id=envelope.application_id,
            timestamp=envelope.request.timestamp,
            signature_chain_url=signature_chain_url,
            signature=decoded_signature,
            freshness_tolerance=freshness_tolerance,
            request_type=envelope.request.type,
        )
