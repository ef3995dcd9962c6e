"""Alexa skill webhook endpoint gated by request validation.

Security:
  - Size limit (1MB max)
  - Alexa signature and certificate verification (see alexaverify.validation)
  - Timestamp tolerance against replays
  - Rejections answer 400 with an operator-safe message
"""

from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from alexaverify.config import build_validator, load_settings
from alexaverify.observability.metrics import track_validation
from alexaverify.validation.errors import AlexaValidationError, CertificateIOError
from alexaverify.validation.request import ValidationRequest
from alexaverify.validation.schemas import ValidatorSettings
from alexaverify.validation.validator import RequestValidator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/_webhooks", tags=["webhooks"])

MAX_BODY_BYTES = 1024 * 1024
SIGNATURE_HEADER = "Signature"
CERT_CHAIN_URL_HEADER = "SignatureCertChainUrl"

_settings: ValidatorSettings | None = None
_validator: RequestValidator | None = None


def get_settings() -> ValidatorSettings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def get_validator(settings: ValidatorSettings = Depends(get_settings)) -> RequestValidator:
    """Process-wide validator, so the certificate cache outlives a single request."""
    global _validator
    if _validator is None:
        _validator = build_validator(settings)
    return _validator


async def verified_alexa_request(
    request: Request,
    settings: ValidatorSettings = Depends(get_settings),
    validator: RequestValidator = Depends(get_validator),
) -> ValidationRequest:
    """FastAPI dependency returning the request only if Alexa validation passes.

    Raises:
        HTTPException: 413 if the body is too large, the error's status
            (400 by default) if any validation check fails
    """
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > MAX_BODY_BYTES:
        raise HTTPException(status_code=413, detail="Payload too large (max 1MB)")

    body = await request.body()
    if len(body) > MAX_BODY_BYTES:
        raise HTTPException(status_code=413, detail="Payload too large (max 1MB)")

    try:
        alexa_request = ValidationRequest.from_http(
            body,
            request.headers.get(CERT_CHAIN_URL_HEADER, ""),
            request.headers.get(SIGNATURE_HEADER, ""),
            freshness_tolerance=timedelta(seconds=settings.timestamp_tolerance_seconds),
        )
    except AlexaValidationError as e:
        track_validation(accepted=False, reason=e.reason)
        raise HTTPException(status_code=e.status_code, detail=e.message)

    # Certificate fetch on a cache miss blocks
    result = await run_in_threadpool(validator.validate, alexa_request)
    if not result:
        raise HTTPException(status_code=result.error.status_code, detail=result.error.message)

    return alexa_request


@router.post("/alexa")
async def handle_alexa_webhook(alexa_request: ValidationRequest = Depends(verified_alexa_request)):
    """Accept a verified Alexa request.

    Returns:
        200 OK if verified
        400 Bad Request if any validation check fails
        413 Payload Too Large
    """
    logger.info(f"Verified Alexa request: type={alexa_request.request_type}")
    return JSONResponse(
        {
            "status": "verified",
            "application_id": alexa_request.application_id,
            "request_type": alexa_request.request_type,
        }
    )


@router.get("/alexa/health")
async def webhook_health(validator: RequestValidator = Depends(get_validator)):
    """Health check for webhook endpoint."""
    try:
        validator.cache.get("healthcheck")
        return {"status": "ok", "cert_cache": type(validator.cache).__name__}
    except CertificateIOError as e:
        return {"status": "degraded", "cert_cache": e.message}
