"""Environment-driven configuration for the webhook deployment.

The validation core never reads the environment; this module builds its
collaborators from environment variables.

Variables:
- ALEXA_APPLICATION_ID: expected skill id (required)
- ALEXA_TIMESTAMP_TOLERANCE: freshness tolerance in seconds (default: 120, Alexa max 150)
- ALEXA_SAN_MATCH: "exact" (default) or "substring"
- ALEXA_CERT_CACHE_BACKEND: "memory" (default), "file" or "redis"
- ALEXA_CERT_CACHE_DIR: directory for the file backend (default: system temp dir)
- ALEXA_CERT_CACHE_TTL: Redis entry TTL in seconds (default: 0 = no expiry)
- REDIS_URL: Redis location for the redis backend
- WEBHOOK_HTTP_TIMEOUT: certificate fetch timeout in seconds (default: 3)
- ALEXA_CERT_MAX_BYTES: maximum certificate response size (default: 65536)
"""

from __future__ import annotations

import logging
import os

import redis

from alexaverify.validation.cert_store import (
    CertificateCache,
    FileCertificateCache,
    HttpCertificateFetcher,
    InMemoryCertificateCache,
    RedisCertificateCache,
)
from alexaverify.validation.schemas import PLATFORM_MAX_TOLERANCE_SECONDS, ValidatorSettings
from alexaverify.validation.validator import RequestValidator

logger = logging.getLogger(__name__)

_ENV_FIELDS = {
    "ALEXA_APPLICATION_ID": "application_id",
    "ALEXA_TIMESTAMP_TOLERANCE": "timestamp_tolerance_seconds",
    "ALEXA_SAN_MATCH": "san_match",
    "ALEXA_CERT_CACHE_BACKEND": "cert_cache_backend",
    "ALEXA_CERT_CACHE_DIR": "cert_cache_dir",
    "ALEXA_CERT_CACHE_TTL": "cert_cache_ttl_seconds",
    "REDIS_URL": "redis_url",
    "WEBHOOK_HTTP_TIMEOUT": "http_timeout_seconds",
    "ALEXA_CERT_MAX_BYTES": "cert_max_bytes",
}


def load_settings() -> ValidatorSettings:
    """Read validator settings from the environment.

    Returns:
        Validated settings

    Raises:
        pydantic.ValidationError: If a variable is missing or out of range
    """
    values = {field: os.environ[env] for env, field in _ENV_FIELDS.items() if os.getenv(env)}
    settings = ValidatorSettings(**values)

    if settings.timestamp_tolerance_seconds > PLATFORM_MAX_TOLERANCE_SECONDS:
        logger.warning(
            f"ALEXA_TIMESTAMP_TOLERANCE={settings.timestamp_tolerance_seconds} exceeds "
            f"the Alexa maximum of {PLATFORM_MAX_TOLERANCE_SECONDS}s"
        )
    return settings


def build_cache(settings: ValidatorSettings) -> CertificateCache:
    """Create the configured certificate cache backend."""
    if settings.cert_cache_backend == "redis":
        client = redis.Redis.from_url(settings.redis_url)
        return RedisCertificateCache(client, ttl_seconds=settings.cert_cache_ttl_seconds)
    if settings.cert_cache_backend == "file":
        return FileCertificateCache(settings.cert_cache_dir)
    return InMemoryCertificateCache()


def build_validator(
    settings: ValidatorSettings, cache: CertificateCache | None = None
) -> RequestValidator:
    """Assemble a RequestValidator from settings.

    Args:
        settings: Validator settings
        cache: Existing cache to reuse (built from settings if None)
    """
    fetcher = HttpCertificateFetcher(
        timeout=settings.http_timeout_seconds, max_bytes=settings.cert_max_bytes
    )
    return RequestValidator(
        application_id=settings.application_id,
        cache=cache if cache is not None else build_cache(settings),
        fetcher=fetcher,
        san_match=settings.san_match,
    )
