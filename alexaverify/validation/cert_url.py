"""Signature chain URL normalization and provenance check.

Alexa signs requests with a certificate published under
``https://s3.amazonaws.com/echo.api/``. The URL arrives in a request header,
so it must be proven to point there before anything is fetched from it.

Rules (applied to the normalized URL):
- scheme is ``https`` (case-insensitive)
- host is ``s3.amazonaws.com`` (case-insensitive)
- port is absent or 443
- first path segment is exactly ``echo.api`` (case-sensitive)

References:
- https://developer.amazon.com/en-US/docs/alexa/custom-skills/host-a-custom-skill-as-a-web-service.html
"""

from __future__ import annotations

import logging
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from alexaverify.validation.errors import UntrustedCertificateUrl

logger = logging.getLogger(__name__)

TRUSTED_SCHEME = "https"
TRUSTED_HOST = "s3.amazonaws.com"
TRUSTED_PORT = 443
TRUSTED_PATH_PREFIX = "/echo.api/"

# RFC 3986 reserved + unreserved characters kept literal when re-encoding a path
_PATH_SAFE = "/-._~!$&'()*+,;=:@"


def _remove_dot_segments(path: str) -> str:
    """Resolve ``.`` and ``..`` segments (RFC 3986 section 5.2.4)."""
    segments = path.split("/")
    output: list[str] = []
    for segment in segments:
        if segment == "..":
            # Never climb above the root
            if len(output) > 1:
                output.pop()
        elif segment != ".":
            output.append(segment)
    if segments[-1] in (".", ".."):
        output.append("")

    resolved = "/".join(output)
    return resolved if resolved.startswith("/") else "/" + resolved


def normalize_cert_url(url: str) -> str:
    """Normalize a signature chain URL.

    Lowercases scheme and host, drops the default https port and any userinfo,
    percent-decodes the path and resolves dot segments. Case of the path is
    preserved. The query string is kept so the fetched URL is the checked URL;
    the fragment is dropped. Unparseable input is returned stripped but
    otherwise unchanged, so the provenance check rejects it later.

    Args:
        url: Raw ``SignatureCertChainUrl`` header value

    Returns:
        Normalized URL string
    """
    url = (url or "").strip()
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return url

    scheme = parts.scheme.lower()
    host = parts.hostname or ""
    netloc = host
    if port is not None and not (scheme == TRUSTED_SCHEME and port == TRUSTED_PORT):
        netloc = f"{host}:{port}"

    path = _remove_dot_segments(unquote(parts.path))
    return urlunsplit((scheme, netloc, quote(path, safe=_PATH_SAFE), parts.query, ""))


def check_cert_url(url: str) -> UntrustedCertificateUrl | None:
    """Check that a signature chain URL is Amazon's well-known certificate location.

    Args:
        url: Signature chain URL (normalized or raw; it is normalized again)

    Returns:
        None if trusted, otherwise the UntrustedCertificateUrl describing why
    """
    normalized = normalize_cert_url(url)
    try:
        parts = urlsplit(normalized)
        port = parts.port
    except ValueError as e:
        logger.error(f"Failed to parse signature chain URL: {e}")
        return UntrustedCertificateUrl("Invalid signature chain URL: unparseable")

    if parts.scheme.lower() != TRUSTED_SCHEME:
        logger.error(f"Signature chain URL not HTTPS: {normalized}")
        return UntrustedCertificateUrl("Invalid signature chain URL: scheme must be https")

    if (parts.hostname or "").lower() != TRUSTED_HOST:
        logger.error(f"Signature chain URL host not trusted: {normalized}")
        return UntrustedCertificateUrl(f"Invalid signature chain URL: host must be {TRUSTED_HOST}")

    if port is not None and port != TRUSTED_PORT:
        logger.error(f"Signature chain URL port not trusted: {normalized}")
        return UntrustedCertificateUrl("Invalid signature chain URL: port must be 443")

    # Deliberately case-sensitive, unlike scheme and host
    if not unquote(parts.path).startswith(TRUSTED_PATH_PREFIX):
        logger.error(f"Signature chain URL path not trusted: {normalized}")
        return UntrustedCertificateUrl(
            f"Invalid signature chain URL: path must start with {TRUSTED_PATH_PREFIX}"
        )

    return None
