"""Certificate retrieval: pluggable PEM cache plus HTTPS fetcher.

Security features:
- Fetch only happens after the URL passed the provenance check
- Fetch timeout and response size cap
- Cache keyed by SHA-256 of the normalized URL
- Only successful, non-empty fetches are cached

The cache has no expiry of its own. Certificate rotation at the same URL is
handled by the backend's policy (Redis TTL, purging the file directory, or
process restart for the in-memory cache).
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
import threading
import time
from typing import Callable, Optional, Protocol

import redis
import requests

from alexaverify.observability.metrics import (
    cert_cache_lookups_total,
    cert_fetch_failures_total,
    cert_fetch_seconds,
)
from alexaverify.validation.errors import CertificateIOError, CertificateUnavailable

logger = logging.getLogger(__name__)

CERT_HTTP_TIMEOUT = 3.0  # seconds
CERT_MAX_BYTES = 64 * 1024

CertificateFetcher = Callable[[str], bytes]


class CertificateCache(Protocol):
    """Key -> PEM bytes store. Implementations must tolerate concurrent use."""

    def get(self, key: str) -> Optional[bytes]: ...

    def put(self, key: str, pem: bytes) -> None: ...


def cache_key(url: str) -> str:
    """Deterministic cache key for a normalized signature chain URL."""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


class InMemoryCertificateCache:
    """Process-local cache. Last writer wins on concurrent misses."""

    def __init__(self):
        self._entries: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, pem: bytes) -> None:
        with self._lock:
            self._entries[key] = pem

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Certificate cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class FileCertificateCache:
    """One ``<key>.pem`` file per entry in a directory (system temp dir by default)."""

    def __init__(self, directory: str | None = None):
        self.directory = directory or tempfile.gettempdir()

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}.pem")

    def get(self, key: str) -> Optional[bytes]:
        try:
            with open(self._path(key), "rb") as f:
                return f.read() or None
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CertificateIOError("Certificate cache unavailable: read failed") from e

    def put(self, key: str, pem: bytes) -> None:
        try:
            os.makedirs(self.directory, exist_ok=True)
            # Write-then-rename so readers never observe a partial file
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(pem)
                os.replace(tmp_path, self._path(key))
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise CertificateIOError("Certificate cache unavailable: write failed") from e


class RedisCertificateCache:
    """Shared cache in Redis, for multi-process deployments."""

    def __init__(self, client: redis.Redis, prefix: str = "alexa:cert:", ttl_seconds: int = 0):
        self.client = client
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds

    def get(self, key: str) -> Optional[bytes]:
        try:
            value = self.client.get(self.prefix + key)
        except redis.RedisError as e:
            raise CertificateIOError("Certificate cache unavailable: Redis read failed") from e
        if isinstance(value, str):
            value = value.encode("utf-8")
        return value or None

    def put(self, key: str, pem: bytes) -> None:
        try:
            self.client.set(self.prefix + key, pem, ex=self.ttl_seconds or None)
        except redis.RedisError as e:
            raise CertificateIOError("Certificate cache unavailable: Redis write failed") from e


class HttpCertificateFetcher:
    """Fetch certificate bytes over HTTPS with ``requests``."""

    def __init__(
        self,
        timeout: float = CERT_HTTP_TIMEOUT,
        max_bytes: int = CERT_MAX_BYTES,
        session: requests.Session | None = None,
    ):
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.session = session or requests.Session()

    def __call__(self, url: str) -> bytes:
        logger.info(f"Fetching Alexa signing certificate: {url}")
        started = time.perf_counter()
        try:
            resp = self.session.get(url, timeout=self.timeout, allow_redirects=False)
        except requests.exceptions.Timeout as e:
            cert_fetch_failures_total.labels(reason="timeout").inc()
            raise CertificateUnavailable("Timeout fetching signing certificate") from e
        except requests.exceptions.RequestException as e:
            cert_fetch_failures_total.labels(reason="network").inc()
            raise CertificateUnavailable("Failed to fetch signing certificate") from e
        finally:
            cert_fetch_seconds.observe(time.perf_counter() - started)

        if resp.status_code != 200:
            cert_fetch_failures_total.labels(reason="status").inc()
            raise CertificateUnavailable(
                f"Failed to fetch signing certificate: HTTP {resp.status_code}"
            )
        content = resp.content
        if not content:
            cert_fetch_failures_total.labels(reason="empty").inc()
            raise CertificateUnavailable("Failed to fetch signing certificate: empty response")
        if len(content) > self.max_bytes:
            cert_fetch_failures_total.labels(reason="too_large").inc()
            raise CertificateUnavailable("Failed to fetch signing certificate: response too large")
        return content


def retrieve_pem(
    url: str, cache: CertificateCache, fetcher: CertificateFetcher
) -> tuple[bytes | None, CertificateUnavailable | CertificateIOError | None]:
    """Return PEM bytes for a trusted URL, from cache or by fetching.

    Args:
        url: Normalized signature chain URL that already passed ``check_cert_url``
        cache: Certificate cache backend
        fetcher: Callable returning the bytes at ``url``

    Returns:
        (pem, None) on success, (None, error) on failure
    """
    key = cache_key(url)
    try:
        pem = cache.get(key)
    except CertificateIOError as e:
        return None, e
    except Exception as e:
        logger.error(f"Certificate cache read error: {e}")
        err = CertificateIOError("Certificate cache unavailable: read failed")
        err.__cause__ = e
        return None, err

    if pem:
        logger.debug(f"Certificate cache hit: {url}")
        cert_cache_lookups_total.labels(result="hit").inc()
        return pem, None
    cert_cache_lookups_total.labels(result="miss").inc()

    try:
        pem = fetcher(url)
    except (CertificateUnavailable, CertificateIOError) as e:
        logger.error(f"Certificate retrieval failed: {e.message}")
        return None, e
    except Exception as e:
        logger.error(f"Certificate fetcher error: {e}")
        err = CertificateUnavailable()
        err.__cause__ = e
        return None, err

    if not pem:
        return None, CertificateUnavailable("Failed to fetch signing certificate: empty response")

    try:
        cache.put(key, pem)
    except CertificateIOError as e:
        return None, e
    except Exception as e:
        logger.error(f"Certificate cache write error: {e}")
        err = CertificateIOError("Certificate cache unavailable: write failed")
        err.__cause__ = e
        return None, err

    logger.info(f"Certificate fetched and cached: {url}")
    return pem, None
