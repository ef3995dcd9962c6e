"""Tests for certificate cache backends, the HTTPS fetcher and cache-or-fetch retrieval."""

import hashlib
import os
import threading
from unittest.mock import Mock, patch

import pytest
import redis
import requests
from conftest import CERT_URL

from alexaverify.validation.cert_store import (
    FileCertificateCache,
    HttpCertificateFetcher,
    InMemoryCertificateCache,
    RedisCertificateCache,
    cache_key,
    retrieve_pem,
)
from alexaverify.validation.errors import CertificateIOError, CertificateUnavailable

PEM = b"-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n"


def test_cache_key_is_sha256_of_url():
    assert cache_key(CERT_URL) == hashlib.sha256(CERT_URL.encode()).hexdigest()
    assert cache_key(CERT_URL) != cache_key(CERT_URL + "x")


# Retrieval


def test_retrieve_pem_fetches_then_caches():
    cache = InMemoryCertificateCache()
    fetcher = Mock(return_value=PEM)

    # First retrieval - should hit network
    pem, error = retrieve_pem(CERT_URL, cache, fetcher)
    assert error is None
    assert pem == PEM
    fetcher.assert_called_once_with(CERT_URL)
    assert cache.get(cache_key(CERT_URL)) == PEM

    # Second retrieval - should hit cache
    pem2, error2 = retrieve_pem(CERT_URL, cache, fetcher)
    assert error2 is None
    assert pem2 == PEM
    assert fetcher.call_count == 1


def test_retrieve_pem_fetch_failure_is_not_cached():
    cache = InMemoryCertificateCache()
    fetcher = Mock(side_effect=CertificateUnavailable("Timeout fetching signing certificate"))

    pem, error = retrieve_pem(CERT_URL, cache, fetcher)

    assert pem is None
    assert isinstance(error, CertificateUnavailable)
    assert len(cache) == 0


def test_retrieve_pem_wraps_unexpected_fetcher_errors():
    fetcher = Mock(side_effect=OSError("connection reset"))

    pem, error = retrieve_pem(CERT_URL, InMemoryCertificateCache(), fetcher)

    assert pem is None
    assert isinstance(error, CertificateUnavailable)
    assert isinstance(error.__cause__, OSError)


def test_retrieve_pem_empty_fetch_is_unavailable():
    cache = InMemoryCertificateCache()
    pem, error = retrieve_pem(CERT_URL, cache, Mock(return_value=b""))

    assert pem is None
    assert isinstance(error, CertificateUnavailable)
    assert len(cache) == 0


def test_retrieve_pem_cache_read_failure():
    cache = Mock()
    cache.get.side_effect = CertificateIOError()
    fetcher = Mock(return_value=PEM)

    pem, error = retrieve_pem(CERT_URL, cache, fetcher)

    assert pem is None
    assert isinstance(error, CertificateIOError)
    assert fetcher.call_count == 0


def test_retrieve_pem_cache_write_failure():
    cache = Mock()
    cache.get.return_value = None
    cache.put.side_effect = CertificateIOError()

    pem, error = retrieve_pem(CERT_URL, cache, Mock(return_value=PEM))

    assert pem is None
    assert isinstance(error, CertificateIOError)


def test_retrieve_pem_wraps_unexpected_cache_read_errors():
    cache = Mock()
    cache.get.side_effect = ConnectionError("backend down")
    fetcher = Mock(return_value=PEM)

    pem, error = retrieve_pem(CERT_URL, cache, fetcher)

    assert pem is None
    assert isinstance(error, CertificateIOError)
    assert isinstance(error.__cause__, ConnectionError)
    assert fetcher.call_count == 0


def test_retrieve_pem_wraps_unexpected_cache_write_errors():
    cache = Mock()
    cache.get.return_value = None
    cache.put.side_effect = RuntimeError("read-only replica")

    pem, error = retrieve_pem(CERT_URL, cache, Mock(return_value=PEM))

    assert pem is None
    assert isinstance(error, CertificateIOError)
    assert isinstance(error.__cause__, RuntimeError)


# Backends


def test_in_memory_cache_roundtrip_and_clear():
    cache = InMemoryCertificateCache()
    assert cache.get("k") is None
    cache.put("k", PEM)
    assert cache.get("k") == PEM
    cache.clear()
    assert cache.get("k") is None


def test_file_cache_roundtrip(tmp_path):
    cache = FileCertificateCache(str(tmp_path))
    key = cache_key(CERT_URL)

    assert cache.get(key) is None
    cache.put(key, PEM)

    assert cache.get(key) == PEM
    assert (tmp_path / f"{key}.pem").read_bytes() == PEM
    # No temp files left behind
    assert os.listdir(tmp_path) == [f"{key}.pem"]


def test_file_cache_creates_directory(tmp_path):
    cache = FileCertificateCache(str(tmp_path / "certs"))
    cache.put("k", PEM)
    assert cache.get("k") == PEM


def test_file_cache_unwritable_directory(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    cache = FileCertificateCache(str(blocker))

    with pytest.raises(CertificateIOError):
        cache.put("k", PEM)


def test_redis_cache_roundtrip(fake_redis):
    cache = RedisCertificateCache(fake_redis, ttl_seconds=3600)

    assert cache.get("k") is None
    cache.put("k", PEM)

    assert cache.get("k") == PEM
    assert fake_redis.store["alexa:cert:k"] == PEM
    assert fake_redis.ttls["alexa:cert:k"] == 3600


def test_redis_cache_no_ttl(fake_redis):
    RedisCertificateCache(fake_redis).put("k", PEM)
    assert fake_redis.ttls["alexa:cert:k"] is None


def test_redis_cache_errors_become_io_errors():
    client = Mock()
    client.get.side_effect = redis.ConnectionError("refused")
    client.set.side_effect = redis.ConnectionError("refused")
    cache = RedisCertificateCache(client)

    with pytest.raises(CertificateIOError):
        cache.get("k")
    with pytest.raises(CertificateIOError):
        cache.put("k", PEM)


# Fetcher


def _response(status_code=200, content=PEM):
    resp = Mock()
    resp.status_code = status_code
    resp.content = content
    return resp


def test_http_fetcher_success():
    session = Mock()
    session.get.return_value = _response()
    fetcher = HttpCertificateFetcher(timeout=2.0, session=session)

    assert fetcher(CERT_URL) == PEM
    session.get.assert_called_once_with(CERT_URL, timeout=2.0, allow_redirects=False)


@patch("alexaverify.validation.cert_store.requests.Session")
def test_http_fetcher_default_session(mock_session_cls):
    mock_session_cls.return_value.get.return_value = _response()
    assert HttpCertificateFetcher()(CERT_URL) == PEM


@pytest.mark.parametrize(
    "side_effect",
    [requests.exceptions.Timeout(), requests.exceptions.ConnectionError("refused")],
)
def test_http_fetcher_network_errors(side_effect):
    session = Mock()
    session.get.side_effect = side_effect

    with pytest.raises(CertificateUnavailable):
        HttpCertificateFetcher(session=session)(CERT_URL)


@pytest.mark.parametrize(
    "resp",
    [
        _response(status_code=404),
        _response(status_code=302),
        _response(content=b""),
        _response(content=b"x" * 70000),
    ],
)
def test_http_fetcher_bad_responses(resp):
    session = Mock()
    session.get.return_value = resp

    with pytest.raises(CertificateUnavailable):
        HttpCertificateFetcher(session=session)(CERT_URL)


# Concurrency


def _hammer(cache, key, writers=8, rounds=50):
    """Race writers and readers on one key; return every value a reader observed."""
    values = [PEM.replace(b"MIIB", f"MIIB{i:02d}".encode()) for i in range(writers)]
    seen = []
    seen_lock = threading.Lock()
    barrier = threading.Barrier(writers * 2)

    def write(value):
        barrier.wait()
        for _ in range(rounds):
            cache.put(key, value)

    def read():
        barrier.wait()
        for _ in range(rounds):
            value = cache.get(key)
            if value is not None:
                with seen_lock:
                    seen.append(value)

    threads = [threading.Thread(target=write, args=(v,)) for v in values]
    threads += [threading.Thread(target=read) for _ in range(writers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return values, seen


def test_in_memory_cache_concurrent_put_get():
    cache = InMemoryCertificateCache()
    key = cache_key(CERT_URL)

    values, seen = _hammer(cache, key)

    assert cache.get(key) in values
    assert all(v in values for v in seen)
    assert len(cache) == 1


def test_file_cache_concurrent_put_get(tmp_path):
    cache = FileCertificateCache(str(tmp_path))
    key = cache_key(CERT_URL)

    values, seen = _hammer(cache, key)

    # Last writer wins; readers never see a partially written file
    assert cache.get(key) in values
    assert all(v in values for v in seen)
    assert os.listdir(tmp_path) == [f"{key}.pem"]
