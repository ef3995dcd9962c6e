"""Request signature checks against the signing certificate's RSA key.

Two independent checks over the same signature:
1. ``verify_signature_chain``: library PKCS#1 v1.5 SHA-1 verification
2. ``check_hashes_match``: RSA signature data recovery, DigestInfo extraction and
   comparison with the SHA-1 of the body

Alexa signs with SHA-1/RSA; the algorithm is not configurable.
"""

from __future__ import annotations

import hashlib
import hmac
import logging

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from alexaverify.validation.certificate import Certificate
from alexaverify.validation.errors import SignatureMismatch, UnverifiableSignatureChain

logger = logging.getLogger(__name__)

# DER DigestInfo header for SHA-1 (RFC 8017 section 9.2, note 1)
SHA1_DIGEST_INFO_PREFIX = bytes.fromhex("3021300906052b0e03021a05000414")


def verify_signature_chain(
    raw_body: bytes, signature: bytes, cert: Certificate
) -> UnverifiableSignatureChain | None:
    """Verify ``signature`` over ``raw_body`` with the certificate's public key.

    Returns:
        None if the signature verifies, otherwise UnverifiableSignatureChain
    """
    public_key = cert.public_key
    if not isinstance(public_key, rsa.RSAPublicKey):
        return UnverifiableSignatureChain("Unknown SSL chain origin: certificate key is not RSA")

    try:
        public_key.verify(signature, raw_body, padding.PKCS1v15(), hashes.SHA1())
    except InvalidSignature:
        logger.error("Alexa signature verification failed: invalid signature")
        return UnverifiableSignatureChain()
    except (UnsupportedAlgorithm, ValueError, TypeError) as e:
        logger.error(f"Alexa signature verification error: {e}")
        err = UnverifiableSignatureChain()
        err.__cause__ = e
        return err

    return None


def decrypt_signature(signature: bytes, public_key: rsa.RSAPublicKey) -> bytes | None:
    """Recover the DigestInfo block embedded in a PKCS#1 v1.5 signature.

    Returns:
        The DigestInfo block, or None if the signature block is malformed
    """
    try:
        return public_key.recover_data_from_signature(signature, padding.PKCS1v15(), None)
    except (InvalidSignature, ValueError) as e:
        logger.debug(f"Unable to recover signature block: {e}")
        return None


def check_hashes_match(
    raw_body: bytes, signature: bytes, cert: Certificate
) -> SignatureMismatch | None:
    """Compare the digest embedded in the signature with the SHA-1 of the body.

    Returns:
        None if the hex digests are equal, otherwise SignatureMismatch
    """
    public_key = cert.public_key
    if not isinstance(public_key, rsa.RSAPublicKey):
        return SignatureMismatch("Unable to extract public key")

    digest_info = decrypt_signature(signature, public_key)
    if digest_info is None or not digest_info.startswith(SHA1_DIGEST_INFO_PREFIX):
        logger.error("Alexa signature hash check failed: malformed signature block")
        return SignatureMismatch()

    signed_hash = digest_info[len(SHA1_DIGEST_INFO_PREFIX) :].hex()
    body_hash = hashlib.sha1(raw_body).hexdigest()
    if not hmac.compare_digest(signed_hash, body_hash):
        logger.error("Alexa signature hash check failed: hashes do not match")
        return SignatureMismatch()

    return None
