import hashlib
import hmac
import logging
from typing import Mapping

from firebase_webhooks.core.errors import MissingSignature, SignatureMismatch
from firebase_webhooks.schemas.events import SignedBody

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Firebase-Signature"
SIGNATURE_PREFIX = "sha256="


def sign(body: bytes, secret: str) -> str:
    """Return the ``sha256=<hex>`` signature of ``body``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify(raw_body: bytes, secret: str, signature: str | None) -> SignedBody:
    """
    Check ``signature`` against the exact bytes received on the wire.

    Raise MissingSignature if no signature was presented and
    SignatureMismatch if it does not match.
    """
    if signature is None:
        raise MissingSignature("No signature header")

    expected = sign(raw_body, secret)
    if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
        raise SignatureMismatch(f"Signature mismatch over {len(raw_body)} bytes")
    logger.debug(f"Signature verified over {len(raw_body)} bytes")
    return SignedBody(raw=raw_body)


def verify_headers(
    raw_body: bytes, secret: str, headers: Mapping[str, str]
) -> SignedBody:
    """Look up the signature header (any case) and verify it."""
    signature = headers.get(SIGNATURE_HEADER)
    if signature is None:
        # plain dicts are case-sensitive, request headers are not
        lowered = SIGNATURE_HEADER.lower()
        signature = next(
            (v for k, v in headers.items() if k.lower() == lowered), None
        )
    return verify(raw_body, secret, signature)
