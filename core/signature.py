"""Sanity webhook signature verification.

Sanity signs each delivery with the header

    sanity-webhook-signature: t=<unix ms>,v1=<signature>

where the signature is the unpadded base64url HMAC-SHA256 of
"<t>.<raw body>" keyed with the webhook secret.
"""

import base64
import hashlib
import hmac
import logging
import time
from typing import Optional, Union

logger = logging.getLogger(__name__)

SIGNATURE_HEADER_NAME = "sanity-webhook-signature"


class SignatureError(ValueError):
    """Raised when a signature header cannot be parsed."""

    pass


def _encode(digest: bytes) -> str:
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def _as_bytes(body: Union[str, bytes]) -> bytes:
    return body.encode("utf-8") if isinstance(body, str) else body


def compute_signature(body: Union[str, bytes], timestamp: int, secret: str) -> str:
    """Compute the v1 signature for a body and timestamp."""
    payload = f"{timestamp}.".encode("utf-8") + _as_bytes(body)
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()
    return _encode(digest)


def sign_payload(body: Union[str, bytes], secret: str, timestamp: Optional[int] = None) -> str:
    """Build a signature header value for a body.

    Args:
        body: Raw request body.
        secret: Webhook secret.
        timestamp: Unix time in milliseconds (defaults to now).

    Returns:
        Header value, e.g. "t=1633519811129,v1=...".
    """
    if timestamp is None:
        timestamp = int(time.time() * 1000)
    return f"t={timestamp},v1={compute_signature(body, timestamp, secret)}"


def parse_signature_header(header: str) -> tuple[int, str]:
    """Split a signature header into (timestamp, signature).

    Raises:
        SignatureError: If the header is malformed.
    """
    parts: dict[str, str] = {}
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if sep:
            parts[key] = value

    if "t" not in parts or "v1" not in parts or not parts["v1"]:
        raise SignatureError("Invalid signature header, expected 't=<timestamp>,v1=<hash>'")

    try:
        timestamp = int(parts["t"])
    except ValueError as e:
        raise SignatureError(f"Invalid signature timestamp: {parts['t']}") from e

    return timestamp, parts["v1"]


def verify_signature(
    body: Union[str, bytes],
    header: Optional[str],
    secret: str,
    tolerance_s: Optional[int] = None,
) -> bool:
    """Check a webhook delivery signature.

    Args:
        body: Raw request body, exactly as received.
        header: Value of the signature header.
        secret: Webhook secret.
        tolerance_s: Reject signatures older than this many seconds.

    Returns:
        True if the signature matches.
    """
    if not header:
        logger.warning("Missing webhook signature")
        return False

    try:
        timestamp, signature = parse_signature_header(header)
    except SignatureError as e:
        logger.warning("Rejected webhook signature: %s", e)
        return False

    if tolerance_s is not None:
        age_s = time.time() - timestamp / 1000
        if age_s > tolerance_s:
            logger.warning("Webhook signature expired (%ds old)", int(age_s))
            return False

    expected = compute_signature(body, timestamp, secret)
    if not hmac.compare_digest(expected, signature):
        logger.warning("Invalid webhook signature")
        return False
    return True
