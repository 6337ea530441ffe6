"""
Webhook signature checks for ElevenLabs post-call events.

Two header formats are accepted:

    t=<unix timestamp>,v0=<hex hmac>   HMAC-SHA256 over "<timestamp>.<body>"
    sha256=<hex hmac>                  HMAC-SHA256 over the raw body (legacy)
"""
import hashlib
import hmac
import logging
import time
from typing import Optional, Tuple, Union

from lib.error_handler import SignatureError

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ('ElevenLabs-Signature', 'xi-signature')


def compute_signature(secret: str, payload: Union[str, bytes]) -> str:
    if isinstance(payload, str):
        payload = payload.encode('utf-8')
    return hmac.new(secret.encode('utf-8'), payload, hashlib.sha256).hexdigest()


def parse_timestamped_header(header: str) -> Tuple[str, str]:
    """Split a ``t=...,v0=...`` header into (timestamp, digest)."""
    timestamp = None
    digest = None
    for part in header.split(','):
        part = part.strip()
        if part.startswith('t='):
            timestamp = part[2:]
        elif part.startswith('v0='):
            digest = part[3:]

    if not timestamp or not digest:
        raise SignatureError(
            "Invalid signature header format",
            user_message="Invalid signature header format"
        )
    return timestamp, digest


def _check_timestamp(timestamp: str, tolerance_seconds: int) -> None:
    try:
        sent_at = int(timestamp)
    except ValueError:
        raise SignatureError(f"Non-numeric signature timestamp: {timestamp}")

    if abs(time.time() - sent_at) > tolerance_seconds:
        raise SignatureError(f"Signature timestamp {timestamp} outside tolerance")


def verify_signature(
    body: Union[str, bytes],
    header: Optional[str],
    secret: str,
    tolerance_seconds: Optional[int] = None
) -> None:
    """Raise SignatureError unless ``header`` signs ``body`` with ``secret``."""
    if not header:
        raise SignatureError("Missing signature header", user_message="Missing signature")

    if isinstance(body, bytes):
        body = body.decode('utf-8')

    if 'v0=' in header:
        timestamp, provided = parse_timestamped_header(header)
        if tolerance_seconds:
            _check_timestamp(timestamp, tolerance_seconds)
        expected = compute_signature(secret, f"{timestamp}.{body}")
    else:
        provided = header.replace('sha256=', '', 1)
        expected = compute_signature(secret, body)

    # compare_digest tolerates unequal lengths and returns False
    if not hmac.compare_digest(expected.encode('utf-8'), provided.encode('utf-8')):
        raise SignatureError("Webhook signature mismatch")

    logger.debug("Webhook signature verified")


def sign_payload(body: Union[str, bytes], secret: str, timestamp: Optional[int] = None) -> str:
    """Build a ``t=...,v0=...`` header the way ElevenLabs does."""
    if isinstance(body, bytes):
        body = body.decode('utf-8')
    timestamp = int(time.time()) if timestamp is None else timestamp
    return f"t={timestamp},v0={compute_signature(secret, f'{timestamp}.{body}')}"
