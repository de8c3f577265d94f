"""HMAC verification for identity lifecycle webhooks."""
import hashlib
import hmac
import logging
import time

from services.exceptions import SignatureVerificationError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"


def compute_signature(secret: str, timestamp: str, body: bytes) -> str:
    """
    Sign a webhook body.

    The signed message is "{timestamp}.{body}" so a captured body cannot be replayed
    with a fresh timestamp.
    """
    message = timestamp.encode("utf-8") + b"." + body
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(
    secret: str,
    body: bytes,
    signature: str | None,
    timestamp: str | None,
    tolerance_seconds: int = 300,
    now: float | None = None,
) -> None:
    """
    Verify a webhook's signature and freshness.

    Raises:
        SignatureVerificationError: Secret not configured, headers missing, timestamp
            outside the tolerance window, or signature mismatch.
    """
    if not secret:
        # Refuse everything rather than accept unsigned notifications.
        logger.error("webhook_secret_not_configured")
        raise SignatureVerificationError("Webhook secret is not configured")
    if not signature or not timestamp:
        raise SignatureVerificationError("Missing signature headers")

    try:
        sent_at = int(timestamp)
    except ValueError:
        raise SignatureVerificationError("Invalid signature timestamp") from None

    current = time.time() if now is None else now
    if abs(current - sent_at) > tolerance_seconds:
        raise SignatureVerificationError("Signature timestamp outside tolerance")

    expected = compute_signature(secret, timestamp, body)
    # Constant-time comparison to prevent timing attacks
    if not hmac.compare_digest(expected, signature):
        logger.warning("webhook_signature_mismatch")
        raise SignatureVerificationError("Invalid signature")
