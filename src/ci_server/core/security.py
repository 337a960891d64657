"""Security utilities for webhook signature verification.

GitHub uses HMAC-SHA256 for webhook signature verification.
Reference: https://docs.github.com/en/webhooks/using-webhooks/validating-webhook-deliveries
"""
import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"
SIGNATURE_PREFIX = "sha256="


def compute_signature(payload: bytes | str, secret: str) -> str:
    """Render the tagged HMAC-SHA256 hex digest GitHub sends for a payload."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    digest = hmac.new(
        key=secret.encode("utf-8"),
        msg=payload,
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def is_valid_payload(
    payload: bytes | str,
    secret: str,
    signature: str | None,
) -> bool:
    """
    Verify a webhook payload against its X-Hub-Signature-256 header.

    Verification fails closed: any error while computing the digest is
    reported as an invalid signature rather than raised.

    Args:
        payload: Raw request body
        secret: Webhook secret configured in GitHub and on the server
        signature: X-Hub-Signature-256 header value

    Returns:
        True if the tagged digest equals the provided signature exactly
    """
    if signature is None:
        return False

    try:
        expected = compute_signature(payload, secret)
        # Use timing-safe comparison to prevent timing attacks
        return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))
    except Exception as e:
        logger.warning("Signature verification errored", extra={"error": str(e)})
        return False
