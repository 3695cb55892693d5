"""
Webhook Security Module

Signature verification for gateway webhooks:
- HMAC-SHA256 over the raw body, hex encoded, optional "sha256=" prefix
- Constant-time comparison
"""

import hashlib
import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("x-webhook-signature", "x-hub-signature-256")


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two strings in constant time"""
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature_header: Optional[str], secret: str) -> bool:
    """Check a hex signature header against the raw body"""
    if not signature_header or not secret:
        return False

    provided = signature_header.strip()
    if provided.startswith("sha256="):
        provided = provided[len("sha256=") :]

    return constant_time_compare(compute_hmac_sha256(secret, raw_body), provided.lower())


async def verify_gateway_webhook(
    request: Request, secret: Optional[str], raise_on_failure: bool = True
) -> tuple[bool, bytes]:
    """
    Verify a gateway webhook when a shared secret is configured.

    Args:
        request: FastAPI request object
        secret: WEBHOOK_HMAC_SECRET, verification is skipped when empty
        raise_on_failure: If True, raises HTTPException on failure

    Returns:
        Tuple of (is_valid, raw_body)
    """
    raw_body = await request.body()

    if not secret:
        return True, raw_body

    signature = None
    for header in SIGNATURE_HEADERS:
        signature = request.headers.get(header)
        if signature:
            break

    if not signature:
        logger.warning(f"🚫 Webhook missing signature header on {request.url.path}")
        if raise_on_failure:
            raise HTTPException(status_code=401, detail="Invalid webhook signature")
        return False, raw_body

    if not verify_signature(raw_body, signature, secret):
        client_ip = request.client.host if request.client else "unknown"
        logger.warning(f"🚫 Invalid webhook signature from IP: {client_ip}")
        if raise_on_failure:
            raise HTTPException(status_code=401, detail="Invalid webhook signature")
        return False, raw_body

    logger.debug("✅ Webhook signature verified")
    return True, raw_body


def create_webhook_signature(secret: str, payload: bytes) -> str:
    """Create a signature header value for outgoing or test webhooks"""
    return f"sha256={compute_hmac_sha256(secret, payload)}"
