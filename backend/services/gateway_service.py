"""
Gateway callback verification.

Gateways sign the raw callback body with HMAC-SHA256 using the shared
GATEWAY_CALLBACK_SECRET and send the hex digest in X-Gateway-Signature.
Verification FAILS CLOSED when the secret is not configured.
"""
import hashlib
import hmac
import logging

from config import settings

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-gateway-signature"


def sign_payload(payload: bytes, secret: str | None = None) -> str:
    key = secret if secret is not None else settings.gateway_callback_secret
    return hmac.new(key.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_callback_signature(payload: bytes, signature: str | None) -> bool:
    """True only if `signature` is the HMAC of `payload` under the configured secret."""
    if not settings.gateway_callback_secret:
        logger.error(
            "GATEWAY_CALLBACK_SECRET not configured — rejecting callback. "
            "Set GATEWAY_CALLBACK_SECRET in .env to accept gateway callbacks."
        )
        return False

    if not signature:
        logger.warning("Gateway callback received without signature header")
        return False

    return hmac.compare_digest(sign_payload(payload), signature.strip().lower())
