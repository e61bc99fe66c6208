"""GitHub webhook signature verification.

GitHub signs every delivery with HMAC-SHA256 over the raw request body:
https://docs.github.com/en/webhooks/using-webhooks/validating-webhook-deliveries

Verification must see the body exactly as received; parsing and
re-serializing JSON can change whitespace or key order.
"""

import hashlib
import hmac
import logging

from autoprotector.errors import SignatureInvalidError, SignatureMissingError

log = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-hub-signature-256"
SIGNATURE_PREFIX = "sha256="


def sign_payload(payload: bytes, secret: str) -> str:
    """Return the ``x-hub-signature-256`` header value for a payload."""
    digest = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(signature: str | None, payload: bytes, secret: str | None) -> None:
    """Raise unless ``signature`` is GitHub's signature of ``payload``.

    Without a configured secret every payload is accepted, which is only
    acceptable outside production.
    """
    if secret is None:
        log.warning(
            "No webhook secret configured, ignoring payload signature "
            "(this should be configured for production use)",
        )
        return

    if signature is None:
        raise SignatureMissingError()

    # Only SHA-256 signatures are supported
    if not signature.startswith(SIGNATURE_PREFIX):
        raise SignatureInvalidError("unsupported signature algorithm")

    expected = sign_payload(payload, secret)
    # Constant-time comparison to prevent timing attacks
    if not hmac.compare_digest(expected.encode(), signature.encode()):
        log.warning("Received payload with invalid signature")
        raise SignatureInvalidError()

    log.debug("Verified payload signature")
