"""
QStash Service — verifies scheduler webhook calls from Upstash QStash.

The queue is drained by a QStash schedule (cron) that POSTs to
/api/v1/push/process-queue every minute. Each call carries an
`Upstash-Signature` header: an HS256 JWT signed with the current
(or, during rotation, the next) signing key whose claims bind the
destination URL and a SHA-256 hash of the request body.
"""

import hashlib
import logging

import jwt

from mindboat_push.core import config as settings

logger = logging.getLogger(__name__)


def verify_qstash_signature(
    signature: str,
    body: bytes,
    url: str,
) -> dict:
    """
    Verify that an incoming webhook request is authentically from QStash.

    The JWT payload includes:
      - iss: "Upstash"
      - sub: The destination URL
      - exp / nbf / iat: validity window
      - jti: Unique message ID
      - body: SHA-256 hash of the request body

    Tries the current signing key first, then the next signing key.

    Returns:
        dict: The decoded JWT claims on success.

    Raises:
        ValueError: If the signature is missing, invalid, expired, or the
                    body hash / destination does not match.
    """
    if not signature:
        raise ValueError("Missing Upstash-Signature header")

    keys_to_try = []
    if settings.QSTASH_CURRENT_SIGNING_KEY:
        keys_to_try.append(("current", settings.QSTASH_CURRENT_SIGNING_KEY))
    if settings.QSTASH_NEXT_SIGNING_KEY:
        keys_to_try.append(("next", settings.QSTASH_NEXT_SIGNING_KEY))

    if not keys_to_try:
        raise ValueError(
            "No QStash signing keys configured. "
            "Set QSTASH_CURRENT_SIGNING_KEY in your .env file."
        )

    last_error = None
    for key_name, signing_key in keys_to_try:
        try:
            claims = jwt.decode(
                signature,
                signing_key,
                algorithms=["HS256"],
                issuer="Upstash",
                options={
                    "require": ["iss", "sub", "exp", "nbf", "iat", "jti", "body"],
                },
            )
        except jwt.ExpiredSignatureError:
            last_error = ValueError("QStash signature has expired")
            continue
        except jwt.InvalidTokenError as exc:
            last_error = ValueError(f"Invalid QStash signature ({key_name} key): {exc}")
            continue

        expected_body_hash = hashlib.sha256(body).hexdigest()
        if claims.get("body") != expected_body_hash:
            raise ValueError(
                f"Body hash mismatch: expected {expected_body_hash}, "
                f"got {claims.get('body')}"
            )

        if claims.get("sub") != url:
            raise ValueError(
                f"Destination URL mismatch: expected {url}, "
                f"got {claims.get('sub')}"
            )

        logger.info(
            f"QStash signature verified with {key_name} key "
            f"(message_id={claims.get('jti')})"
        )
        return claims

    raise last_error or ValueError("QStash signature verification failed")
