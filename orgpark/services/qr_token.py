# orgpark/services/qr_token.py
"""
Signed QR tokens for gate verification.

Format: OPK1.<booking_id>.<expires_epoch>.<nonce>.<hmac>
The HMAC-SHA256 covers everything before it, keyed with QR_TOKEN_SECRET, so
the embedded booking id can only be trusted after the signature checks out.
"""

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone

from orgpark.config import settings
from orgpark.utils.exceptions import TokenInvalid

PREFIX = "OPK1"


def _sign(payload: str, secret: str) -> str:
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def expiry_for(booking_end_time: datetime) -> datetime:
    return booking_end_time + timedelta(hours=settings.QR_TOKEN_VALIDITY_HOURS)


def mint(booking_id: int, expires_at: datetime, secret: str = None) -> str:
    epoch = int(expires_at.replace(tzinfo=timezone.utc).timestamp())
    payload = f"{PREFIX}.{booking_id}.{epoch}.{secrets.token_hex(4)}"
    return f"{payload}.{_sign(payload, secret or settings.QR_TOKEN_SECRET)}"


def decode(token: str, secret: str = None) -> tuple:
    """Verify a token and return (booking_id, expires_at). Raises TokenInvalid."""
    parts = (token or "").strip().split(".")
    if len(parts) != 5 or parts[0] != PREFIX:
        raise TokenInvalid("Invalid QR code format")

    payload, signature = ".".join(parts[:4]), parts[4]
    if not hmac.compare_digest(signature, _sign(payload, secret or settings.QR_TOKEN_SECRET)):
        raise TokenInvalid("QR code signature mismatch")

    try:
        booking_id = int(parts[1])
        expires_at = datetime.fromtimestamp(int(parts[2]), tz=timezone.utc).replace(tzinfo=None)
    except ValueError:
        raise TokenInvalid("Invalid QR code payload")
    return booking_id, expires_at
