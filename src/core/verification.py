"""Handover verification utilities: OTP codes, signed QR payloads, QR images."""
import base64
import hmac
import io
import secrets

from django.conf import settings
from django.core import signing

QR_SIGNING_SALT = "fulfillment.collection-qr"


def generate_otp(length: int | None = None) -> str:
    """Generate a numeric one-time code of ``OTP_LENGTH`` digits."""
    length = length or getattr(settings, "OTP_LENGTH", 6)
    return "".join(secrets.choice("0123456789") for _ in range(length))


def codes_match(expected: str, submitted: str) -> bool:
    """Constant-time comparison of two codes."""
    return hmac.compare_digest(str(expected).encode(), str(submitted).strip().encode())


def build_collection_qr_payload(order_id, code: str) -> str:
    """Sign ``(order_id, code)`` so that a scanned QR carries the same secret as the OTP."""
    return signing.dumps({"order": str(order_id), "code": code}, salt=QR_SIGNING_SALT)


def read_collection_qr_payload(payload: str) -> dict:
    """Return the decoded payload. Raises ``signing.BadSignature`` on tampering."""
    return signing.loads(payload, salt=QR_SIGNING_SALT)


def generate_qr_data_uri(data: str) -> str:
    """Generate QR code as base64 data URI for display on the site manager screen."""
    import qrcode

    qr = qrcode.make(data, box_size=4, border=2)
    buf = io.BytesIO()
    qr.save(buf, format="PNG")
    b64 = base64.b64encode(buf.getvalue()).decode()
    return f"data:image/png;base64,{b64}"
