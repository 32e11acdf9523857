# File: sparkle_api/services/two_factor_service.py

"""
TOTP two-factor authentication.

Secrets are RFC 6238 base32 strings (pyotp); the provisioning URI is also
rendered as an SVG QR code so the client can show it without extra assets.
"""

import base64
import io
import secrets
from typing import Optional

import pyotp
import qrcode
import qrcode.image.svg

from sparkle_api.core.config import settings
from sparkle_api.schemas.auth import TwoFactorSetup

SECRET_LENGTH = 32
BACKUP_CODE_COUNT = 8
# accept codes up to two 30s steps early or late
VALID_WINDOW = 2


def generate_backup_codes(count: int = BACKUP_CODE_COUNT) -> list[str]:
    return [secrets.token_hex(4).upper() for _ in range(count)]


def render_qr_data_url(data: str) -> str:
    image = qrcode.make(data, image_factory=qrcode.image.svg.SvgPathImage)
    buffer = io.BytesIO()
    image.save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


def generate_two_factor_secret(user) -> TwoFactorSetup:
    secret = pyotp.random_base32(length=SECRET_LENGTH)
    otpauth_url = pyotp.TOTP(secret).provisioning_uri(name=user.email, issuer_name=settings.app_name)

    return TwoFactorSetup(
        secret=secret,
        otpauth_url=otpauth_url,
        qr_code=render_qr_data_url(otpauth_url),
        backup_codes=generate_backup_codes(),
    )


def verify_two_factor_token(token: str, secret: str) -> bool:
    token = (token or "").strip().replace(" ", "")
    if not token.isdigit():
        return False
    return pyotp.TOTP(secret).verify(token, valid_window=VALID_WINDOW)


def verify_backup_code(code: str, backup_codes: list[str]) -> bool:
    return code.strip().upper() in backup_codes


def consume_backup_code(code: str, backup_codes: list[str]) -> Optional[list[str]]:
    """Return ``backup_codes`` without ``code``, or None if it is not one of them."""
    normalised = code.strip().upper()
    if normalised not in backup_codes:
        return None
    remaining = list(backup_codes)
    remaining.remove(normalised)
    return remaining
