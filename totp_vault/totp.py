"""TOTP code generation.

The vault only needs the current code for a stored secret, so this wraps
``pyotp`` with the parameters authenticator apps use by default.
"""
import pyotp

TOTP_DIGITS = 6
TOTP_INTERVAL = 30  # seconds


def generate_code(secret: str) -> str:
    """Return the current 6-digit code for a Base32 secret.

    Raises:
        binascii.Error / ValueError: If the secret is not valid Base32.
    """
    return pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL).now()
