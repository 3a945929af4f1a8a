"""
Vault Crypto Core — Key derivation and secret envelope encryption/decryption.

Envelope format (all components standard base64):
    enc:v1:<nonce 12B>:<GCM tag 16B>:<ciphertext>

Key derivation: SHA-256(64-byte key material) → AES-256-GCM key.
Values without the ``enc:v1:`` prefix are plaintext and pass through
unchanged, so plaintext and encrypted envelopes can coexist in one store.

Security Note:
    Never log plaintext or ciphertext values.
    Nonces are random 96-bit; collision probability negligible under normal usage.
"""
import os
import base64
import binascii
import logging
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import DecryptionError
from .config import load_encryption_key

logger = logging.getLogger("totp_vault.vault")

ENVELOPE_VERSION = "enc:v1"
ENVELOPE_PREFIX = f"{ENVELOPE_VERSION}:"
ENVELOPE_FIELDS = 5  # "enc", "v1", nonce, tag, ciphertext
NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # GCM tag
KEY_LENGTH = 32  # AES-256


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(key_material: bytes) -> bytes:
    """Hash raw key material to a 32-byte AES key with SHA-256.

    Args:
        key_material: Raw 64-byte key material.

    Returns:
        32-byte derived key.
    """
    digest = hashes.Hash(hashes.SHA256())
    digest.update(key_material)
    return digest.finalize()


def is_encrypted(value: object) -> bool:
    """Return True if value carries the versioned envelope prefix."""
    return isinstance(value, str) and value.startswith(ENVELOPE_PREFIX)


def _b64decode(component: str, name: str) -> bytes:
    try:
        return base64.b64decode(component, validate=True)
    except (binascii.Error, ValueError) as err:
        raise DecryptionError(
            f"Invalid encrypted payload: {name} is not valid base64"
        ) from err


class SecretCodec:
    """Authenticated encryption of individual secret values.

    Built from optional base64 key material. Without usable key material
    the codec runs in passthrough mode: values are stored and returned as-is
    and ``encryption_enabled`` is False.
    """

    def __init__(self, key_material: Optional[str] = None):
        raw = load_encryption_key(key_material)
        self._cipher: Optional[AESGCM] = (
            AESGCM(derive_key(raw)) if raw is not None else None
        )
        if self._cipher is None and not key_material:
            logger.info("Secret encryption disabled (no key configured).")

    def __repr__(self) -> str:
        return f"<SecretCodec encryption_enabled={self.encryption_enabled}>"

    @property
    def encryption_enabled(self) -> bool:
        return self._cipher is not None

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a secret value into an ``enc:v1`` envelope.

        Args:
            plaintext: Secret to protect.

        Returns:
            The envelope string, or plaintext unchanged in passthrough mode.
        """
        if self._cipher is None:
            return plaintext
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._cipher.encrypt(nonce, plaintext.encode("utf-8"), None)
        # cryptography appends the tag to the ciphertext
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return ":".join((
            ENVELOPE_VERSION,
            base64.b64encode(nonce).decode("ascii"),
            base64.b64encode(tag).decode("ascii"),
            base64.b64encode(ciphertext).decode("ascii"),
        ))

    def decrypt(self, envelope: str) -> str:
        """Decrypt an envelope produced by :meth:`encrypt`.

        Values without the envelope prefix are returned unchanged.

        Args:
            envelope: Stored secret value.

        Returns:
            Plaintext secret.

        Raises:
            DecryptionError: If the envelope requires a key that is not
                configured, is malformed, or fails tag verification.
        """
        if not is_encrypted(envelope):
            return envelope
        if self._cipher is None:
            raise DecryptionError(
                "Secret is encrypted but SECRET_ENCRYPTION_KEY_BASE64 is missing."
            )
        parts = envelope.split(":")
        if len(parts) != ENVELOPE_FIELDS:
            raise DecryptionError("Invalid encrypted payload format.")
        nonce = _b64decode(parts[2], "nonce")
        tag = _b64decode(parts[3], "tag")
        ciphertext = _b64decode(parts[4], "ciphertext")
        if len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
            raise DecryptionError("Invalid encrypted payload format.")
        try:
            plaintext = self._cipher.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as err:
            raise DecryptionError(
                "Secret authentication failed (wrong key or tampered data)."
            ) from err
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as err:
            raise DecryptionError("Decrypted secret is not valid UTF-8.") from err
