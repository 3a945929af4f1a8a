"""
Vault Configuration — Storage and encryption settings loaded from the environment.

Recognized variables:
    MONGODB_URI = <connection string>              (unset => local file mode)
    MONGODB_DB = <database name>
    MONGODB_COLLECTION = <collection name>
    MONGODB_TLS = true|false                       (set => TLS mode is pinned)
    MONGODB_TLS_ALLOW_INVALID_CERTIFICATES = true|false
    MONGODB_SERVER_SELECTION_TIMEOUT_MS = <int>
    SECRET_ENCRYPTION_KEY_BASE64 = <base64-encoded 64-byte key>
    VAULT_DATA_FILE = <path to the local JSON store>

Security Note:
    Never log key material. Only log whether encryption is enabled.
"""
import os
import base64
import binascii
import secrets
import logging
from typing import Optional
from urllib.parse import urlsplit, parse_qs

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("totp_vault.vault")

KEY_MATERIAL_LENGTH = 64  # bytes, before SHA-256 derivation

DEFAULT_DATA_FILE = os.path.join("data", "user-secrets.json")
DEFAULT_DATABASE = "discord_auth_bot"
DEFAULT_COLLECTION = "user_vaults"
DEFAULT_SERVER_SELECTION_TIMEOUT_MS = 5000

_ENV_FIELDS = {
    "data_file": "VAULT_DATA_FILE",
    "mongodb_uri": "MONGODB_URI",
    "mongodb_db": "MONGODB_DB",
    "mongodb_collection": "MONGODB_COLLECTION",
    "mongodb_tls": "MONGODB_TLS",
    "mongodb_tls_allow_invalid_certificates": "MONGODB_TLS_ALLOW_INVALID_CERTIFICATES",
    "mongodb_server_selection_timeout_ms": "MONGODB_SERVER_SELECTION_TIMEOUT_MS",
    "encryption_key": "SECRET_ENCRYPTION_KEY_BASE64",
}


def uri_requires_tls(uri: str) -> bool:
    """Return True when the connection string itself mandates TLS.

    ``mongodb+srv://`` endpoints enable TLS implicitly; ``tls=true`` or
    ``ssl=true`` in the query string pin it as well.
    """
    if not uri:
        return False
    parts = urlsplit(uri)
    if parts.scheme.lower() == "mongodb+srv":
        return True
    options = {k.lower(): v for k, v in parse_qs(parts.query).items()}
    for name in ("tls", "ssl"):
        values = options.get(name)
        if values and values[-1].strip().lower() == "true":
            return True
    return False


def load_encryption_key(key_material: Optional[str]) -> Optional[bytes]:
    """Decode base64 key material into exactly 64 raw bytes.

    Misconfiguration is not fatal: the error is logged and None is returned,
    which leaves secrets stored unencrypted.

    Returns:
        Raw 64-byte key material, or None if absent or invalid.
    """
    if not key_material:
        return None
    # wrapped output (openssl rand -base64) and the urlsafe alphabet
    normalized = "".join(key_material.split()).replace("-", "+").replace("_", "/")
    try:
        raw = base64.b64decode(normalized, validate=True)
    except (binascii.Error, ValueError) as err:
        logger.error(
            "Invalid SECRET_ENCRYPTION_KEY_BASE64 format (%s); "
            "secrets will be stored UNENCRYPTED.", err
        )
        return None
    if len(raw) != KEY_MATERIAL_LENGTH:
        logger.error(
            "SECRET_ENCRYPTION_KEY_BASE64 must decode to exactly %d bytes, "
            "got %d; secrets will be stored UNENCRYPTED.",
            KEY_MATERIAL_LENGTH, len(raw)
        )
        return None
    return raw


def generate_encryption_key() -> str:
    """Generate random 64-byte key material and return it as base64.

    This is a utility for operators to generate new keys.

    Returns:
        Base64-encoded 64-byte key string.
    """
    return base64.b64encode(secrets.token_bytes(KEY_MATERIAL_LENGTH)).decode("ascii")


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    data_file: str = Field(default=DEFAULT_DATA_FILE, min_length=1)
    mongodb_uri: Optional[str] = None
    mongodb_db: str = Field(default=DEFAULT_DATABASE, min_length=1)
    mongodb_collection: str = Field(default=DEFAULT_COLLECTION, min_length=1)
    mongodb_tls: Optional[bool] = None
    mongodb_tls_allow_invalid_certificates: bool = False
    mongodb_server_selection_timeout_ms: int = Field(
        default=DEFAULT_SERVER_SELECTION_TIMEOUT_MS, gt=0
    )
    encryption_key: Optional[str] = Field(default=None, repr=False)

    @field_validator("mongodb_uri", "encryption_key")
    @classmethod
    def empty_as_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank strings as unset."""
        if v is not None and not v.strip():
            return None
        return v

    @property
    def remote_enabled(self) -> bool:
        return self.mongodb_uri is not None

    @property
    def tls_pinned(self) -> bool:
        """Whether TLS mode was set explicitly (disables the TLS flip retry)."""
        return self.mongodb_tls is not None

    @property
    def effective_tls(self) -> bool:
        """TLS mode for the first connection attempt."""
        if self.mongodb_tls is not None:
            return self.mongodb_tls
        return uri_requires_tls(self.mongodb_uri or "")

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Args:
            environ: Mapping to read instead of ``os.environ``.

        Returns:
            Populated VaultConfig instance.

        Raises:
            pydantic.ValidationError: If a boolean or integer variable is
                malformed.
        """
        env = os.environ if environ is None else environ
        values: dict = {}
        for field, name in _ENV_FIELDS.items():
            raw = env.get(name, "")
            if raw.strip():
                # key material keeps its own whitespace handling
                values[field] = raw if field == "encryption_key" else raw.strip()
        return cls(**values)
