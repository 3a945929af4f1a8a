"""Vault — Persistence and at-rest protection of TOTP secrets.

Security Note (Threat Model):
    Secrets are decrypted in process memory only while a code is being
    generated or a key is being rotated. A memory dump of the application
    process during that window could expose plaintext. Without
    SECRET_ENCRYPTION_KEY_BASE64 (or with a malformed one) secrets are
    persisted unencrypted; this is logged loudly at startup.
"""

from .config import VaultConfig, load_encryption_key, generate_encryption_key
from .crypto import SecretCodec, is_encrypted
from .backend import StorageBackend
from .file_backend import FileBackend
from .remote_backend import RemoteBackend
from .store import VaultStore
from .key_rotation import rotate_secrets

__all__ = [
    "VaultConfig",
    "load_encryption_key",
    "generate_encryption_key",
    "SecretCodec",
    "is_encrypted",
    "StorageBackend",
    "FileBackend",
    "RemoteBackend",
    "VaultStore",
    "rotate_secrets",
]
