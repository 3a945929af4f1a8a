"""TOTP Vault — labeled authenticator secrets with encrypted persistence."""
from .version import __version__
from .data import Vault, Snapshot
from .exceptions import (
    VaultError,
    DecryptionError,
    StorageError,
    InvalidLabelError,
    InvalidSecretError,
    LabelNotFoundError,
    NoSecretError,
)

__all__ = [
    "__version__",
    "Vault",
    "Snapshot",
    "VaultError",
    "DecryptionError",
    "StorageError",
    "InvalidLabelError",
    "InvalidSecretError",
    "LabelNotFoundError",
    "NoSecretError",
]
