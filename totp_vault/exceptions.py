"""TOTP Vault exceptions.

Storage failures are absorbed inside the vault layer (backups, fallback to
the local file). Integrity failures (``DecryptionError``) always reach the
caller so "wrong or missing key" can be told apart from "no such secret".
"""


class VaultError(Exception):
    """Base class for all vault errors."""


class DecryptionError(VaultError):
    """An encrypted envelope could not be authenticated or decoded."""


class StorageError(VaultError):
    """The storage layer was used before a backend was selected."""


class InvalidLabelError(VaultError, ValueError):
    """Label does not match ``[a-z0-9_-]{2,32}``."""


class InvalidSecretError(VaultError, ValueError):
    """Secret is not Base32 or cannot produce a TOTP code."""


class LabelNotFoundError(VaultError, KeyError):
    """Label is not present in the user's vault."""

    def __str__(self) -> str:
        # KeyError quotes its argument, keep the plain message.
        return str(self.args[0]) if self.args else ''


class NoSecretError(VaultError):
    """No explicit secret, label or default label to generate a code from."""
