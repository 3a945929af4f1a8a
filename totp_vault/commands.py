"""
VaultCommands — Transport-independent handlers for the authenticator commands.

Each handler runs one read-modify-write cycle on the caller's vault:
- ``save(user_id, label, secret)`` — validate, encrypt and store a secret
- ``list_labels(user_id)`` — saved labels and the default label
- ``remove(user_id, label)`` — delete a label (default moves on)
- ``set_default(user_id, label)`` — choose the label used by ``code``
- ``code(user_id, label, secret)`` — current 6-digit code
- ``status(user_id)`` — label count, default label and encryption state

Errors are raised as ``VaultError`` subclasses; the transport turns them
into replies. ``DecryptionError`` is never caught here.
"""
import logging
from typing import Callable, NamedTuple, Optional

from .exceptions import (
    InvalidLabelError,
    InvalidSecretError,
    LabelNotFoundError,
    NoSecretError,
)
from .totp import generate_code
from .validators import (
    is_likely_base32,
    is_valid_code_format,
    is_valid_label,
    normalize_label,
    normalize_secret,
)
from .vault.crypto import SecretCodec
from .vault.store import VaultStore

logger = logging.getLogger("totp_vault.commands")


class CodeResult(NamedTuple):
    code: str
    source: str  # "manual secret", "label <x>" or "default label <x>"


class VaultStatus(NamedTuple):
    labels: list[str]
    default_label: Optional[str]
    encryption_enabled: bool


class VaultCommands:
    """Command layer over a VaultStore and a SecretCodec."""

    def __init__(
        self,
        store: VaultStore,
        codec: SecretCodec,
        generator: Callable[[str], str] = generate_code,
    ):
        self._store = store
        self._codec = codec
        self._generate = generator

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _validate_secret(self, raw: Optional[str]) -> str:
        """Normalize a Base32 secret and prove it yields a code.

        Raises:
            InvalidSecretError: If the secret is not Base32 or the
                generator rejects it.
        """
        secret = normalize_secret(raw)
        if not is_likely_base32(secret):
            raise InvalidSecretError(
                "Secret is not valid Base32 (use A-Z and digits 2-7)."
            )
        try:
            self._generate(secret)
        except Exception as err:
            raise InvalidSecretError(
                "Secret is invalid or cannot generate a TOTP code."
            ) from err
        return secret

    @staticmethod
    def _label(raw: Optional[str]) -> str:
        label = normalize_label(raw)
        if not is_valid_label(label):
            raise InvalidLabelError(
                "Label may only contain lowercase letters, digits, '_' or '-', "
                "length 2-32."
            )
        return label

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def save(self, user_id: str, label: str, secret: str) -> str:
        """Store a secret under label; the first label becomes the default.

        Returns:
            The normalized label.
        """
        label = self._label(label)
        secret = self._validate_secret(secret)
        async with self._store.transaction(user_id) as vault:
            vault[label] = self._codec.encrypt(secret)
        logger.info("Saved label=%s for user=%s", label, user_id)
        return label

    async def list_labels(self, user_id: str) -> tuple[list[str], Optional[str]]:
        async with self._store.transaction(user_id) as vault:
            return vault.labels, vault.default_label

    async def remove(self, user_id: str, label: str) -> Optional[str]:
        """Delete a label.

        Returns:
            The default label after removal.

        Raises:
            LabelNotFoundError: If the label is not saved.
        """
        label = normalize_label(label)
        async with self._store.transaction(user_id) as vault:
            if label not in vault:
                raise LabelNotFoundError(f"Label `{label}` not found.")
            del vault[label]
            default = vault.default_label
        logger.info("Removed label=%s for user=%s", label, user_id)
        return default

    async def set_default(self, user_id: str, label: str) -> str:
        label = normalize_label(label)
        async with self._store.transaction(user_id) as vault:
            if label not in vault:
                raise LabelNotFoundError(f"Label `{label}` not found.")
            vault.default_label = label
        return label

    async def code(
        self,
        user_id: str,
        label: Optional[str] = None,
        secret: Optional[str] = None,
    ) -> CodeResult:
        """Generate the current code.

        Source priority: explicit secret, then label, then default label.

        Raises:
            InvalidSecretError: If the explicit secret is invalid.
            LabelNotFoundError: If label is given but not saved.
            NoSecretError: If nothing is available to generate from.
            DecryptionError: If the stored secret cannot be decrypted.
        """
        if normalize_secret(secret):
            plaintext = self._validate_secret(secret)
            source = "manual secret"
        else:
            label = normalize_label(label)
            async with self._store.transaction(user_id) as vault:
                if label:
                    if label not in vault:
                        raise LabelNotFoundError(f"Label `{label}` not found.")
                    source = f"label `{label}`"
                elif vault.default_label:
                    label = vault.default_label
                    source = f"default label `{label}`"
                else:
                    raise NoSecretError(
                        "No secret found. Save one, pass a secret, or set a default label."
                    )
                envelope = vault[label]
            plaintext = self._codec.decrypt(envelope)
        code = self._generate(plaintext)
        if not is_valid_code_format(code):
            raise InvalidSecretError("Could not generate a 6-digit code from this secret.")
        return CodeResult(code=code, source=source)

    async def status(self, user_id: str) -> VaultStatus:
        async with self._store.transaction(user_id) as vault:
            return VaultStatus(
                labels=vault.labels,
                default_label=vault.default_label,
                encryption_enabled=self._codec.encryption_enabled,
            )
