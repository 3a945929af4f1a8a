"""
Vault Key Rotation — Re-encryption of every stored secret under a new key.

Reads the whole snapshot, re-encrypts each envelope that is not already in
the target form, and writes the snapshot back once. The operation is
idempotent: envelopes readable by the new codec are skipped, so a run
interrupted by an error can be repeated. Rotating to a passthrough codec
decrypts everything back to plaintext.

Security Note:
    Plaintext exists in memory only during re-encryption of each secret.
    Never log plaintext or ciphertext values.
"""
import logging

from ..exceptions import DecryptionError
from .crypto import SecretCodec, is_encrypted
from .store import VaultStore

logger = logging.getLogger("totp_vault.vault")


def _in_target_form(envelope: str, new_codec: SecretCodec) -> bool:
    if is_encrypted(envelope) != new_codec.encryption_enabled:
        return False
    if not new_codec.encryption_enabled:
        return True
    try:
        new_codec.decrypt(envelope)
    except DecryptionError:
        return False
    return True


async def rotate_secrets(
    store: VaultStore,
    old_codec: SecretCodec,
    new_codec: SecretCodec,
) -> dict:
    """Re-encrypt all secrets from old_codec to new_codec.

    Args:
        store: Initialized vault store.
        old_codec: Codec able to read the current envelopes.
        new_codec: Codec producing the target envelopes.

    Returns:
        Stats dict with keys: total, rotated, errors, skipped.
    """
    stats = {"total": 0, "rotated": 0, "errors": 0, "skipped": 0}
    logger.info(
        "Starting key rotation (encryption %s -> %s)",
        "on" if old_codec.encryption_enabled else "off",
        "on" if new_codec.encryption_enabled else "off",
    )
    snapshot = await store.read()
    for user_id, vault in snapshot.items():
        for label in list(vault):
            stats["total"] += 1
            envelope = vault[label]
            if _in_target_form(envelope, new_codec):
                stats["skipped"] += 1
                continue
            try:
                plaintext = old_codec.decrypt(envelope)
            except DecryptionError as err:
                logger.error(
                    "Error rotating secret user=%s label=%s: %s",
                    user_id, label, err,
                )
                stats["errors"] += 1
                continue
            vault.replace_envelope(label, new_codec.encrypt(plaintext))
            stats["rotated"] += 1

    if stats["rotated"]:
        failed = await store.write(snapshot)
        if failed:
            logger.error("Key rotation could not persist users: %s", failed)
    logger.info("Key rotation complete: %s", stats)
    return stats
