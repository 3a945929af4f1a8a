"""
End-to-end tests for VaultCommands over a file-backed store.

Tests cover:
- save / list / remove / set-default / status
- code generation from explicit secrets, labels and the default label
- encryption at rest and decryption failures
"""
import json

import pyotp
import pytest

from totp_vault.commands import CodeResult, VaultCommands
from totp_vault.exceptions import (
    DecryptionError,
    InvalidLabelError,
    InvalidSecretError,
    LabelNotFoundError,
    NoSecretError,
)
from totp_vault.vault import SecretCodec

SECRET = "JBSWY3DPEHPK3PXP"
OTHER_SECRET = "GEZDGNBVGY3TQOJQ"


@pytest.fixture
def commands(file_store, plain_codec):
    return VaultCommands(file_store, plain_codec)


@pytest.fixture
def encrypted_commands(file_store, codec):
    return VaultCommands(file_store, codec)


class TestSave:
    """Tests for save()."""

    async def test_default_label_lifecycle(self, commands, file_store):
        await commands.save("u1", "work", SECRET)
        vault = (await file_store.read())["u1"]
        assert vault.default_label == "work"

        await commands.save("u1", "home", OTHER_SECRET)
        vault = (await file_store.read())["u1"]
        assert vault.default_label == "work"

        assert await commands.remove("u1", "work") == "home"
        vault = (await file_store.read())["u1"]
        assert "work" not in vault
        assert vault.default_label == "home"

        assert await commands.remove("u1", "home") is None
        assert (await file_store.read())["u1"].default_label is None

    async def test_normalizes_input(self, commands, file_store):
        label = await commands.save("u1", "  GitHub ", "jbsw y3dp-ehpk 3pxp")
        assert label == "github"
        assert (await file_store.read())["u1"]["github"] == SECRET

    async def test_invalid_label(self, commands, file_store):
        with pytest.raises(InvalidLabelError):
            await commands.save("u1", "x", SECRET)
        assert await file_store.read() == {}

    async def test_non_base32_secret(self, commands):
        with pytest.raises(InvalidSecretError):
            await commands.save("u1", "work", "NOT-BASE32-189")

    async def test_generator_failure_not_swallowed(self, file_store, plain_codec):
        def failing(secret):
            raise ValueError("bad secret")

        commands = VaultCommands(file_store, plain_codec, generator=failing)
        with pytest.raises(InvalidSecretError) as info:
            await commands.save("u1", "work", SECRET)
        assert isinstance(info.value.__cause__, ValueError)
        assert await file_store.read() == {}

    async def test_encrypted_at_rest(self, encrypted_commands, codec, file_store, data_file):
        await encrypted_commands.save("u1", "work", SECRET)
        envelope = (await file_store.read())["u1"]["work"]
        assert envelope.startswith("enc:v1:")
        assert codec.decrypt(envelope) == SECRET
        with open(data_file, encoding="utf-8") as f:
            assert SECRET not in f.read()

    async def test_users_isolated(self, commands):
        await commands.save("u1", "work", SECRET)
        await commands.save("u2", "home", OTHER_SECRET)
        assert await commands.list_labels("u1") == (["work"], "work")
        assert await commands.list_labels("u2") == (["home"], "home")


class TestLabels:
    """Tests for list_labels / remove / set_default / status."""

    async def test_list_empty(self, commands):
        assert await commands.list_labels("u1") == ([], None)

    async def test_list_sorted(self, commands):
        await commands.save("u1", "zeta", SECRET)
        await commands.save("u1", "alpha", OTHER_SECRET)
        assert await commands.list_labels("u1") == (["alpha", "zeta"], "zeta")

    async def test_remove_missing(self, commands):
        with pytest.raises(LabelNotFoundError):
            await commands.remove("u1", "work")

    async def test_set_default(self, commands):
        await commands.save("u1", "work", SECRET)
        await commands.save("u1", "home", OTHER_SECRET)
        assert await commands.set_default("u1", "HOME") == "home"
        assert (await commands.list_labels("u1"))[1] == "home"

    async def test_set_default_missing(self, commands):
        with pytest.raises(LabelNotFoundError):
            await commands.set_default("u1", "work")

    async def test_status(self, encrypted_commands):
        await encrypted_commands.save("u1", "work", SECRET)
        status = await encrypted_commands.status("u1")
        assert status.labels == ["work"]
        assert status.default_label == "work"
        assert status.encryption_enabled is True


class TestCode:
    """Tests for code()."""

    async def test_from_default(self, encrypted_commands):
        await encrypted_commands.save("u1", "work", SECRET)
        result = await encrypted_commands.code("u1")
        assert isinstance(result, CodeResult)
        assert pyotp.TOTP(SECRET).verify(result.code, valid_window=1)
        assert "default label" in result.source

    async def test_from_label(self, commands):
        await commands.save("u1", "work", SECRET)
        await commands.save("u1", "home", OTHER_SECRET)
        result = await commands.code("u1", label="home")
        assert pyotp.TOTP(OTHER_SECRET).verify(result.code, valid_window=1)
        assert result.source == "label `home`"

    async def test_from_manual_secret(self, commands, file_store):
        result = await commands.code("u1", secret=SECRET.lower())
        assert pyotp.TOTP(SECRET).verify(result.code, valid_window=1)
        assert result.source == "manual secret"
        assert await file_store.read() == {}

    async def test_manual_secret_invalid(self, commands):
        with pytest.raises(InvalidSecretError):
            await commands.code("u1", secret="18!!")

    async def test_missing_label(self, commands):
        await commands.save("u1", "work", SECRET)
        with pytest.raises(LabelNotFoundError):
            await commands.code("u1", label="gmail")

    async def test_nothing_saved(self, commands):
        with pytest.raises(NoSecretError):
            await commands.code("u1")

    async def test_missing_key_is_decryption_error(
        self, encrypted_commands, file_store, plain_codec
    ):
        await encrypted_commands.save("u1", "work", SECRET)
        without_key = VaultCommands(file_store, plain_codec)
        with pytest.raises(DecryptionError):
            await without_key.code("u1")

    async def test_wrong_key_is_decryption_error(
        self, encrypted_commands, file_store, other_key_material
    ):
        await encrypted_commands.save("u1", "work", SECRET)
        wrong = VaultCommands(file_store, SecretCodec(other_key_material))
        with pytest.raises(DecryptionError):
            await wrong.code("u1", label="work")

    async def test_bad_code_format(self, file_store, plain_codec):
        commands = VaultCommands(file_store, plain_codec, generator=lambda s: "12345")
        with pytest.raises(InvalidSecretError):
            await commands.code("u1", secret=SECRET)

    async def test_legacy_plaintext_with_key(self, file_store, data_file, codec):
        with open(data_file, "w", encoding="utf-8") as f:
            json.dump({"u1": {"secrets": {"work": SECRET}, "defaultLabel": "work"}}, f)
        result = await VaultCommands(file_store, codec).code("u1")
        assert pyotp.TOTP(SECRET).verify(result.code, valid_window=1)
