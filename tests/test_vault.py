"""Tests for the credential vault: mailbox password encryption and login hashing."""

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from mailgate.errors import ConfigurationError, CredentialError, DecryptionError
from mailgate.vault import (
    IV_LENGTH,
    PBKDF2_KEYLEN,
    SALT_LENGTH,
    TAG_LENGTH,
    CredentialVault,
    generate_key,
    generate_token,
)

from conftest import TEST_VAULT_KEY


class TestKeyHandling:
    """Vault construction and key generation."""

    def test_generate_key_is_64_hex_chars(self) -> None:
        key = generate_key()
        assert len(key) == 64
        bytes.fromhex(key)

    def test_generated_keys_differ(self) -> None:
        assert generate_key() != generate_key()

    def test_generate_token_length(self) -> None:
        assert len(generate_token()) == 64
        assert len(generate_token(8)) == 16

    @pytest.mark.parametrize("key", [None, "", "not-hex", "abcd", "00" * 31])
    def test_bad_key_is_configuration_error(self, key) -> None:
        with pytest.raises(ConfigurationError):
            CredentialVault(key)

    def test_raw_bytes_key_accepted(self) -> None:
        vault = CredentialVault(bytes.fromhex(TEST_VAULT_KEY))
        assert vault.decrypt(vault.encrypt("pw")) == "pw"


class TestMailboxCredentials:
    """Reversible encryption of mailbox passwords."""

    def test_round_trip(self, vault) -> None:
        assert vault.decrypt(vault.encrypt("hunter2")) == "hunter2"

    def test_round_trip_unicode(self, vault) -> None:
        assert vault.decrypt(vault.encrypt("pässwörd✓")) == "pässwörd✓"

    def test_token_format(self, vault) -> None:
        iv, tag, ciphertext = vault.encrypt("hunter2").split(":")
        assert len(bytes.fromhex(iv)) == IV_LENGTH
        assert len(bytes.fromhex(tag)) == TAG_LENGTH
        assert len(bytes.fromhex(ciphertext)) == len("hunter2")

    def test_fresh_iv_per_encryption(self, vault) -> None:
        first = vault.encrypt("hunter2")
        second = vault.encrypt("hunter2")
        assert first != second
        assert first.split(":")[0] != second.split(":")[0]

    def test_wrong_key_fails_loudly(self, vault) -> None:
        token = vault.encrypt("hunter2")
        other = CredentialVault(generate_key())

        with pytest.raises(DecryptionError) as exc_info:
            other.decrypt(token)

        assert exc_info.value.kind == "credential"
        assert "re-enter" in exc_info.value.message

    def test_decryption_error_is_credential_error(self, vault) -> None:
        with pytest.raises(CredentialError):
            vault.decrypt("garbage")

    def test_tampered_ciphertext_rejected(self, vault) -> None:
        iv, tag, ciphertext = vault.encrypt("hunter2").split(":")
        flipped = f"{int(ciphertext[0], 16) ^ 1:x}" + ciphertext[1:]

        with pytest.raises(DecryptionError):
            vault.decrypt(f"{iv}:{tag}:{flipped}")

    def test_tampered_tag_rejected(self, vault) -> None:
        iv, tag, ciphertext = vault.encrypt("hunter2").split(":")
        flipped = tag[:-1] + f"{int(tag[-1], 16) ^ 1:x}"

        with pytest.raises(DecryptionError):
            vault.decrypt(f"{iv}:{flipped}:{ciphertext}")

    @pytest.mark.parametrize("token", ["", "a:b", "a:b:c:d", "zz:zz:zz", "00:00:00"])
    def test_malformed_tokens_rejected(self, vault, token) -> None:
        with pytest.raises(DecryptionError):
            vault.decrypt(token)

    def test_empty_password_refused_at_encryption(self, vault) -> None:
        with pytest.raises(CredentialError) as exc_info:
            vault.encrypt("")

        assert not isinstance(exc_info.value, DecryptionError)
        assert exc_info.value.kind == "credential"

    def test_empty_ciphertext_token_rejected(self, vault) -> None:
        iv = bytes(IV_LENGTH)
        tag = AESGCM(bytes.fromhex(TEST_VAULT_KEY)).encrypt(iv, b"", None)

        with pytest.raises(DecryptionError):
            vault.decrypt(f"{iv.hex()}:{tag.hex()}:")


class TestLoginSecrets:
    """One-way hashing of webmail login secrets."""

    def test_verify_correct_secret(self) -> None:
        stored = CredentialVault.hash_login_secret("s3cret")
        assert CredentialVault.verify_login_secret("s3cret", stored)

    def test_hash_format(self) -> None:
        salt, derived = CredentialVault.hash_login_secret("s3cret").split(":")
        assert len(bytes.fromhex(salt)) == SALT_LENGTH
        assert len(bytes.fromhex(derived)) == PBKDF2_KEYLEN

    def test_same_secret_hashes_differently(self) -> None:
        assert CredentialVault.hash_login_secret("s3cret") != CredentialVault.hash_login_secret("s3cret")

    def test_one_bit_flip_rejected(self) -> None:
        stored = CredentialVault.hash_login_secret("s3cret")
        flipped = chr(ord("s") ^ 1) + "3cret"

        assert not CredentialVault.verify_login_secret(flipped, stored)

    def test_wrong_secret_rejected(self) -> None:
        stored = CredentialVault.hash_login_secret("s3cret")
        assert not CredentialVault.verify_login_secret("S3cret", stored)

    @pytest.mark.parametrize("stored", ["", "nocolon", "zz:zz", "a:b:c"])
    def test_malformed_stored_value_never_verifies(self, stored) -> None:
        assert not CredentialVault.verify_login_secret("s3cret", stored)
