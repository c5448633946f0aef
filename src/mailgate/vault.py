# =============================================================================
# Credential Vault
# =============================================================================
# Protects the two kinds of secrets the webmail bridge handles:
#
#   1. Mailbox passwords (reversible): each user's IMAP/SMTP password must be
#      recoverable at request time so we can log in on their behalf. These
#      are encrypted with AES-256-GCM under a process-wide vault key.
#
#   2. Webmail login secrets (one-way): the password a user types into the
#      webmail login form. We only ever need to verify it, so it is hashed
#      with salted, iterated PBKDF2-HMAC-SHA512.
#
# The two domains must never be interchanged: a login hash cannot be used to
# reach a mailbox, and an encrypted mailbox password is never compared
# against a login attempt.
#
# Storage format for encrypted credentials:
#     <iv hex>:<tag hex>:<ciphertext hex>
# =============================================================================

import hashlib
import hmac
import logging
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from mailgate.errors import ConfigurationError, CredentialError, DecryptionError

logger = logging.getLogger(__name__)

# AES-256 key length in bytes
KEY_SIZE = 32

# GCM initialization vector and tag lengths (bytes)
IV_LENGTH = 16
TAG_LENGTH = 16

# Login secret hashing parameters
SALT_LENGTH = 32
PBKDF2_ITERATIONS = 100_000
PBKDF2_KEYLEN = 64
PBKDF2_DIGEST = "sha512"


def generate_key() -> str:
    """
    Generate a fresh random vault key.

    Returns:
        64-character hex string suitable for MAILGATE_VAULT_KEY.
    """
    return secrets.token_hex(KEY_SIZE)


def generate_token(length: int = 32) -> str:
    """Generate a random hex token of `length` bytes."""
    return secrets.token_hex(length)


class CredentialVault:
    """
    Encrypts mailbox credentials and hashes login secrets.

    The vault key is injected at construction rather than read from the
    environment on every call, so tests can use fixed keys and a missing
    key is detected once at startup.

    Usage:
        >>> vault = CredentialVault(generate_key())
        >>> token = vault.encrypt("hunter2")
        >>> vault.decrypt(token)
        'hunter2'

    Raises:
        ConfigurationError: If the key is missing or not 32 bytes.
    """

    def __init__(self, key: str | bytes | None) -> None:
        self._aead = AESGCM(self._load_key(key))

    @staticmethod
    def _load_key(key: str | bytes | None) -> bytes:
        """Validate and decode the vault key (hex string or raw bytes)."""
        if not key:
            raise ConfigurationError(
                "Vault key is not set. Set MAILGATE_VAULT_KEY "
                "(generate one with: mailgate genkey)."
            )

        if isinstance(key, str):
            try:
                raw = bytes.fromhex(key.strip())
            except ValueError as e:
                raise ConfigurationError("Vault key must be a hex string.") from e
        else:
            raw = key

        if len(raw) != KEY_SIZE:
            raise ConfigurationError(
                f"Vault key must be {KEY_SIZE} bytes ({KEY_SIZE * 2} hex characters), "
                f"got {len(raw)} bytes."
            )
        return raw

    # -------------------------------------------------------------------------
    # Mailbox credentials (reversible)
    # -------------------------------------------------------------------------

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a mailbox password.

        A fresh random IV is drawn on every call, so encrypting the same
        password twice yields different tokens.

        Args:
            plaintext: The mailbox password.

        Returns:
            Encoded credential "<iv>:<tag>:<ciphertext>" (all hex).

        Raises:
            CredentialError: If the password is empty.
        """
        if not plaintext:
            raise CredentialError("Mail password must not be empty.")

        iv = secrets.token_bytes(IV_LENGTH)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)

        # AESGCM appends the tag to the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, token: str) -> str:
        """
        Decrypt a mailbox password.

        Args:
            token: Encoded credential produced by encrypt().

        Returns:
            The plaintext password.

        Raises:
            DecryptionError: If the token is malformed, the tag does not
                verify, the key differs from the one used to encrypt, or
                the plaintext is empty.
        """
        parts = (token or "").split(":")
        if len(parts) != 3:
            raise DecryptionError()

        try:
            iv = bytes.fromhex(parts[0])
            tag = bytes.fromhex(parts[1])
            ciphertext = bytes.fromhex(parts[2])
        except ValueError as e:
            raise DecryptionError() from e

        if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
            raise DecryptionError()

        try:
            plaintext = self._aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            # Wrong key and tampered data are indistinguishable here
            logger.warning("Credential tag verification failed")
            raise DecryptionError() from e

        try:
            password = plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError() from e

        if not password:
            raise DecryptionError()
        return password

    # -------------------------------------------------------------------------
    # Login secrets (one-way)
    # -------------------------------------------------------------------------

    @staticmethod
    def hash_login_secret(secret: str) -> str:
        """
        Hash a webmail login secret.

        Returns:
            "<salt hex>:<derived key hex>"
        """
        salt = secrets.token_bytes(SALT_LENGTH)
        derived = hashlib.pbkdf2_hmac(
            PBKDF2_DIGEST, secret.encode("utf-8"), salt, PBKDF2_ITERATIONS, PBKDF2_KEYLEN
        )
        return f"{salt.hex()}:{derived.hex()}"

    @staticmethod
    def verify_login_secret(secret: str, stored: str) -> bool:
        """
        Check a login secret against a stored hash.

        The comparison runs in constant time with respect to the secret.
        A malformed stored value never verifies.
        """
        parts = (stored or "").split(":")
        if len(parts) != 2:
            return False

        try:
            salt = bytes.fromhex(parts[0])
            expected = bytes.fromhex(parts[1])
        except ValueError:
            return False

        derived = hashlib.pbkdf2_hmac(
            PBKDF2_DIGEST, secret.encode("utf-8"), salt, PBKDF2_ITERATIONS, len(expected) or PBKDF2_KEYLEN
        )
        return hmac.compare_digest(derived, expected)
