"""Per-user symmetric encryption for notes and third-party credentials.

Implements XSalsa20-Poly1305 authenticated encryption using PyNaCl
(libsodium bindings). Each user has their own 32-byte key, stored
base64-encoded in the identity provider's private metadata.

Storage format: base64(nonce || ciphertext+tag). SecretBox generates a
fresh random 24-byte nonce on every encryption.

Security invariants:
- Never log plaintext or ciphertext
- Empty notes are stored as "" and never passed through the cipher
- Decryption failure is an error, never a silent pass-through
"""

import base64
import binascii

from nacl.exceptions import CryptoError as NaclCryptoError
from nacl.secret import SecretBox
from nacl.utils import random as random_bytes

from unearthed.logging import get_logger

logger = get_logger(__name__)

# Key size for SecretBox (32 bytes)
USER_KEY_SIZE = SecretBox.KEY_SIZE

# Nonce size for SecretBox (24 bytes)
NONCE_SIZE = SecretBox.NONCE_SIZE


class CryptoError(Exception):
    """Raised when cryptographic operations fail."""

    pass


def generate_user_key() -> str:
    """Generate a new random per-user key, base64-encoded for metadata storage."""
    return base64.b64encode(random_bytes(USER_KEY_SIZE)).decode("ascii")


def _load_box(key_b64: str) -> SecretBox:
    if not key_b64:
        raise CryptoError("Encryption key is missing")
    try:
        key = base64.b64decode(key_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CryptoError(f"Encryption key is not valid base64: {e}") from e
    if len(key) != USER_KEY_SIZE:
        raise CryptoError(f"Encryption key must be {USER_KEY_SIZE} bytes, got {len(key)} bytes")
    return SecretBox(key)


def encrypt_text(plaintext: str, key_b64: str) -> str:
    """Encrypt a string with the user's key.

    Args:
        plaintext: The text to encrypt.
        key_b64: Base64-encoded 32-byte user key.

    Returns:
        base64(nonce || ciphertext).

    Raises:
        CryptoError: If the key is invalid or encryption fails.
    """
    box = _load_box(key_b64)
    try:
        encrypted = box.encrypt(plaintext.encode("utf-8"))
    except NaclCryptoError as e:
        logger.error("encryption_failed", error=str(e))
        raise CryptoError(f"Encryption failed: {e}") from e
    return base64.b64encode(bytes(encrypted)).decode("ascii")


def decrypt_text(ciphertext_b64: str, key_b64: str) -> str:
    """Decrypt a value produced by encrypt_text.

    Raises:
        CryptoError: Wrong key, truncated or tampered ciphertext, or invalid base64.
    """
    box = _load_box(key_b64)
    try:
        data = base64.b64decode(ciphertext_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CryptoError(f"Ciphertext is not valid base64: {e}") from e

    if len(data) <= NONCE_SIZE:
        raise CryptoError("Ciphertext is too short")

    try:
        plaintext = box.decrypt(data)
    except NaclCryptoError as e:
        logger.error("decryption_failed", error=str(e))
        raise CryptoError(f"Decryption failed: {e}") from e
    return plaintext.decode("utf-8")


def encrypt_note(note: str | None, key_b64: str) -> str:
    """Encrypt a quote note; empty or missing notes are stored as ""."""
    if not note:
        return ""
    return encrypt_text(note, key_b64)


def decrypt_note(stored: str | None, key_b64: str) -> str:
    """Decrypt a stored quote note; "" reads back as ""."""
    if not stored:
        return ""
    return decrypt_text(stored, key_b64)


def encrypt_optional(value: str | None, key_b64: str) -> str | None:
    """Encrypt a credential, keeping None/"" as None (credential cleared)."""
    if not value:
        return None
    return encrypt_text(value, key_b64)


def decrypt_optional(stored: str | None, key_b64: str) -> str | None:
    """Decrypt a stored credential; None stays None."""
    if not stored:
        return None
    return decrypt_text(stored, key_b64)
