"""
Passphrase-based authenticated encryption for slot payloads.

Blob layout: salt (16 bytes) || nonce (12 bytes) || AES-256-GCM ciphertext
with its 16-byte tag. The key is stretched from the passphrase with
PBKDF2-HMAC-SHA256, so every blob carries its own salt and nothing but the
passphrase has to be shared between machines.
"""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.hashes import SHA256
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..errors import CryptoError

SALT_SIZE = 16
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32
ITERATIONS = 100_000


def derive_key(passphrase: str, salt: bytes) -> bytes:
    """Derive a 256-bit key from a passphrase using PBKDF2.

    Args:
        passphrase: User secret.
        salt: Per-blob random salt.

    Returns:
        32 bytes of key material.
    """
    kdf = PBKDF2HMAC(
        algorithm=SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=ITERATIONS,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def encrypt(data: bytes, passphrase: str) -> bytes:
    """Encrypt data with AES-256-GCM under a passphrase-derived key.

    Two calls with the same input produce different blobs.

    Raises:
        CryptoError: If the passphrase is empty.
    """
    if not passphrase:
        raise CryptoError("passphrase cannot be empty")

    salt = os.urandom(SALT_SIZE)
    nonce = os.urandom(NONCE_SIZE)
    key = derive_key(passphrase, salt)
    return salt + nonce + AESGCM(key).encrypt(nonce, data, None)


def decrypt(blob: bytes, passphrase: str) -> bytes:
    """Reverse :func:`encrypt`.

    Raises:
        CryptoError: On an empty passphrase, a truncated blob, or a failed
            authentication tag (wrong passphrase and corruption look the same).
    """
    if not passphrase:
        raise CryptoError("passphrase cannot be empty")
    if len(blob) < SALT_SIZE + NONCE_SIZE + TAG_SIZE:
        raise CryptoError("ciphertext too short")

    salt = blob[:SALT_SIZE]
    nonce = blob[SALT_SIZE:SALT_SIZE + NONCE_SIZE]
    ciphertext = blob[SALT_SIZE + NONCE_SIZE:]

    key = derive_key(passphrase, salt)
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag:
        raise CryptoError("decryption failed (wrong passphrase?)") from None
