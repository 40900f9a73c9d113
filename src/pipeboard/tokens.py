"""
Token vault for the hosted backend.

Tokens are kept out of config.yaml. The file vault stores each one
Fernet-encrypted under ``<config dir>/tokens/``; the Fernet key is derived
with HKDF from a random per-install secret that never leaves the machine.
Anything that implements :class:`TokenVault` (an OS keychain bridge, a
test double) can stand in for it.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import os
from pathlib import Path
from typing import Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives.hashes import SHA256
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .config import config_dir
from .errors import PipeboardError

logger = logging.getLogger("pipeboard.tokens")

SECRET_FILE = ".secret"
SECRET_SIZE = 32


class TokenNotFoundError(PipeboardError):
    """No token stored for the identity."""


class TokenVault(Protocol):
    def get_token(self, identity: str) -> str: ...

    def store_token(self, identity: str, token: str) -> None: ...

    def clear_token(self, identity: str) -> None: ...


def _derive_key(master_material: bytes, info: bytes, length: int = 32) -> bytes:
    """Derive a key using HKDF-SHA256."""
    hkdf = HKDF(
        algorithm=SHA256(),
        length=length,
        salt=None,
        info=info,
    )
    return hkdf.derive(master_material)


def _token_file_name(identity: str) -> str:
    return hashlib.sha256(identity.encode("utf-8")).hexdigest()[:16] + ".tok"


class FileTokenVault:
    """Encrypted-file token storage."""

    def __init__(self, directory: Optional[Path] = None):
        self.directory = (directory or config_dir() / "tokens").expanduser()

    def get_token(self, identity: str) -> str:
        """Return the stored token.

        Raises:
            TokenNotFoundError: If nothing is stored or it cannot be decrypted.
        """
        path = self.directory / _token_file_name(identity)
        if not path.exists():
            raise TokenNotFoundError(f"no token stored for {identity}")
        try:
            token = self._fernet().decrypt(path.read_bytes())
        except InvalidToken:
            raise TokenNotFoundError(
                f"stored token for {identity} is unreadable"
            ) from None
        return token.decode("utf-8")

    def store_token(self, identity: str, token: str) -> None:
        self._ensure_dir()
        path = self.directory / _token_file_name(identity)
        path.write_bytes(self._fernet().encrypt(token.encode("utf-8")))
        path.chmod(0o600)
        logger.info("Stored token for %s", identity)

    def clear_token(self, identity: str) -> None:
        path = self.directory / _token_file_name(identity)
        path.unlink(missing_ok=True)
        logger.info("Cleared token for %s", identity)

    def _ensure_dir(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self.directory.chmod(0o700)

    def _fernet(self) -> Fernet:
        secret_path = self.directory / SECRET_FILE
        if secret_path.exists():
            secret = secret_path.read_bytes()
        else:
            self._ensure_dir()
            secret = os.urandom(SECRET_SIZE)
            secret_path.write_bytes(secret)
            secret_path.chmod(0o600)
        key = _derive_key(secret, b"pipeboard:token-vault:v1")
        return Fernet(base64.urlsafe_b64encode(key))
