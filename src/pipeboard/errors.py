"""
Error taxonomy for pipeboard.

Every failure that reaches the command line is a PipeboardError. Each one
carries a ``permanent`` tag decided where the error originates, so the
retry policy never has to guess from message text whether trying again
could help.
"""

from __future__ import annotations

from typing import Optional


class PipeboardError(Exception):
    """Base class for all pipeboard errors.

    Attributes:
        permanent: True if retrying the failed operation cannot succeed.
    """

    permanent: bool = True

    def __init__(self, message: str, *, permanent: Optional[bool] = None):
        super().__init__(message)
        if permanent is not None:
            self.permanent = permanent


class ConfigurationError(PipeboardError):
    """Missing or invalid settings. Raised before any I/O happens."""


class TransportError(PipeboardError):
    """A storage or network transport call failed.

    Transient by default; the code that talks to the transport marks
    access-denied, bad-credential and similar failures as permanent.
    """

    permanent = False


class RetryExhaustedError(TransportError):
    """A transient failure persisted through every retry attempt."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class AuthError(PipeboardError):
    """The hosted service rejected our token."""


class CryptoError(PipeboardError):
    """Encryption or decryption failed.

    The message never says whether the passphrase was wrong or the
    ciphertext was damaged.
    """


class ExpiryError(PipeboardError):
    """The slot outlived its TTL."""


class NotFoundError(PipeboardError):
    """No slot by that name."""


class DecodeError(PipeboardError):
    """Stored bytes could not be decoded (envelope, base64 or gzip)."""


class ClipboardError(PipeboardError):
    """The local clipboard could not be read or written."""


class PeerError(TransportError):
    """The SSH round-trip to a peer failed."""
