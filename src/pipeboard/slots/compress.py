"""Gzip helpers for slot payloads."""

from __future__ import annotations

import gzip
import zlib

from ..errors import DecodeError

# Payloads at or below this size are stored as-is.
COMPRESS_THRESHOLD = 1024


def compress(data: bytes) -> bytes:
    return gzip.compress(data)


def decompress(data: bytes) -> bytes:
    """Inflate gzip data.

    Raises:
        DecodeError: If the input is not a complete gzip stream.
    """
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as exc:
        raise DecodeError(f"decompressing data: {exc}") from exc


def maybe_compress(data: bytes) -> tuple[bytes, bool]:
    """Compress only when it pays off.

    Returns:
        The bytes to store and whether they are compressed. Compression is
        kept only for inputs over the threshold whose gzip form is strictly
        smaller than the original.
    """
    if len(data) <= COMPRESS_THRESHOLD:
        return data, False
    packed = compress(data)
    if len(packed) < len(data):
        return packed, True
    return data, False
