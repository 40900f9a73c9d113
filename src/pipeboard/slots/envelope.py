"""
Slot envelope -- the versioned JSON wrapper every backend stores.

The envelope records provenance and which transforms were applied to the
payload. Write order is compress then encrypt; read order is the reverse.
Optional fields (``expires_at``, ``encrypted``, ``compressed``) are
omitted from the JSON rather than written as null/false.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_serializer, field_validator

from ..errors import DecodeError

logger = logging.getLogger("pipeboard.slots.envelope")

ENVELOPE_VERSION = 1
SUPPORTED_VERSIONS = frozenset({ENVELOPE_VERSION})

TEXT_MIME = "text/plain; charset=utf-8"

_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"%PDF-", "application/pdf"),
    (b"PK\x03\x04", "application/zip"),
    (b"\x1f\x8b\x08", "application/x-gzip"),
    (b"BM", "image/bmp"),
)


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """RFC 3339, UTC, second precision."""
    return _utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


class SlotEnvelope(BaseModel):
    """The unit of persistence for a named slot.

    Attributes:
        version: Format tag; unknown versions are refused on decode.
        created_at: When the slot was pushed (UTC).
        expires_at: When the slot stops being readable, or None.
        hostname: Machine that pushed the slot.
        os: Platform of the pushing machine.
        original_length: Byte length of the plaintext before any transform.
        mime: Content type sniffed from the plaintext.
        encrypted: Payload is AES-256-GCM ciphertext.
        compressed: Payload (before encryption) is gzip data.
        data_b64: Base64 of the stored payload.
    """

    version: int = ENVELOPE_VERSION
    created_at: datetime
    expires_at: Optional[datetime] = None
    hostname: str = ""
    os: str = ""
    original_length: int = Field(alias="len", ge=0)
    mime: str = ""
    encrypted: bool = False
    compressed: bool = False
    data_b64: str = ""

    model_config = {"populate_by_name": True}

    @field_validator("created_at", "expires_at")
    @classmethod
    def _to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _utc(value) if value is not None else None

    @field_validator("data_b64")
    @classmethod
    def _check_b64(cls, value: str) -> str:
        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"invalid base64 payload: {exc}") from exc
        return value

    @field_serializer("created_at", "expires_at")
    def _serialize_ts(self, value: Optional[datetime]) -> Optional[str]:
        return format_timestamp(value) if value is not None else None

    @property
    def payload(self) -> bytes:
        """The stored (possibly compressed/encrypted) bytes."""
        try:
            return base64.b64decode(self.data_b64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecodeError(f"decoding base64 data: {exc}") from exc

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        current = _utc(now) if now else datetime.now(timezone.utc)
        return current > self.expires_at


def encode(envelope: SlotEnvelope) -> bytes:
    """Serialize an envelope to JSON bytes."""
    data = envelope.model_dump(mode="json", by_alias=True)
    if data.get("expires_at") is None:
        data.pop("expires_at", None)
    for flag in ("encrypted", "compressed"):
        if not data.get(flag):
            data.pop(flag, None)
    return json.dumps(data, indent=2).encode("utf-8")


def decode(raw: bytes) -> SlotEnvelope:
    """Parse envelope bytes.

    Raises:
        DecodeError: On malformed JSON, a schema violation, bad base64,
            or a version this build does not understand.
    """
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeError(f"decoding payload: {exc}") from exc
    if not isinstance(data, dict):
        raise DecodeError("decoding payload: envelope is not a JSON object")

    version = data.get("version")
    if (
        not isinstance(version, int)
        or isinstance(version, bool)
        or version not in SUPPORTED_VERSIONS
    ):
        raise DecodeError(f"unsupported slot envelope version: {version!r}")

    try:
        envelope = SlotEnvelope.model_validate(data)
    except ValidationError as exc:
        raise DecodeError(f"decoding payload: {exc.errors()[0]['msg']}") from exc

    return envelope


def detect_mime(data: bytes) -> str:
    """Best-effort content type from the leading bytes."""
    if not data:
        return TEXT_MIME
    for magic, mime in _SIGNATURES:
        if data.startswith(magic):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return "application/octet-stream"
    head = text.lstrip()[:14].lower()
    if head.startswith(("<!doctype html", "<html", "<head", "<body")):
        return "text/html; charset=utf-8"
    return TEXT_MIME
