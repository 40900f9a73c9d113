"""
Slot storage backends -- where named clipboard content lives.

Every backend speaks the same four verbs (push, pull, list, delete) and
shares one pipeline, implemented once in :class:`SlotBackend`:

    push: sniff MIME -> compress (if it shrinks) -> encrypt -> envelope -> store
    pull: fetch -> decode envelope -> expiry check -> decrypt -> decompress

S3: one object per slot under ``prefix/name.pb``, every call retried.
Local: one ``name.pb`` file per slot, expired files evicted on list.
Hosted: the pipeboard HTTP API, bearer-token authenticated, retried.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import platform
import posixpath
import socket
import tempfile
from urllib.parse import quote
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import requests
from pydantic import BaseModel

from ..config import (
    BackendKind,
    EncryptionMode,
    HostedConfig,
    LocalConfig,
    S3Config,
    SyncConfig,
    config_dir,
    validate_sync,
)
from ..errors import (
    AuthError,
    ConfigurationError,
    CryptoError,
    DecodeError,
    ExpiryError,
    NotFoundError,
    PipeboardError,
    TransportError,
)
from ..tokens import FileTokenVault, TokenVault
from . import compress as compressor
from . import crypto
from .envelope import SlotEnvelope, decode, detect_mime, encode
from .retry import RetryPolicy

logger = logging.getLogger("pipeboard.slots.backends")

SLOT_EXT = ".pb"
HTTP_TIMEOUT = 30

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SlotMeta(BaseModel):
    """Provenance returned alongside pulled content."""

    hostname: str = ""
    os: str = ""
    created_at: Optional[datetime] = None
    mime: str = ""


class RemoteSlotMeta(BaseModel):
    """A slot as seen in a listing. Never carries the payload."""

    name: str
    size: int = 0
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


def check_slot_name(name: str) -> None:
    """Reject names that would escape the slot namespace."""
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        raise PipeboardError(f"invalid slot name {name!r}")


class SlotBackend(ABC):
    """Abstract slot store.

    Subclasses supply the transport (``_write``/``_read``/``list``/
    ``delete``); the transform pipeline and expiry handling live here so
    they cannot drift between backends.
    """

    def __init__(
        self,
        encryption: EncryptionMode = EncryptionMode.NONE,
        passphrase: str = "",
        ttl_days: int = 0,
        clock: Optional[Clock] = None,
    ):
        if encryption == EncryptionMode.AES256 and not passphrase:
            raise ConfigurationError(
                "passphrase required when encryption is set to aes256"
            )
        self.encryption = encryption
        self.passphrase = passphrase
        self.ttl_days = ttl_days
        self.clock = clock or _utcnow

    @property
    @abstractmethod
    def name(self) -> str:
        """Short backend label for messages."""

    @abstractmethod
    def _write(self, slot: str, blob: bytes) -> None:
        """Store an encoded envelope in a single write."""

    @abstractmethod
    def _read(self, slot: str) -> bytes:
        """Fetch an encoded envelope.

        Raises:
            NotFoundError: If the slot does not exist.
        """

    @abstractmethod
    def list(self) -> list[RemoteSlotMeta]:
        """List stored slots."""

    @abstractmethod
    def delete(self, slot: str) -> None:
        """Remove a slot.

        Raises:
            NotFoundError: If the backend can tell the slot does not exist.
        """

    def push(self, slot: str, data: bytes, meta: Optional[dict[str, str]] = None) -> None:
        """Store ``data`` under ``slot``, replacing any previous content."""
        check_slot_name(slot)
        blob = encode(self.seal(data, meta))
        self._write(slot, blob)
        logger.info(
            "Pushed %d bytes to slot %s (%s)", len(data), slot, self.name
        )

    def pull(self, slot: str) -> tuple[bytes, SlotMeta]:
        """Fetch and restore the plaintext stored under ``slot``.

        Raises:
            ExpiryError: If the slot is past its TTL (it is deleted first).
            CryptoError: If decryption fails or no passphrase is configured.
            NotFoundError: If there is no such slot.
        """
        check_slot_name(slot)
        envelope = decode(self._read(slot))

        if envelope.is_expired(self.clock()):
            self._evict(slot)
            raise ExpiryError(f"slot {slot!r} has expired")

        data = self.unseal(envelope)
        meta = SlotMeta(
            hostname=envelope.hostname,
            os=envelope.os,
            created_at=envelope.created_at,
            mime=envelope.mime,
        )
        return data, meta

    def seal(self, data: bytes, meta: Optional[dict[str, str]] = None) -> SlotEnvelope:
        """Run the write pipeline and build the envelope."""
        meta = meta or {}
        mime = detect_mime(data)

        payload, compressed = compressor.maybe_compress(data)

        encrypted = False
        if self.encryption == EncryptionMode.AES256:
            payload = crypto.encrypt(payload, self.passphrase)
            encrypted = True

        now = self.clock()
        expires_at = now + timedelta(days=self.ttl_days) if self.ttl_days > 0 else None

        return SlotEnvelope(
            created_at=now,
            expires_at=expires_at,
            hostname=meta.get("hostname") or socket.gethostname(),
            os=platform.system().lower(),
            original_length=len(data),
            mime=mime,
            encrypted=encrypted,
            compressed=compressed,
            data_b64=base64.b64encode(payload).decode("ascii"),
        )

    def unseal(self, envelope: SlotEnvelope) -> bytes:
        """Run the read pipeline: decrypt, then decompress."""
        data = envelope.payload
        if envelope.encrypted:
            if not self.passphrase:
                raise CryptoError(
                    "slot is encrypted but no passphrase configured"
                )
            data = crypto.decrypt(data, self.passphrase)
        if envelope.compressed:
            data = compressor.decompress(data)
        return data

    def _evict(self, slot: str) -> None:
        try:
            self.delete(slot)
        except (PipeboardError, OSError) as exc:
            logger.debug("Could not delete expired slot %s: %s", slot, exc)
        else:
            logger.info("Deleted expired slot %s", slot)


# ---------------------------------------------------------------------------
# S3
# ---------------------------------------------------------------------------

_S3_PERMANENT_CODES = frozenset({
    "AccessDenied",
    "AllAccessDisabled",
    "ExpiredToken",
    "InvalidAccessKeyId",
    "InvalidToken",
    "NoSuchBucket",
    "SignatureDoesNotMatch",
})
_S3_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "404"})


class S3Backend(SlotBackend):
    """Object-storage backend on AWS S3 (or anything speaking its API)."""

    def __init__(
        self,
        config: S3Config,
        encryption: EncryptionMode = EncryptionMode.NONE,
        passphrase: str = "",
        ttl_days: int = 0,
        client: Any = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(encryption, passphrase, ttl_days, clock)
        self.bucket = config.bucket
        self.prefix = config.prefix.strip("/")
        self.sse = config.sse
        self.retry_policy = retry_policy or RetryPolicy()
        self._client = client if client is not None else self._make_client(config)

    @property
    def name(self) -> str:
        return "s3"

    @staticmethod
    def _make_client(config: S3Config) -> Any:
        """Create a boto3 S3 client.

        Explicit AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY in the
        environment win over the configured profile.
        """
        import boto3
        from botocore.exceptions import BotoCoreError

        session_kwargs: dict[str, Any] = {"region_name": config.region}
        access_key = os.environ.get("AWS_ACCESS_KEY_ID")
        secret_key = os.environ.get("AWS_SECRET_ACCESS_KEY")
        if access_key and secret_key:
            session_kwargs.update(
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                aws_session_token=os.environ.get("AWS_SESSION_TOKEN") or None,
            )
        elif config.profile:
            session_kwargs["profile_name"] = config.profile

        try:
            session = boto3.session.Session(**session_kwargs)
            return session.client("s3")
        except BotoCoreError as exc:
            raise ConfigurationError(f"loading AWS config: {exc}") from exc

    def key(self, slot: str) -> str:
        if self.prefix:
            return posixpath.join(self.prefix, slot + SLOT_EXT)
        return slot + SLOT_EXT

    def _write(self, slot: str, blob: bytes) -> None:
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": self.key(slot),
            "Body": blob,
            "ContentType": "application/json",
        }
        if self.sse in ("AES256", "aws:kms"):
            params["ServerSideEncryption"] = self.sse

        self._call("uploading to S3", lambda: self._client.put_object(**params))

    def _read(self, slot: str) -> bytes:
        def fetch() -> bytes:
            result = self._client.get_object(Bucket=self.bucket, Key=self.key(slot))
            body = result["Body"]
            try:
                return body.read()
            finally:
                body.close()

        return self._call("fetching from S3", fetch, slot=slot)

    def list(self) -> list[RemoteSlotMeta]:
        # Expiry is not checked here: it would cost a GET per object.
        # Expired slots are removed lazily on pull instead.
        list_prefix = self.prefix + "/" if self.prefix else ""
        params: dict[str, Any] = {"Bucket": self.bucket, "Prefix": list_prefix}
        slots: list[RemoteSlotMeta] = []

        while True:
            page = self._call(
                "listing S3 objects",
                lambda: self._client.list_objects_v2(**params),
            )
            for obj in page.get("Contents", []):
                key = obj.get("Key", "")
                if not key.endswith(SLOT_EXT):
                    continue
                slot = key[len(list_prefix):-len(SLOT_EXT)]
                if not slot or "/" in slot:
                    continue
                slots.append(RemoteSlotMeta(
                    name=slot,
                    size=int(obj.get("Size", 0)),
                    created_at=obj.get("LastModified"),
                ))

            token = page.get("NextContinuationToken")
            if not page.get("IsTruncated") or not token:
                break
            params["ContinuationToken"] = token

        return slots

    def delete(self, slot: str) -> None:
        check_slot_name(slot)
        self._call(
            "deleting from S3",
            lambda: self._client.delete_object(Bucket=self.bucket, Key=self.key(slot)),
            slot=slot,
        )
        logger.info("Deleted slot %s (s3)", slot)

    def _call(self, action: str, operation: Callable[[], Any], slot: Optional[str] = None) -> Any:
        """Run one S3 call under the retry policy, classifying failures."""
        from botocore.exceptions import BotoCoreError, ClientError

        def attempt() -> Any:
            try:
                return operation()
            except ClientError as exc:
                raise self._classify(exc, action, slot) from exc
            except BotoCoreError as exc:
                raise TransportError(f"{action}: {exc}") from exc

        return self.retry_policy.call(attempt)

    @staticmethod
    def _classify(exc: Any, action: str, slot: Optional[str]) -> PipeboardError:
        error = exc.response.get("Error", {})
        code = str(error.get("Code", ""))
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        message = error.get("Message") or code or str(exc)

        if code in _S3_PERMANENT_CODES or status in (401, 403):
            return TransportError(f"{action}: {code}: {message}", permanent=True)
        if code in _S3_NOT_FOUND_CODES or status == 404:
            return NotFoundError(f"slot {slot!r} not found")
        return TransportError(f"{action}: {code}: {message}")


# ---------------------------------------------------------------------------
# Local filesystem
# ---------------------------------------------------------------------------


def default_slots_dir() -> Path:
    return config_dir() / "slots"


class LocalBackend(SlotBackend):
    """Slots as files in a directory. For single-machine use, NAS or synced folders."""

    def __init__(
        self,
        config: LocalConfig,
        encryption: EncryptionMode = EncryptionMode.NONE,
        passphrase: str = "",
        ttl_days: int = 0,
        clock: Optional[Clock] = None,
    ):
        super().__init__(encryption, passphrase, ttl_days, clock)
        self.path = (
            Path(config.path).expanduser() if config.path else default_slots_dir()
        )
        try:
            self.path.mkdir(parents=True, exist_ok=True, mode=0o700)
        except OSError as exc:
            raise ConfigurationError(
                f"creating slots directory {self.path}: {exc}"
            ) from exc

    @property
    def name(self) -> str:
        return "local"

    def slot_path(self, slot: str) -> Path:
        return self.path / (slot + SLOT_EXT)

    def _write(self, slot: str, blob: bytes) -> None:
        # Write to a sibling temp file and rename so readers never see a
        # partial envelope.
        fd, tmp_name = tempfile.mkstemp(dir=self.path, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(blob)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.slot_path(slot))
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise TransportError(f"writing slot file: {exc}", permanent=True) from exc

    def _read(self, slot: str) -> bytes:
        try:
            return self.slot_path(slot).read_bytes()
        except FileNotFoundError:
            raise NotFoundError(f"slot {slot!r} not found") from None
        except OSError as exc:
            raise TransportError(f"reading slot file: {exc}", permanent=True) from exc

    def list(self) -> list[RemoteSlotMeta]:
        """List slots, deleting any that have expired along the way."""
        if not self.path.exists():
            return []

        now = self.clock()
        slots: list[RemoteSlotMeta] = []
        for entry in sorted(self.path.glob("*" + SLOT_EXT)):
            if not entry.is_file():
                continue
            slot = entry.name[:-len(SLOT_EXT)]
            try:
                size = entry.stat().st_size
                envelope = decode(entry.read_bytes())
            except (OSError, DecodeError) as exc:
                logger.warning("Skipping unreadable slot file %s: %s", entry.name, exc)
                continue

            if envelope.is_expired(now):
                self._evict(slot)
                continue

            slots.append(RemoteSlotMeta(
                name=slot,
                size=size,
                created_at=envelope.created_at,
                expires_at=envelope.expires_at,
            ))
        return slots

    def delete(self, slot: str) -> None:
        check_slot_name(slot)
        try:
            self.slot_path(slot).unlink()
        except FileNotFoundError:
            raise NotFoundError(f"slot {slot!r} not found") from None
        except OSError as exc:
            raise TransportError(f"deleting slot file: {exc}", permanent=True) from exc
        logger.info("Deleted slot %s (local)", slot)


# ---------------------------------------------------------------------------
# Hosted HTTP service
# ---------------------------------------------------------------------------

REAUTH_HINT = "run 'pipeboard login' to re-authenticate"


class HostedBackend(SlotBackend):
    """The pipeboard HTTP API, shared with the mobile apps.

    The server stores the encoded envelope as an opaque blob and hands it
    back base64-encoded in ``encrypted_data``.
    """

    def __init__(
        self,
        config: HostedConfig,
        encryption: EncryptionMode = EncryptionMode.NONE,
        passphrase: str = "",
        ttl_days: int = 0,
        token_vault: Optional[TokenVault] = None,
        session: Optional[requests.Session] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(encryption, passphrase, ttl_days, clock)
        if not config.url:
            raise ConfigurationError("hosted config is missing or incomplete")
        self.base_url = config.url.rstrip("/")
        self.email = config.email

        if token_vault is None:
            token_vault = FileTokenVault()
        try:
            self._token = token_vault.get_token(self.email)
        except PipeboardError as exc:
            raise ConfigurationError(
                f"not logged in: {exc}; run 'pipeboard login' to authenticate"
            ) from exc

        self._session = session or requests.Session()
        self.retry_policy = retry_policy or RetryPolicy()

    @property
    def name(self) -> str:
        return "hosted"

    def _url(self, slot: Optional[str] = None) -> str:
        if slot is None:
            return f"{self.base_url}/api/v1/slots"
        return f"{self.base_url}/api/v1/slots/{quote(slot, safe='')}"

    def _request(
        self,
        method: str,
        action: str,
        slot: Optional[str] = None,
        not_found_is_error: bool = False,
        **kwargs: Any,
    ) -> requests.Response:
        url = self._url(slot)
        headers = {"Authorization": f"Bearer {self._token}"}
        headers.update(kwargs.pop("headers", {}))

        def attempt() -> requests.Response:
            try:
                resp = self._session.request(
                    method, url, headers=headers, timeout=HTTP_TIMEOUT, **kwargs,
                )
            except requests.RequestException as exc:
                raise TransportError(f"{action}: request failed: {exc}") from exc
            self._check(resp, action, slot if not_found_is_error else None)
            return resp

        return self.retry_policy.call(attempt)

    @staticmethod
    def _check(resp: requests.Response, action: str, slot: Optional[str]) -> None:
        status = resp.status_code
        if status == 401:
            raise AuthError(f"unauthorized: token expired or invalid; {REAUTH_HINT}")
        if status == 404 and slot is not None:
            raise NotFoundError(f"slot {slot!r} not found")
        if not 200 <= status < 300:
            transient = status >= 500 or status == 429
            raise TransportError(
                f"{action} failed (status {status}): {resp.text.strip()}",
                permanent=not transient,
            )

    def _write(self, slot: str, blob: bytes) -> None:
        self._request(
            "PUT", "push", slot,
            data=blob,
            headers={"Content-Type": "application/json"},
        )

    def _read(self, slot: str) -> bytes:
        resp = self._request("GET", "pull", slot, not_found_is_error=True)
        try:
            body = resp.json()
            return base64.b64decode(body["encrypted_data"], validate=True)
        except (ValueError, KeyError, TypeError, binascii.Error) as exc:
            raise DecodeError(f"failed to parse response: {exc}") from exc

    def list(self) -> list[RemoteSlotMeta]:
        resp = self._request("GET", "list")
        try:
            items = resp.json()
            return [
                RemoteSlotMeta(
                    name=item["name"],
                    size=int(item.get("size_bytes", 0)),
                    created_at=_parse_timestamp(item.get("updated_at")),
                )
                for item in items
            ]
        except (ValueError, KeyError, TypeError) as exc:
            raise DecodeError(f"failed to parse response: {exc}") from exc

    def delete(self, slot: str) -> None:
        check_slot_name(slot)
        self._request("DELETE", "delete", slot, not_found_is_error=True)
        logger.info("Deleted slot %s (hosted)", slot)


def create_backend(
    config: SyncConfig,
    token_vault: Optional[TokenVault] = None,
) -> SlotBackend:
    """Build the backend selected by ``sync.backend``.

    Args:
        config: The ``sync`` block of the loaded config.
        token_vault: Token source for the hosted backend.

    Returns:
        Instantiated SlotBackend.

    Raises:
        ConfigurationError: If the sync block is incomplete or invalid.
    """
    kind = validate_sync(config)
    common: dict[str, Any] = {
        "encryption": config.encryption,
        "passphrase": config.passphrase,
        "ttl_days": config.ttl_days,
    }
    if kind == BackendKind.S3:
        return S3Backend(config.s3, **common)
    if kind == BackendKind.LOCAL:
        return LocalBackend(config.local, **common)
    if kind == BackendKind.HOSTED:
        return HostedBackend(config.hosted, token_vault=token_vault, **common)
    raise ConfigurationError(f"unsupported backend: {kind}")
