"""
Configuration models and loading.

The config file lives at ``$PIPEBOARD_CONFIG`` or
``$XDG_CONFIG_HOME/pipeboard/config.yaml`` (``~/.config`` when XDG is
unset). Environment variables override the S3 settings after the file is
read, then the whole thing is validated before any command touches the
network or the disk.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigurationError

logger = logging.getLogger("pipeboard.config")

DEFAULT_REMOTE_CMD = "pipeboard"
DEFAULT_WATCH_INTERVAL_MS = 500


class BackendKind(str, Enum):
    """Supported slot storage backends."""

    S3 = "s3"
    LOCAL = "local"
    HOSTED = "hosted"


class EncryptionMode(str, Enum):
    """Client-side encryption applied to slot payloads."""

    NONE = "none"
    AES256 = "aes256"


class S3Config(BaseModel):
    """Object-storage backend settings."""

    bucket: str = ""
    region: str = ""
    prefix: str = ""
    profile: str = ""
    sse: str = ""


class LocalConfig(BaseModel):
    """Filesystem backend settings. An empty path means the default slots dir."""

    path: str = ""


class HostedConfig(BaseModel):
    """Hosted backend settings. The token lives in the token vault, never here."""

    url: str = ""
    email: str = ""


class SyncConfig(BaseModel):
    """The ``sync:`` block: which backend, plus orthogonal encryption and TTL."""

    backend: Optional[BackendKind] = None
    encryption: EncryptionMode = EncryptionMode.NONE
    passphrase: str = ""
    ttl_days: int = 0
    s3: S3Config = Field(default_factory=S3Config)
    local: LocalConfig = Field(default_factory=LocalConfig)
    hosted: HostedConfig = Field(default_factory=HostedConfig)


class PeerConfig(BaseModel):
    """A machine reachable over SSH that also runs pipeboard."""

    ssh: str
    remote_cmd: str = DEFAULT_REMOTE_CMD


class DefaultsConfig(BaseModel):
    peer: str = ""


class WatchConfig(BaseModel):
    interval_ms: int = DEFAULT_WATCH_INTERVAL_MS


class Config(BaseModel):
    """Complete pipeboard configuration."""

    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    peers: dict[str, PeerConfig] = Field(default_factory=dict)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)

    def get_peer(self, name: Optional[str] = None) -> tuple[str, PeerConfig]:
        """Resolve a peer by name, falling back to ``defaults.peer``.

        Returns:
            The resolved peer name and its settings.

        Raises:
            ConfigurationError: If no name was given and there is no default,
                or the peer is not configured.
        """
        peer_name = name or self.defaults.peer
        if not peer_name:
            raise ConfigurationError(
                "no peer specified and no defaults.peer set in config"
            )
        peer = self.peers.get(peer_name)
        if peer is None:
            known = ", ".join(sorted(self.peers)) or "none"
            raise ConfigurationError(
                f"unknown peer {peer_name!r} (configured peers: {known})"
            )
        if not peer.ssh:
            raise ConfigurationError(f"peer {peer_name!r} has no ssh target")
        return peer_name, peer


def config_dir() -> Path:
    """Directory holding config.yaml, slots/ and tokens/."""
    base = os.environ.get("XDG_CONFIG_HOME")
    if base:
        return Path(base) / "pipeboard"
    return Path("~/.config").expanduser() / "pipeboard"


def config_path() -> Path:
    """Location of the config file, honouring ``PIPEBOARD_CONFIG``."""
    override = os.environ.get("PIPEBOARD_CONFIG")
    if override:
        return Path(override).expanduser()
    return config_dir() / "config.yaml"


def load_config(path: Optional[Path] = None) -> Config:
    """Read, override from the environment, and parse the config file.

    A missing file yields an empty config; commands that need a backend
    fail later in :func:`validate_sync`.

    Raises:
        ConfigurationError: If the file is unreadable or malformed.
    """
    cfg_file = path or config_path()
    data: dict = {}
    if cfg_file.exists():
        try:
            data = yaml.safe_load(cfg_file.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"reading config {cfg_file}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"config {cfg_file} is not a mapping")
    else:
        logger.debug("No config file at %s", cfg_file)

    apply_env_overrides(data)

    try:
        return Config(**data)
    except ValidationError as exc:
        raise ConfigurationError(
            f"invalid config {cfg_file}: {_first_error(exc)}"
        ) from exc


def apply_env_overrides(data: dict) -> None:
    """Overlay PIPEBOARD_* environment variables onto raw config data."""
    sync = data.get("sync")
    if not isinstance(sync, dict):
        sync = data["sync"] = {}
    s3 = sync.get("s3")
    if not isinstance(s3, dict):
        s3 = sync["s3"] = {}

    backend = os.environ.get("PIPEBOARD_BACKEND")
    if backend:
        sync["backend"] = backend

    bucket = os.environ.get("PIPEBOARD_S3_BUCKET")
    if bucket:
        s3["bucket"] = bucket
        if not sync.get("backend"):
            sync["backend"] = BackendKind.S3.value

    for env_var, key in (
        ("PIPEBOARD_S3_REGION", "region"),
        ("PIPEBOARD_S3_PREFIX", "prefix"),
        ("PIPEBOARD_S3_PROFILE", "profile"),
        ("PIPEBOARD_S3_SSE", "sse"),
    ):
        value = os.environ.get(env_var)
        if value:
            s3[key] = value


def validate_sync(sync: SyncConfig) -> BackendKind:
    """Check the sync block is usable before a backend is built.

    Returns:
        The configured backend kind.

    Raises:
        ConfigurationError: On a missing backend, missing required fields,
            a negative TTL, or encryption without a passphrase.
    """
    if sync.backend is None:
        raise ConfigurationError(
            "sync.backend not set; remote slots are not configured "
            f"(edit {config_path()})"
        )
    if sync.ttl_days < 0:
        raise ConfigurationError("sync.ttl_days must not be negative")
    if sync.encryption == EncryptionMode.AES256 and not sync.passphrase:
        raise ConfigurationError(
            "passphrase required when encryption is set to aes256"
        )

    if sync.backend == BackendKind.S3:
        if not sync.s3.bucket:
            raise ConfigurationError("sync.s3.bucket is required")
        if not sync.s3.region:
            raise ConfigurationError("sync.s3.region is required")
        if sync.s3.sse and sync.s3.sse not in ("AES256", "aws:kms"):
            raise ConfigurationError(
                f"sync.s3.sse must be AES256 or aws:kms, not {sync.s3.sse!r}"
            )
    elif sync.backend == BackendKind.HOSTED:
        if not sync.hosted.url:
            raise ConfigurationError("sync.hosted.url is required")
        if not sync.hosted.email:
            raise ConfigurationError("sync.hosted.email is required")

    return sync.backend


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(part) for part in err.get("loc", ()))
    return f"{loc}: {err.get('msg', 'invalid value')}"
