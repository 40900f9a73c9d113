"""Shared test fixtures for pipeboard."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest

from pipeboard.config import LocalConfig
from pipeboard.slots.backends import LocalBackend
from pipeboard.tokens import TokenNotFoundError

_ENV_VARS = (
    "PIPEBOARD_BACKEND",
    "PIPEBOARD_CONFIG",
    "PIPEBOARD_S3_BUCKET",
    "PIPEBOARD_S3_REGION",
    "PIPEBOARD_S3_PREFIX",
    "PIPEBOARD_S3_PROFILE",
    "PIPEBOARD_S3_SSE",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
    "NO_COLOR",
)


@pytest.fixture(autouse=True)
def config_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point XDG_CONFIG_HOME at a temp dir and clear pipeboard env vars."""
    home = tmp_path / "xdg"
    home.mkdir()
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home))
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    return home


class FakeClock:
    """Settable wall clock for TTL tests."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def slots_dir(tmp_path: Path) -> Path:
    return tmp_path / "slots"


@pytest.fixture
def local_backend(slots_dir: Path, clock: FakeClock) -> LocalBackend:
    """Unencrypted local backend with no TTL."""
    return LocalBackend(LocalConfig(path=str(slots_dir)), clock=clock)


class MemoryTokenVault:
    """In-memory token vault."""

    def __init__(self, tokens: Optional[dict[str, str]] = None):
        self.tokens = dict(tokens or {})

    def get_token(self, identity: str) -> str:
        try:
            return self.tokens[identity]
        except KeyError:
            raise TokenNotFoundError(f"no token stored for {identity}") from None

    def store_token(self, identity: str, token: str) -> None:
        self.tokens[identity] = token

    def clear_token(self, identity: str) -> None:
        self.tokens.pop(identity, None)


@pytest.fixture
def token_vault() -> MemoryTokenVault:
    return MemoryTokenVault({"me@example.com": "tok-123"})


@pytest.fixture
def empty_token_vault() -> MemoryTokenVault:
    return MemoryTokenVault()
