"""Tests for config loading, environment overrides and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from pipeboard.config import (
    BackendKind,
    EncryptionMode,
    S3Config,
    SyncConfig,
    config_path,
    load_config,
    validate_sync,
)
from pipeboard.errors import ConfigurationError


def _write(path: Path, data: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data, default_flow_style=False), encoding="utf-8")
    return path


class TestLoadConfig:
    def test_default_location(self, config_home: Path):
        assert config_path() == config_home / "pipeboard" / "config.yaml"

    def test_pipeboard_config_env(self, tmp_path: Path, monkeypatch):
        target = tmp_path / "elsewhere.yaml"
        monkeypatch.setenv("PIPEBOARD_CONFIG", str(target))
        assert config_path() == target

    def test_missing_file_is_empty(self, tmp_path: Path):
        config = load_config(tmp_path / "absent.yaml")
        assert config.sync.backend is None
        assert config.peers == {}
        assert config.watch.interval_ms == 500

    def test_full_file(self, tmp_path: Path):
        path = _write(tmp_path / "config.yaml", {
            "defaults": {"peer": "desk"},
            "peers": {
                "desk": {"ssh": "me@desk"},
                "nas": {"ssh": "nas", "remote_cmd": "/opt/bin/pipeboard"},
            },
            "sync": {
                "backend": "s3",
                "encryption": "aes256",
                "passphrase": "pw",
                "ttl_days": 7,
                "s3": {"bucket": "b", "region": "eu-west-1", "prefix": "pb"},
            },
            "watch": {"interval_ms": 250},
        })
        config = load_config(path)

        assert config.sync.backend == BackendKind.S3
        assert config.sync.encryption == EncryptionMode.AES256
        assert config.sync.s3.prefix == "pb"
        assert config.peers["desk"].remote_cmd == "pipeboard"
        assert config.peers["nas"].remote_cmd == "/opt/bin/pipeboard"
        assert config.watch.interval_ms == 250

    def test_malformed_yaml(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("sync: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="not a mapping"):
            load_config(path)

    def test_unknown_backend(self, tmp_path: Path):
        path = _write(tmp_path / "config.yaml", {"sync": {"backend": "ftp"}})
        with pytest.raises(ConfigurationError, match="sync.backend"):
            load_config(path)


class TestEnvOverrides:
    def test_env_beats_file(self, tmp_path: Path, monkeypatch):
        path = _write(tmp_path / "config.yaml", {
            "sync": {"backend": "s3", "s3": {"bucket": "file-bucket", "region": "us-east-1"}},
        })
        monkeypatch.setenv("PIPEBOARD_S3_BUCKET", "env-bucket")
        monkeypatch.setenv("PIPEBOARD_S3_REGION", "eu-central-1")
        monkeypatch.setenv("PIPEBOARD_S3_SSE", "AES256")

        s3 = load_config(path).sync.s3
        assert s3.bucket == "env-bucket"
        assert s3.region == "eu-central-1"
        assert s3.sse == "AES256"

    def test_bucket_env_selects_s3(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("PIPEBOARD_S3_BUCKET", "b")
        assert load_config(tmp_path / "absent.yaml").sync.backend == BackendKind.S3

    def test_backend_env(self, tmp_path: Path, monkeypatch):
        path = _write(tmp_path / "config.yaml", {"sync": {"backend": "s3"}})
        monkeypatch.setenv("PIPEBOARD_BACKEND", "local")
        assert load_config(path).sync.backend == BackendKind.LOCAL


class TestPeers:
    def test_default_peer(self, tmp_path: Path):
        path = _write(tmp_path / "config.yaml", {
            "defaults": {"peer": "desk"},
            "peers": {"desk": {"ssh": "me@desk"}},
        })
        name, peer = load_config(path).get_peer()
        assert name == "desk"
        assert peer.ssh == "me@desk"

    def test_no_default(self, tmp_path: Path):
        with pytest.raises(ConfigurationError, match="no peer specified"):
            load_config(tmp_path / "absent.yaml").get_peer()

    def test_unknown_peer(self, tmp_path: Path):
        path = _write(tmp_path / "config.yaml", {"peers": {"desk": {"ssh": "d"}}})
        with pytest.raises(ConfigurationError, match="unknown peer 'laptop'"):
            load_config(path).get_peer("laptop")


class TestValidateSync:
    def test_ok(self):
        sync = SyncConfig(backend=BackendKind.S3, s3=S3Config(bucket="b", region="r"))
        assert validate_sync(sync) == BackendKind.S3

    @pytest.mark.parametrize("sync, message", [
        (SyncConfig(), "sync.backend not set"),
        (SyncConfig(backend=BackendKind.LOCAL, ttl_days=-1), "ttl_days"),
        (SyncConfig(backend=BackendKind.LOCAL, encryption=EncryptionMode.AES256), "passphrase"),
        (SyncConfig(backend=BackendKind.S3, s3=S3Config(bucket="b")), "region"),
        (
            SyncConfig(backend=BackendKind.S3, s3=S3Config(bucket="b", region="r", sse="DES")),
            "sse",
        ),
        (SyncConfig(backend=BackendKind.HOSTED), "hosted.url"),
    ])
    def test_rejects(self, sync, message):
        with pytest.raises(ConfigurationError, match=message):
            validate_sync(sync)
