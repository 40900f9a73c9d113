"""
CLI tests via click's CliRunner.

The clipboard is a MagicMock and slots live in a temp directory through
the local backend.
"""

from __future__ import annotations

import json
import signal
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner

from pipeboard.cli import main
from pipeboard.cli._common import AppContext, format_size, use_color
from pipeboard.clipboard import ClipboardBackend, ClipboardKind


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({
        "defaults": {"peer": "desk"},
        "peers": {"desk": {"ssh": "me@desk"}},
        "sync": {"backend": "local", "local": {"path": str(tmp_path / "slots")}},
        "watch": {"interval_ms": 200},
    }), encoding="utf-8")
    return path


@pytest.fixture
def clipboard() -> MagicMock:
    board = MagicMock()
    board.read.return_value = b"from clipboard"
    return board


@pytest.fixture
def app(config_file: Path, clipboard: MagicMock, token_vault) -> AppContext:
    return AppContext(config_file=config_file, clipboard=clipboard, token_vault=token_vault)


def _invoke(runner: CliRunner, app: AppContext, *args, **kwargs):
    return runner.invoke(main, list(args), obj=app, **kwargs)


class TestSlotCommands:
    def test_push_from_stdin_then_show(self, runner, app, clipboard):
        result = _invoke(runner, app, "push", "notes", input=b"piped text")
        assert result.exit_code == 0, result.output
        assert "pushed 10 B to slot 'notes'" in result.output
        clipboard.read.assert_not_called()

        result = _invoke(runner, app, "show", "notes")
        assert result.exit_code == 0
        assert result.stdout_bytes == b"piped text"

    def test_pull_writes_clipboard(self, runner, app, clipboard):
        _invoke(runner, app, "push", "a", input=b"hello")
        result = _invoke(runner, app, "pull", "a")
        assert result.exit_code == 0, result.output
        clipboard.write.assert_called_once_with(b"hello")
        assert "pulled 5 B from slot 'a'" in result.output

    def test_slots_json(self, runner, app):
        _invoke(runner, app, "push", "one", input=b"1")
        _invoke(runner, app, "push", "two", input=b"22")
        result = _invoke(runner, app, "slots", "--json")
        assert result.exit_code == 0, result.output

        entries = json.loads(result.output)
        assert [e["name"] for e in entries] == ["one", "two"]
        assert entries[0]["expires_at"] is None
        assert entries[0]["expires_in"] == "-"
        assert entries[0]["size_human"].endswith(" B")

    def test_slots_table(self, runner, app):
        _invoke(runner, app, "push", "one", input=b"1")
        result = _invoke(runner, app, "slots")
        assert result.exit_code == 0
        assert "NAME" in result.output
        assert "one" in result.output

    def test_slots_empty(self, runner, app):
        result = _invoke(runner, app, "slots")
        assert result.exit_code == 0
        assert "No slots" in result.output

    def test_rm_then_show_fails(self, runner, app):
        _invoke(runner, app, "push", "a", input=b"x")
        assert _invoke(runner, app, "rm", "a").exit_code == 0

        result = _invoke(runner, app, "show", "a")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_unconfigured_backend(self, runner, tmp_path, clipboard, token_vault):
        app = AppContext(
            config_file=tmp_path / "absent.yaml", clipboard=clipboard, token_vault=token_vault,
        )
        result = _invoke(runner, app, "push", "a", input=b"x")
        assert result.exit_code == 1
        assert "sync.backend not set" in result.output
        assert len(result.output.strip().splitlines()) == 1


class TestClipboardCommands:
    def test_copy_argument(self, runner, app, clipboard):
        result = _invoke(runner, app, "copy", "hello")
        assert result.exit_code == 0
        clipboard.write.assert_called_once_with(b"hello")

    def test_copy_stdin(self, runner, app, clipboard):
        _invoke(runner, app, "copy", input=b"\x00binary")
        clipboard.write.assert_called_once_with(b"\x00binary")

    def test_paste(self, runner, app):
        result = _invoke(runner, app, "paste")
        assert result.exit_code == 0
        assert result.stdout_bytes == b"from clipboard"

    def test_clear(self, runner, app, clipboard):
        assert _invoke(runner, app, "clear").exit_code == 0
        clipboard.clear.assert_called_once_with()

    def test_backend(self, runner, app, clipboard):
        clipboard.backend = ClipboardBackend(
            kind=ClipboardKind.WAYLAND,
            copy_cmd=["wl-copy"],
            paste_cmd=["wl-paste", "--no-newline"],
            env_source="WAYLAND_DISPLAY",
        )
        result = _invoke(runner, app, "backend")
        assert result.exit_code == 0
        assert "wayland-wl-copy" in result.output
        assert "wl-paste --no-newline" in result.output


class TestPeerCommands:
    def test_send_default_peer(self, runner, app):
        with patch("pipeboard.cli.peer_cmd.PeerTransport") as transport_cls:
            result = _invoke(runner, app, "send", input=b"payload")
        assert result.exit_code == 0, result.output
        peer_cfg = transport_cls.from_config.call_args.args[0]
        assert peer_cfg.ssh == "me@desk"
        transport_cls.from_config.return_value.send.assert_called_once_with(b"payload")

    def test_recv(self, runner, app, clipboard):
        with patch("pipeboard.cli.peer_cmd.PeerTransport") as transport_cls:
            transport_cls.from_config.return_value.receive.return_value = b"theirs"
            result = _invoke(runner, app, "recv", "desk")
        assert result.exit_code == 0
        clipboard.write.assert_called_once_with(b"theirs")

    def test_peek(self, runner, app, clipboard):
        with patch("pipeboard.cli.peer_cmd.PeerTransport") as transport_cls:
            transport_cls.from_config.return_value.receive.return_value = b"look"
            result = _invoke(runner, app, "peek")
        assert result.stdout_bytes == b"look"
        clipboard.write.assert_not_called()

    def test_unknown_peer(self, runner, app):
        result = _invoke(runner, app, "recv", "laptop")
        assert result.exit_code == 1
        assert "unknown peer" in result.output

    def test_watch_uses_config_interval(self, runner, app, clipboard):
        before = signal.getsignal(signal.SIGTERM)
        with patch("pipeboard.cli.peer_cmd.WatchLoop") as loop_cls, \
                patch("pipeboard.cli.peer_cmd.PeerTransport"):
            result = _invoke(runner, app, "watch")
        assert result.exit_code == 0, result.output
        assert loop_cls.call_args.kwargs["interval"] == pytest.approx(0.2)
        assert loop_cls.call_args.kwargs["read_local"] == clipboard.read
        loop_cls.return_value.run.assert_called_once()
        assert signal.getsignal(signal.SIGTERM) == before

    def test_watch_interval_option(self, runner, app):
        with patch("pipeboard.cli.peer_cmd.WatchLoop") as loop_cls, \
                patch("pipeboard.cli.peer_cmd.PeerTransport"):
            _invoke(runner, app, "watch", "desk", "--interval", "50")
        assert loop_cls.call_args.kwargs["interval"] == pytest.approx(0.1)

    def test_watch_rejects_bad_interval(self, runner, app):
        result = _invoke(runner, app, "watch", "--interval", "0")
        assert result.exit_code == 1
        assert "interval" in result.output


class TestAuthCommands:
    def test_login(self, runner, app, token_vault):
        with patch("pipeboard.auth.login") as login:
            result = _invoke(
                runner, app, "login", "--url", "https://pb.example",
                "--email", "me@example.com", input="hunter2\n",
            )
        assert result.exit_code == 0, result.output
        login.assert_called_once_with(
            "https://pb.example", "me@example.com", "hunter2", vault=token_vault,
        )

    def test_login_without_url(self, runner, app):
        result = _invoke(runner, app, "login", "--email", "me@example.com")
        assert result.exit_code == 1
        assert "no hosted URL" in result.output

    def test_logout(self, runner, app, token_vault):
        result = _invoke(runner, app, "logout", "--email", "me@example.com")
        assert result.exit_code == 0
        assert token_vault.tokens == {}


class TestHelpers:
    @pytest.mark.parametrize("size, expected", [
        (0, "0 B"),
        (512, "512 B"),
        (1536, "1.5 KiB"),
        (3 * 1024 * 1024, "3.0 MiB"),
    ])
    def test_format_size(self, size, expected):
        assert format_size(size) == expected

    def test_no_color_env(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")
        assert not use_color()

    def test_dumb_terminal(self, monkeypatch):
        monkeypatch.setenv("TERM", "dumb")
        assert not use_color()

    def test_color_by_default(self, monkeypatch):
        monkeypatch.setenv("TERM", "xterm-256color")
        assert use_color()

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "pipeboard" in result.output
