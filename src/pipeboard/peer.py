"""
Direct peer-to-peer clipboard transport over SSH.

The peer runs its own pipeboard; we drive it remotely:

    send:    ssh <target> <remote_cmd> copy    (our bytes on its stdin)
    receive: ssh <target> <remote_cmd> paste   (its clipboard on our stdout)
"""

from __future__ import annotations

import logging
import subprocess
from typing import Callable, Optional

from .config import DEFAULT_REMOTE_CMD, PeerConfig
from .errors import PeerError

logger = logging.getLogger("pipeboard.peer")

SSH_TIMEOUT = 30


class PeerTransport:
    """Runs pipeboard on a remote machine through ssh."""

    def __init__(
        self,
        ssh_target: str,
        remote_cmd: str = DEFAULT_REMOTE_CMD,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        timeout: Optional[float] = SSH_TIMEOUT,
    ):
        self.ssh_target = ssh_target
        self.remote_cmd = remote_cmd
        self._runner = runner
        self.timeout = timeout

    @classmethod
    def from_config(cls, peer: PeerConfig, **kwargs) -> "PeerTransport":
        return cls(peer.ssh, peer.remote_cmd or DEFAULT_REMOTE_CMD, **kwargs)

    def _command(self, verb: str) -> list[str]:
        return ["ssh", self.ssh_target, self.remote_cmd, verb]

    def _run(self, verb: str, data: Optional[bytes]) -> bytes:
        cmd = self._command(verb)
        stdin_kwargs = {"input": data} if data is not None else {"stdin": subprocess.DEVNULL}
        try:
            result = self._runner(
                cmd, capture_output=True, check=False, timeout=self.timeout,
                **stdin_kwargs,
            )
        except subprocess.TimeoutExpired as exc:
            raise PeerError(f"ssh {self.ssh_target} {verb}: timed out") from exc
        except OSError as exc:
            raise PeerError(f"ssh {self.ssh_target} {verb}: {exc}") from exc

        if result.returncode != 0:
            stderr = (result.stderr or b"").decode("utf-8", "replace").strip()
            raise PeerError(
                f"ssh {self.ssh_target} {verb} exited with {result.returncode}"
                + (f": {stderr}" if stderr else "")
            )
        return result.stdout or b""

    def send(self, data: bytes) -> None:
        """Replace the peer's clipboard with ``data``."""
        self._run("copy", data)
        logger.debug("Sent %d bytes to %s", len(data), self.ssh_target)

    def receive(self) -> bytes:
        """Read the peer's clipboard."""
        data = self._run("paste", None)
        logger.debug("Received %d bytes from %s", len(data), self.ssh_target)
        return data
