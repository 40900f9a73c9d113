"""
Local clipboard access through the platform's own copy/paste commands.

Detection looks at the OS and the display environment (Wayland, X11, WSL)
and picks commands that are actually on PATH. It is comparatively slow,
so :class:`ClipboardContext` runs it at most once and every command in the
process shares the result.
"""

from __future__ import annotations

import logging
import os
import platform
import shutil
import subprocess
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Mapping, Optional

from .errors import ClipboardError

logger = logging.getLogger("pipeboard.clipboard")


class ClipboardKind(str, Enum):
    DARWIN = "darwin-pasteboard"
    WAYLAND = "wayland-wl-copy"
    X11 = "x11-xclip"
    WSL = "wsl-clip"
    WINDOWS = "windows-clip"
    UNKNOWN = "unknown"


_INSTALL_HINTS = {
    ClipboardKind.WAYLAND: (
        "Install wl-clipboard: sudo apt install wl-clipboard (Debian/Ubuntu) "
        "or sudo dnf install wl-clipboard (Fedora)"
    ),
    ClipboardKind.X11: (
        "Install xclip: sudo apt install xclip (Debian/Ubuntu) "
        "or sudo dnf install xclip (Fedora)"
    ),
    ClipboardKind.DARWIN: "pbcopy/pbpaste should be available by default on macOS",
    ClipboardKind.WSL: "Ensure clip.exe and powershell.exe are in your PATH",
    ClipboardKind.WINDOWS: "Ensure clip.exe and powershell.exe are in your PATH",
}


@dataclass
class ClipboardBackend:
    """The commands used to reach the local clipboard."""

    kind: ClipboardKind
    copy_cmd: list[str] = field(default_factory=list)
    paste_cmd: list[str] = field(default_factory=list)
    clear_cmd: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    notes: str = ""
    env_source: str = ""

    @property
    def usable(self) -> bool:
        return self.kind != ClipboardKind.UNKNOWN and not self.missing

    def install_hint(self) -> str:
        return _INSTALL_HINTS.get(self.kind, "Run 'pipeboard backend' for more information")


Which = Callable[[str], Optional[str]]


def _darwin(which: Which) -> ClipboardBackend:
    missing = [cmd for cmd in ("pbcopy", "pbpaste") if not which(cmd)]
    return ClipboardBackend(
        kind=ClipboardKind.DARWIN,
        copy_cmd=["pbcopy"],
        paste_cmd=["pbpaste"],
        missing=missing,
    )


def _wayland(which: Which, env: Mapping[str, str]) -> Optional[ClipboardBackend]:
    if not env.get("WAYLAND_DISPLAY"):
        return None
    missing = [cmd for cmd in ("wl-copy", "wl-paste") if not which(cmd)]
    return ClipboardBackend(
        kind=ClipboardKind.WAYLAND,
        copy_cmd=["wl-copy"],
        paste_cmd=["wl-paste", "--no-newline"],
        clear_cmd=["wl-copy", "--clear"],
        missing=missing,
        env_source="WAYLAND_DISPLAY",
    )


def _x11(which: Which, env: Mapping[str, str]) -> Optional[ClipboardBackend]:
    if not env.get("DISPLAY"):
        return None
    if which("xclip"):
        copy_cmd = ["xclip", "-selection", "clipboard"]
        paste_cmd = ["xclip", "-selection", "clipboard", "-o"]
        missing: list[str] = []
    elif which("xsel"):
        copy_cmd = ["xsel", "--clipboard", "--input"]
        paste_cmd = ["xsel", "--clipboard", "--output"]
        missing = []
    else:
        copy_cmd = ["xclip", "-selection", "clipboard"]
        paste_cmd = ["xclip", "-selection", "clipboard", "-o"]
        missing = ["xclip/xsel"]
    return ClipboardBackend(
        kind=ClipboardKind.X11,
        copy_cmd=copy_cmd,
        paste_cmd=paste_cmd,
        missing=missing,
        env_source="DISPLAY",
    )


def _wsl(which: Which) -> Optional[ClipboardBackend]:
    if not which("clip.exe"):
        return None
    missing = [] if which("powershell.exe") else ["powershell.exe"]
    return ClipboardBackend(
        kind=ClipboardKind.WSL,
        copy_cmd=["clip.exe"],
        paste_cmd=["powershell.exe", "-NoProfile", "-Command", "Get-Clipboard"],
        missing=missing,
        notes="WSL detection based on clip.exe in PATH.",
    )


def _windows(which: Which) -> ClipboardBackend:
    missing = []
    if not (which("clip.exe") or which("clip")):
        missing.append("clip.exe")
    if not (which("powershell.exe") or which("powershell")):
        missing.append("powershell.exe")
    ps = "powershell.exe" if which("powershell.exe") or not which("powershell") else "powershell"
    clip = "clip" if which("clip") and not which("clip.exe") else "clip.exe"
    return ClipboardBackend(
        kind=ClipboardKind.WINDOWS,
        copy_cmd=[clip],
        paste_cmd=[ps, "-NoProfile", "-Command", "Get-Clipboard"],
        missing=missing,
    )


def detect_backend(
    which: Which = shutil.which,
    env: Optional[Mapping[str, str]] = None,
    system: Optional[str] = None,
) -> ClipboardBackend:
    """Pick clipboard commands for this machine.

    On Linux, Wayland wins over X11, which wins over WSL; a candidate is
    only chosen if all its tools are installed.

    Raises:
        ClipboardError: On an operating system pipeboard does not support.
    """
    env = os.environ if env is None else env
    system = (system or platform.system()).lower()

    if system == "darwin":
        return _darwin(which)
    if system == "windows":
        return _windows(which)
    if system == "linux":
        for candidate in (_wayland(which, env), _x11(which, env), _wsl(which)):
            if candidate is not None and not candidate.missing:
                return candidate
        return ClipboardBackend(
            kind=ClipboardKind.UNKNOWN,
            notes=(
                "No Wayland/X11/WSL clipboard command found. Install "
                "wl-clipboard or xclip/xsel, or configure clip.exe for WSL."
            ),
        )
    raise ClipboardError(f"unsupported OS: {system}")


class ClipboardContext:
    """Process-wide handle to the local clipboard.

    Owns the detection result so it is computed once, however many
    commands ask for it. Thread-safe.
    """

    def __init__(
        self,
        detector: Callable[[], ClipboardBackend] = detect_backend,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self._detector = detector
        self._runner = runner
        self._lock = threading.Lock()
        self._backend: Optional[ClipboardBackend] = None

    @property
    def backend(self) -> ClipboardBackend:
        if self._backend is None:
            with self._lock:
                if self._backend is None:
                    self._backend = self._detector()
                    logger.debug("Detected clipboard backend: %s", self._backend.kind.value)
        return self._backend

    def _usable_backend(self) -> ClipboardBackend:
        backend = self.backend
        if backend.kind == ClipboardKind.UNKNOWN:
            raise ClipboardError(backend.notes or "no clipboard backend available")
        if backend.missing:
            raise ClipboardError(
                f"backend {backend.kind.value} is missing required tools: "
                f"{', '.join(backend.missing)} ({backend.install_hint()})"
            )
        return backend

    def _run(self, cmd: list[str], data: Optional[bytes], action: str) -> bytes:
        stdin_kwargs = {"input": data} if data is not None else {"stdin": subprocess.DEVNULL}
        try:
            result = self._runner(
                cmd, capture_output=True, check=False, **stdin_kwargs,
            )
        except OSError as exc:
            raise ClipboardError(f"{action}: {exc}") from exc
        if result.returncode != 0:
            stderr = (result.stderr or b"").decode("utf-8", "replace").strip()
            raise ClipboardError(
                f"{action}: {cmd[0]} exited with {result.returncode}"
                + (f": {stderr}" if stderr else "")
            )
        return result.stdout or b""

    def read(self) -> bytes:
        """Current clipboard contents."""
        backend = self._usable_backend()
        return self._run(backend.paste_cmd, None, "reading clipboard")

    def write(self, data: bytes) -> None:
        backend = self._usable_backend()
        self._run(backend.copy_cmd, data, "writing clipboard")

    def clear(self) -> None:
        """Empty the clipboard, best-effort on platforms without a clear command."""
        backend = self._usable_backend()
        if backend.clear_cmd:
            self._run(backend.clear_cmd, None, "clearing clipboard")
        else:
            self._run(backend.copy_cmd, b"", "clearing clipboard")
