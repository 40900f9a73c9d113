"""
Watch mode -- keep the local clipboard and a peer's clipboard in step.

Each tick, in this order:

    1. read the local clipboard; if it changed and is not an echo of
       something the peer just sent us, push it to the peer
    2. read the peer's clipboard; if it changed and is not something we
       sent, write it to the local clipboard

Writing the local clipboard looks exactly like the user copying
something, so for ``echo_window`` seconds after a remote-triggered write
local changes are not sent back. Only another remote write restarts that
window.

A failure on the local read or the send ends the tick early; the loop
carries on with the next one.

Cancellation is cooperative: the stop event is checked between ticks and
also interrupts the wait between them.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .errors import PipeboardError
from .peer import PeerTransport

logger = logging.getLogger("pipeboard.watch")

DEFAULT_INTERVAL = 0.5
MIN_INTERVAL = 0.1


class WatchState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    STOPPED = "stopped"


class Direction(str, Enum):
    SENT = "sent"
    RECEIVED = "received"


@dataclass
class TickResult:
    """What a single tick did."""

    sent: bool = False
    received: bool = False
    suppressed: bool = False
    errors: int = 0


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class WatchLoop:
    """Polling sync loop between the local clipboard and one peer.

    Args:
        transport: SSH transport to the peer.
        read_local: Returns the local clipboard contents.
        write_local: Replaces the local clipboard contents.
        interval: Seconds between ticks; clamped to ``MIN_INTERVAL``.
        echo_window: Seconds to ignore local changes after a remote write.
            Defaults to two intervals.
        clock: Monotonic time source.
        sleep: Called with the interval between ticks. Defaults to waiting
            on the stop event so a stop request cuts the wait short.
        on_transfer: Called with (direction, byte count) after each
            successful send or receive.
    """

    def __init__(
        self,
        transport: PeerTransport,
        read_local: Callable[[], bytes],
        write_local: Callable[[bytes], None],
        interval: float = DEFAULT_INTERVAL,
        echo_window: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
        on_transfer: Optional[Callable[[Direction, int], None]] = None,
    ):
        self.transport = transport
        self.read_local = read_local
        self.write_local = write_local
        self.interval = max(interval, MIN_INTERVAL)
        self.echo_window = echo_window if echo_window is not None else 2 * self.interval
        self.clock = clock
        self._sleep = sleep
        self._on_transfer = on_transfer

        self.state = WatchState.IDLE
        self.last_sent_hash: Optional[str] = None
        self.last_received_hash: Optional[str] = None
        self.last_remote_write: Optional[float] = None

    def prime(self) -> None:
        """Record the current clipboards as already in sync.

        Starting the loop should not copy whatever happens to be on either
        clipboard across.
        """
        try:
            self.last_sent_hash = content_hash(self.read_local())
        except PipeboardError as exc:
            logger.debug("Initial local read failed: %s", exc)
        try:
            self.last_received_hash = content_hash(self.transport.receive())
        except PipeboardError as exc:
            logger.debug("Initial peer read failed: %s", exc)

    def suppressing(self, now: Optional[float] = None) -> bool:
        """True while inside the echo window of the last remote write."""
        if self.last_remote_write is None:
            return False
        current = self.clock() if now is None else now
        return current - self.last_remote_write < self.echo_window

    def tick(self) -> TickResult:
        """Run one send-then-receive round."""
        self.state = WatchState.SYNCING
        result = TickResult()
        try:
            if self._send_local(result):
                self._receive_remote(result)
        finally:
            self.state = WatchState.IDLE
        return result

    def _send_local(self, result: TickResult) -> bool:
        """Returns False if a failure means the rest of the tick is skipped."""
        try:
            local = self.read_local()
        except PipeboardError as exc:
            logger.warning("watch: reading local clipboard failed: %s", exc)
            result.errors += 1
            return False

        local_hash = content_hash(local)
        if local_hash in (self.last_sent_hash, self.last_received_hash):
            return True
        if self.suppressing():
            result.suppressed = True
            return True

        try:
            self.transport.send(local)
        except PipeboardError as exc:
            logger.warning("watch: failed to send: %s", exc)
            result.errors += 1
            return False

        self.last_sent_hash = local_hash
        # The peer now holds this content, so an older receive no longer counts.
        self.last_received_hash = local_hash
        result.sent = True
        self._notify(Direction.SENT, len(local))
        return True

    def _receive_remote(self, result: TickResult) -> None:
        try:
            remote = self.transport.receive()
        except PipeboardError as exc:
            logger.warning("watch: reading peer clipboard failed: %s", exc)
            result.errors += 1
            return

        remote_hash = content_hash(remote)
        if remote_hash in (self.last_received_hash, self.last_sent_hash):
            return

        try:
            self.write_local(remote)
        except PipeboardError as exc:
            logger.warning("watch: failed to receive: %s", exc)
            result.errors += 1
            return

        self.last_received_hash = remote_hash
        # The peer already holds this content; nothing to send back.
        self.last_sent_hash = remote_hash
        self.last_remote_write = self.clock()
        result.received = True
        self._notify(Direction.RECEIVED, len(remote))

    def _notify(self, direction: Direction, size: int) -> None:
        logger.info("watch: %s %d bytes (%s)", direction.value, size, self.transport.ssh_target)
        if self._on_transfer:
            self._on_transfer(direction, size)

    def run(self, stop: threading.Event, max_ticks: Optional[int] = None) -> None:
        """Loop until ``stop`` is set (or ``max_ticks`` ticks have run)."""
        self.prime()
        ticks = 0
        try:
            while not stop.is_set():
                self.tick()
                ticks += 1
                if max_ticks is not None and ticks >= max_ticks:
                    break
                if self._sleep is not None:
                    self._sleep(self.interval)
                else:
                    stop.wait(timeout=self.interval)
        finally:
            self.state = WatchState.STOPPED
            logger.info("watch: stopped after %d tick(s)", ticks)
