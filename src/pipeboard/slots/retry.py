"""
Bounded exponential backoff for unreliable transports.

Usage:
    from pipeboard.slots.retry import RetryPolicy, retry

    body = retry(lambda: client.get_object(Bucket=b, Key=k))
    body = RetryPolicy(max_attempts=5).call(fetch)

Before retry ``n`` (counting from 0) the policy sleeps
``base_delay * 2**n`` plus up to ``max_jitter`` seconds of random jitter.
Permanent errors are re-raised on the spot.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from ..errors import RetryExhaustedError

logger = logging.getLogger("pipeboard.slots.retry")

T = TypeVar("T")

# Only consulted for exceptions that do not carry a ``permanent`` tag.
PERMANENT_MARKERS = ("NoSuchKey", "AccessDenied", "InvalidAccessKeyId")

DEFAULT_ATTEMPTS = 3


def is_permanent(exc: BaseException) -> bool:
    """Decide whether retrying ``exc`` is pointless."""
    tag = getattr(exc, "permanent", None)
    if isinstance(tag, bool):
        return tag
    message = str(exc)
    return any(marker in message for marker in PERMANENT_MARKERS)


@dataclass
class RetryPolicy:
    """Retry parameters. ``sleep`` and ``jitter`` are swappable for tests."""

    max_attempts: int = DEFAULT_ATTEMPTS
    base_delay: float = 1.0
    max_jitter: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    jitter: Callable[[float, float], float] = field(default=random.uniform, repr=False)

    def delay(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt) + self.jitter(0, self.max_jitter)

    def call(self, operation: Callable[[], T]) -> T:
        """Run ``operation`` until it succeeds, fails permanently, or runs out.

        Raises:
            The operation's own exception if it is permanent.
            RetryExhaustedError: Wrapping the last transient failure.
        """
        attempts = max(1, self.max_attempts)
        last_exc: Exception = RuntimeError("no attempts made")

        for attempt in range(attempts):
            try:
                return operation()
            except Exception as exc:
                if is_permanent(exc):
                    raise
                last_exc = exc

            if attempt + 1 < attempts:
                wait = self.delay(attempt)
                logger.warning(
                    "Attempt %d/%d failed: %s; retrying in %.1fs",
                    attempt + 1, attempts, last_exc, wait,
                )
                self.sleep(wait)

        raise RetryExhaustedError(
            f"operation failed after {attempts} attempts: {last_exc}",
            attempts=attempts,
        ) from last_exc


def retry(
    operation: Callable[[], T],
    max_attempts: int = DEFAULT_ATTEMPTS,
    policy: Optional[RetryPolicy] = None,
) -> T:
    """Shorthand for ``RetryPolicy(max_attempts).call(operation)``."""
    active = policy or RetryPolicy(max_attempts=max_attempts)
    return active.call(operation)
