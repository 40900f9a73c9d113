"""
Remote slots -- named clipboard content parked somewhere durable.

Content is compressed when that helps, encrypted when configured, wrapped
in a versioned envelope, and handed to one of three backends: S3, a local
directory, or the hosted service. Slots can carry a TTL; expired slots are
removed the next time someone tries to read them.
"""

from .backends import (
    HostedBackend,
    LocalBackend,
    RemoteSlotMeta,
    S3Backend,
    SlotBackend,
    SlotMeta,
    create_backend,
)
from .envelope import SlotEnvelope

__all__ = [
    "HostedBackend",
    "LocalBackend",
    "RemoteSlotMeta",
    "S3Backend",
    "SlotBackend",
    "SlotEnvelope",
    "SlotMeta",
    "create_backend",
]
