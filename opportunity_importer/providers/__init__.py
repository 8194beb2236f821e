"""Record store and outreach provider adapters."""

from .base import OutreachProvider, RecordStore  # noqa: F401
from .sample import InMemoryRecordStore, LoopbackOutreachProvider  # noqa: F401

__all__ = [
    "OutreachProvider",
    "RecordStore",
    "InMemoryRecordStore",
    "LoopbackOutreachProvider",
]
