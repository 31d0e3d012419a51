"""
Exceptions raised inside the cache engine.

Only the API client and the snapshot codec raise these. The sync
orchestrator and the query service catch them and degrade to
"serve what you have, or empty".
"""

from __future__ import annotations


class ScheduleCacheError(Exception):
    """Base class for all schedcache errors."""


class RemoteFetchError(ScheduleCacheError):
    """Network failure, bad HTTP status or an unsuccessful API envelope."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class SnapshotDecodeError(ScheduleCacheError):
    """A stored or received payload does not match the expected schema."""
