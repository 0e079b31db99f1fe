"""Snapshot store interface for session metadata persistence.

The session registry keeps everything in memory and periodically writes a
snapshot of session metadata through this interface.  Message bodies are
never part of a snapshot.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class SnapshotStore(Protocol):
    """Async protocol for reading and writing the metadata snapshot."""

    async def write_snapshot(self, records: list[dict[str, Any]]) -> None:
        """Replace the stored snapshot with *records*."""
        ...

    async def read_snapshot(self) -> list[dict[str, Any]]:
        """Read the stored snapshot.  Raises ``FileNotFoundError`` if none exists."""
        ...
