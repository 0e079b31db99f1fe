"""Snapshot store implementations for session metadata persistence."""

from agentrelay.runtime.store.base import SnapshotStore
from agentrelay.runtime.store.local import LocalSnapshotStore

__all__ = ["LocalSnapshotStore", "SnapshotStore"]
