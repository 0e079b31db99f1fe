"""Local filesystem snapshot store.

Stores the session metadata snapshot as a JSON file under the data root with
optional namespace prefix::

    {data_root}/{prefix}/sessions.json

When prefix is None, the path collapses to::

    {data_root}/sessions.json

Uses ``anyio.to_thread.run_sync`` for non-blocking file I/O.

Writes are atomic: data is written to a temporary file in the same directory,
then renamed to the target path.  This prevents corrupt reads if the process
crashes mid-write.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from functools import partial
from pathlib import Path
from typing import Any

from anyio import to_thread

SNAPSHOT_FILE = "sessions.json"


class LocalSnapshotStore:
    """Local filesystem implementation of the SnapshotStore protocol."""

    def __init__(self, data_root: str | Path, prefix: str | None = None) -> None:
        base = Path(data_root)
        if prefix:
            base = base / prefix
        self._path = base / SNAPSHOT_FILE

    @property
    def path(self) -> Path:
        return self._path

    async def write_snapshot(self, records: list[dict[str, Any]]) -> None:
        data = json.dumps(records, indent=2)
        await to_thread.run_sync(partial(_atomic_write, self._path, data))

    async def read_snapshot(self) -> list[dict[str, Any]]:
        raw = await to_thread.run_sync(partial(_read_file, self._path))
        records = json.loads(raw)
        if not isinstance(records, list):
            msg = f"Snapshot {self._path} is not a JSON list"
            raise ValueError(msg)  # noqa: TRY004
        return records


# -- Sync helpers (run in thread pool) -----------------------------------------


def _atomic_write(path: Path, data: str) -> None:
    """Write data atomically: temp file + rename.

    The temp file is created in the same directory so ``os.replace`` is
    atomic on POSIX.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


def _read_file(path: Path) -> str:
    """Read file contents.  Raises ``FileNotFoundError`` if missing."""
    return path.read_text(encoding="utf-8")
