"""
Graph Snapshot Persistence
==========================
Whole-graph JSON snapshots on local disk.

Writes go to a temporary file in the same directory and are moved into
place with ``os.replace``, so a crash mid-write never leaves a truncated
snapshot behind. Failures are logged and reported as ``False`` / ``None``;
they never propagate to the ingestion path.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

from loguru import logger

from .exceptions import PersistenceError, SnapshotCorruptionError


class GraphSnapshotStore:
    """Load/save a graph snapshot dict to a JSON file."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, snapshot: Dict[str, Any]) -> None:
        """
        Atomically write ``snapshot``.

        Raises:
            PersistenceError: If the file cannot be written.
        """
        tmp_path: Optional[str] = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            payload = json.dumps(snapshot, indent=2, default=str, ensure_ascii=False)
            fd, tmp_path = tempfile.mkstemp(dir=str(self._path.parent), suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self._path)
            tmp_path = None
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(str(self._path), "write", str(e))
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
        logger.debug(f"[Persistence] Saved graph snapshot to {self._path}")

    def save(self, snapshot: Dict[str, Any]) -> bool:
        """Like ``write`` but logs and returns False on failure."""
        try:
            self.write(snapshot)
        except PersistenceError as e:
            logger.error(f"[Persistence] Failed to persist graph: {e}")
            return False
        return True

    def read(self) -> Optional[Dict[str, Any]]:
        """
        Read the snapshot file.

        Returns:
            The snapshot dict, or None if the file does not exist.

        Raises:
            SnapshotCorruptionError: If the file is unreadable or not a
                snapshot object.
        """
        if not self._path.exists():
            return None
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise SnapshotCorruptionError(str(self._path), str(e))
        if not isinstance(raw, dict) or not isinstance(raw.get("nodes", []), list):
            raise SnapshotCorruptionError(str(self._path), "expected an object with a 'nodes' list")
        return raw

    def load(self) -> Optional[Dict[str, Any]]:
        """Like ``read`` but logs and returns None on corruption."""
        try:
            return self.read()
        except SnapshotCorruptionError as e:
            logger.error(f"[Persistence] Failed to load graph: {e}")
            return None
