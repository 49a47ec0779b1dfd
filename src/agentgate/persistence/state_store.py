"""State store — durable snapshot of the protocol ledgers.

Holds the independent key-value maps (authorized agents, consumed and
revealed digests, consumed cross-chain pairs), the trusted root scalar,
the applied-update index and the validator policy. Only set members are
written; absence means ``False``.

Writes go to a temporary file that is then renamed over the snapshot, so
a crash mid-write leaves the previous snapshot intact.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

SNAPSHOT_VERSION = 1


class StateStore:
    """JSON snapshot persistence for a ProtocolService."""

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = Path(storage_path)

    @property
    def storage_path(self) -> Path:
        return self._storage_path

    def save(self, state: dict[str, Any]) -> None:
        """Atomically replace the snapshot with ``state``."""
        document = {"snapshot_version": SNAPSHOT_VERSION, **state}
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(document, f, sort_keys=True, indent=2, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp_path, self._storage_path)

    def load(self) -> Optional[dict[str, Any]]:
        """Return the saved state, or None if nothing has been saved yet.

        Raises ValueError on an unknown snapshot version.
        """
        if not self._storage_path.exists():
            return None
        with self._storage_path.open("r", encoding="utf-8") as f:
            document = json.load(f)
        version = document.pop("snapshot_version", None)
        if version != SNAPSHOT_VERSION:
            raise ValueError(
                f"Unsupported state snapshot version {version!r} in {self._storage_path}"
            )
        return document
