"""
Durable state file helpers.

This module centralizes atomic writes of the durable key-value tier so a
crash mid-write never leaves a truncated JSON document behind.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict

from shared.logging.logger import get_logger

log = get_logger("shared.state_publisher")


class DurableStatePublisher:
    """
    Atomic JSON snapshot writer/reader for a single durable state file.
    """

    DEFAULT_PATH = Path("shared/state/durable_store.json")

    def __init__(self, path: Path | str | None = None):
        self._path = Path(path) if path else self.DEFAULT_PATH
        self._path.parent.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Atomic writer
    # ------------------------------------------------------------------

    def _write_atomic(self, path: Path, payload: Any) -> None:
        serialized = json.dumps(payload, indent=2)
        path.parent.mkdir(parents=True, exist_ok=True)

        with tempfile.NamedTemporaryFile(
            "w", dir=path.parent, delete=False, encoding="utf-8"
        ) as tmp:
            tmp.write(serialized)
            tmp.flush()
            os.fsync(tmp.fileno())
            temp_path = Path(tmp.name)

        temp_path.replace(path)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Dict[str, Any]:
        """
        Read the durable document. Missing or unreadable files yield an
        empty mapping so the runtime can continue with defaults.
        """
        if not self._path.exists():
            return {}

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except Exception as e:
            log.warning(f"Failed to load durable state {self._path}: {e}")
            return {}

        if not isinstance(data, dict):
            log.warning(f"Durable state root is not an object; ignoring ({self._path})")
            return {}
        return data

    def publish(self, payload: Dict[str, Any]) -> None:
        try:
            self._write_atomic(self._path, payload)
        except Exception as e:
            log.error(f"Failed to write durable state {self._path}: {e}")
