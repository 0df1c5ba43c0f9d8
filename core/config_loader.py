"""
Configuration loader with schema validation.

This module centralizes ingestion of the runtime's system.json and applies
lightweight schema validation. Failures are treated as warnings so the
runtime can continue booting with best-effort defaults.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import Draft7Validator

from shared.config.system import CONFIG_PATH, SystemConfig, load_system_config
from shared.logging.logger import get_logger

log = get_logger("core.config_loader")


class ConfigError(Exception):
    """Raised in strict mode when a config document is unreadable."""


class ConfigLoader:
    """
    Loads and validates the runtime configuration document.

    Files:
      - shared/config/system.json (optional, defaults apply when absent)

    Validation:
      - If schemas/system.schema.json is present, validate and log warnings
        on failure without aborting runtime startup.
    """

    SCHEMA_DIR = Path("schemas")

    def __init__(
        self,
        config_path: Optional[Path] = None,
        schema_dir: Optional[Path] = None,
        *,
        strict: bool = False,
    ) -> None:
        self._config_path = Path(config_path) if config_path else CONFIG_PATH
        self._schema_path = Path(schema_dir or self.SCHEMA_DIR) / "system.schema.json"
        self._strict = strict

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_json(self, path: Path, name: str) -> Dict[str, Any]:
        if not path.exists():
            log.warning(f"{name} config not found at {path}; using defaults")
            return {}

        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except Exception as e:
            if self._strict:
                raise ConfigError(f"Failed to load {name} config: {e}") from e
            log.warning(f"Failed to load {name} config ({e}); using defaults")
            return {}

        if isinstance(data, dict):
            return data

        if self._strict:
            raise ConfigError(f"{name} config root is not an object")
        log.warning(f"{name} config root is not an object; ignoring")
        return {}

    def validation_errors(self, payload: Dict[str, Any]) -> List[str]:
        """Return human-readable schema violations for ``payload``."""

        if not self._schema_path.exists():
            log.debug(f"Schema not found at {self._schema_path}; skipping")
            return []

        try:
            schema = json.loads(self._schema_path.read_text(encoding="utf-8"))
        except Exception as e:  # pragma: no cover - defensive
            log.warning(f"Failed to load system schema ({e}); skipping validation")
            return []

        validator = Draft7Validator(schema)
        errors = sorted(validator.iter_errors(payload), key=lambda e: list(e.path))

        messages: List[str] = []
        for err in errors:
            loc = "/".join(str(p) for p in err.path)
            messages.append(f"'{loc}': {err.message}")
        return messages

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load_raw(self) -> Dict[str, Any]:
        return self._load_json(self._config_path, "system")

    def load_system_config(self) -> SystemConfig:
        """
        Load system.json with schema validation and environment overrides.

        Violations are logged; the typed loader coerces or defaults each
        offending field independently.
        """

        data = self.load_raw()
        if data:
            for message in self.validation_errors(data):
                log.warning(f"system config validation warning at {message}")

        return load_system_config(data)
