"""
======================================================================
 TVPush Runtime — Version v1.0.26 (Build 2026.10)
======================================================================
"""

from __future__ import annotations

"""
Configuration validation script.

This script validates shared/config/system.json against
schemas/system.schema.json.

Design rules:
- No side effects on import
- No runtime startup
- Validation only (no mutation)
- Forward-compatible: unknown fields are ignored
"""

import sys
from pathlib import Path
from typing import Optional

from core.config_loader import ConfigError, ConfigLoader


# ------------------------------------------------------------
# Paths
# ------------------------------------------------------------

ROOT = Path(__file__).resolve().parents[1]
CONFIG_PATH = ROOT / "shared" / "config" / "system.json"
SCHEMA_DIR = ROOT / "schemas"


def _error(msg: str):
    print(f"[CONFIG ERROR] {msg}", file=sys.stderr)


# ------------------------------------------------------------
# Validators
# ------------------------------------------------------------

def validate_system_config(config_path: Optional[Path] = None) -> bool:
    """
    Validate system.json.

    A missing file is allowed (defaults apply).
    Unreadable JSON or a non-object root is rejected.
    Schema violations are rejected.
    """

    path = Path(config_path) if config_path else CONFIG_PATH
    if not path.exists():
        return True

    loader = ConfigLoader(path, SCHEMA_DIR, strict=True)
    try:
        data = loader.load_raw()
    except ConfigError as e:
        _error(str(e))
        return False

    errors = loader.validation_errors(data)
    for message in errors:
        _error(f"system.json: {message}")

    return not errors


# ------------------------------------------------------------
# Entry point
# ------------------------------------------------------------

def main() -> int:
    if not validate_system_config():
        print("Configuration validation failed.", file=sys.stderr)
        return 1

    print("Configuration validation passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
