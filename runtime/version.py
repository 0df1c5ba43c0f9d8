"""Runtime version metadata for the TV push runtime.

This module is import-safe and exposes authoritative version identifiers for
other runtime modules without executing side effects on import.
"""

from __future__ import annotations

PROJECT_NAME = "TVPush Runtime"
VERSION = "v1.0.26"
BUILD = "2026.10"
APP_VERSION_TAG = "caastv_1.0.26"

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "BUILD",
    "APP_VERSION_TAG",
    "as_dict",
    "as_string",
]


def as_dict() -> dict[str, str]:
    """Return version metadata as a dictionary."""

    return {
        "project": PROJECT_NAME,
        "version": VERSION,
        "build": BUILD,
        "app_version": APP_VERSION_TAG,
    }


def as_string() -> str:
    """Return a concise version string."""

    return f"{PROJECT_NAME} {VERSION} (Build {BUILD})"
