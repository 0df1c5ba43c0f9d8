"""
Remote-control key mapping.

TV platforms report the same physical button under different names and
numeric codes. Everything the focus machine sees is first mapped onto
``RemoteKey``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from shared.logging.logger import get_logger

log = get_logger("services.focus.keys")


class RemoteKey(str, Enum):
    UP = "Up"
    DOWN = "Down"
    LEFT = "Left"
    RIGHT = "Right"
    SELECT = "Select"
    BACK = "Back"
    TAB = "Tab"

    @property
    def is_directional(self) -> bool:
        return self in (RemoteKey.UP, RemoteKey.DOWN, RemoteKey.LEFT, RemoteKey.RIGHT)

    @classmethod
    def from_event(cls, key: Optional[str] = None, key_code: Optional[int] = None) -> Optional["RemoteKey"]:
        """Map a raw ``key`` name and/or numeric ``key_code``; ``None`` if unmapped."""
        if key:
            mapped = KEY_NAMES.get(key)
            if mapped is not None:
                return mapped
        if key_code is not None:
            return KEY_CODES.get(key_code)
        return None


KEY_NAMES = {
    "ArrowUp": RemoteKey.UP,
    "Up": RemoteKey.UP,
    "ArrowDown": RemoteKey.DOWN,
    "Down": RemoteKey.DOWN,
    "ArrowLeft": RemoteKey.LEFT,
    "Left": RemoteKey.LEFT,
    "ArrowRight": RemoteKey.RIGHT,
    "Right": RemoteKey.RIGHT,
    "Enter": RemoteKey.SELECT,
    "OK": RemoteKey.SELECT,
    "Select": RemoteKey.SELECT,
    "Accept": RemoteKey.SELECT,
    "Tab": RemoteKey.TAB,
    "Backspace": RemoteKey.BACK,
    "Escape": RemoteKey.BACK,
    "Back": RemoteKey.BACK,
    "GoBack": RemoteKey.BACK,
    "BrowserBack": RemoteKey.BACK,
}

KEY_CODES = {
    38: RemoteKey.UP,
    40: RemoteKey.DOWN,
    37: RemoteKey.LEFT,
    39: RemoteKey.RIGHT,
    13: RemoteKey.SELECT,
    9: RemoteKey.TAB,
    27: RemoteKey.BACK,
    8: RemoteKey.BACK,  # backspace-as-back remotes
    461: RemoteKey.BACK,  # LG webOS
    10009: RemoteKey.BACK,  # Samsung Tizen
}


def register_hardware_back_key(vendor_api: Any) -> bool:
    """
    Ask the platform input API to deliver its hardware Back key.

    Absence or failure is logged and ignored; the key may still arrive as
    an ordinary keyboard event.
    """
    if vendor_api is None:
        log.debug("[keys] no vendor input API; hardware Back not registered")
        return False

    try:
        vendor_api.register_key("Back")
    except Exception as e:
        log.warning(f"[keys] failed to register hardware Back key: {e}")
        return False

    log.info("[keys] registered hardware Back key")
    return True


class KeyResult(str, Enum):
    """Outcome of offering a key to the focus machine."""

    HANDLED = "handled"
    SWALLOWED = "swallowed"
    IGNORED = "ignored"

    @property
    def consumed(self) -> bool:
        return self is not KeyResult.IGNORED
