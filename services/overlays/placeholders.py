from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from services.session.identity import load_device_id, load_identity, package_display_names
from shared.storage.state_store import PersistentStore

_USER = re.compile(r"\$\$@User", re.IGNORECASE)
_MAC = re.compile(r"\$\$@Mac", re.IGNORECASE)
_PACKAGE = re.compile(r"\$\$@Package", re.IGNORECASE)


@dataclass(frozen=True)
class PlaceholderValues:
    username: str = ""
    device_id: str = ""
    packages: str = ""

    @classmethod
    def from_store(cls, store: PersistentStore) -> "PlaceholderValues":
        identity = load_identity(store)
        return cls(
            username=identity.username or "",
            device_id=load_device_id(store) or "",
            packages=package_display_names(store),
        )


def expand_placeholders(text: Optional[str], values: PlaceholderValues) -> str:
    """Replace ``$$@User``, ``$$@Mac`` and ``$$@Package`` (any case)."""
    if not text:
        return ""
    out = _USER.sub(lambda _: f" {values.username} ", text)
    out = _MAC.sub(lambda _: f" {values.device_id} ", out)
    return _PACKAGE.sub(lambda _: f" {values.packages} ", out)
