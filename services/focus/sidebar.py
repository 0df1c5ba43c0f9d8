"""
Sidebar menu model and content focus targets.

The menu is built from the cached manifest's ``tab`` list and falls back to
a fixed four-item menu when the manifest is missing or yields nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from shared.storage import keys
from shared.storage.state_store import PersistentStore

ROUTE_MAP = {
    "profile": "/profile",
    "channels": "/genre",
    "all": "/genre",
    "home": "/",
    "search": "/search",
    "movies": "/movies",
    "app": "/tv",
    "settings": "/settings",
    "epg": "/live",
}


@dataclass(frozen=True)
class MenuItem:
    name: str
    label: str
    route: str
    sequence: float = 0
    icon_url: str = ""


FALLBACK_MENU = (
    MenuItem("profile", "Profile", "/profile"),
    MenuItem("channels", "Live TV", "/genre"),
    MenuItem("epg", "Live", "/live"),
    MenuItem("settings", "Settings", "/settings"),
)


def _sequence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if value != value or value in (float("inf"), float("-inf")):
        return 0
    return value


def build_menu(manifest: Optional[Dict[str, Any]]) -> List[MenuItem]:
    tabs = manifest.get("tab") if isinstance(manifest, dict) else None
    if not isinstance(tabs, list):
        return list(FALLBACK_MENU)

    items: List[MenuItem] = []
    for tab in tabs:
        if not isinstance(tab, dict) or not tab.get("isVisible"):
            continue
        name = str(tab.get("name") or "").lower()
        route = ROUTE_MAP.get(name)
        if not route:
            continue
        items.append(MenuItem(
            name=name,
            label=str(tab.get("displayName") or tab.get("name") or ""),
            route=route,
            sequence=_sequence(tab.get("sequence")),
            icon_url=str(tab.get("iconUrl") or ""),
        ))

    if not items:
        return list(FALLBACK_MENU)

    items.sort(key=lambda it: it.sequence)

    profile = next((i for i, it in enumerate(items) if it.name == "profile"), -1)
    if profile > 0:
        items.insert(0, items.pop(profile))
    return items


def load_manifest(store: PersistentStore) -> Optional[Dict[str, Any]]:
    envelope = store.get_dict(keys.MANIFEST_CACHE)
    if not envelope:
        return None
    data = envelope.get("data", envelope)
    return data if isinstance(data, dict) else None


# ----------------------------------------------------------------------
# Content focus targets
# ----------------------------------------------------------------------

class FocusTargetKind(str, Enum):
    LANDING = "landing"
    LOGOUT_BUTTON = "logout-button"
    FIRST_FOCUSABLE = "first-focusable"
    MAIN_CONTENT = "main-content"


FIRST_FOCUSABLE_ROUTES = frozenset({"/tv", "/movies", "/sports", "/live", "/settings"})


@dataclass(frozen=True)
class FocusTarget:
    kind: FocusTargetKind
    route: str


def content_focus_target(route: str) -> FocusTarget:
    """Where focus lands when the sidebar hands input back to the page."""
    if route == "/":
        return FocusTarget(FocusTargetKind.LANDING, route)
    if route == "/profile":
        return FocusTarget(FocusTargetKind.LOGOUT_BUTTON, route)
    if route in FIRST_FOCUSABLE_ROUTES:
        return FocusTarget(FocusTargetKind.FIRST_FOCUSABLE, route)
    return FocusTarget(FocusTargetKind.MAIN_CONTENT, route)


# ----------------------------------------------------------------------
# Menu cursor
# ----------------------------------------------------------------------

class SidebarMenu:
    def __init__(self, items: Sequence[MenuItem]):
        self.items: List[MenuItem] = list(items) or list(FALLBACK_MENU)
        self.focused_index = 0

    @classmethod
    def from_store(cls, store: PersistentStore) -> "SidebarMenu":
        return cls(build_menu(load_manifest(store)))

    @property
    def focused_item(self) -> MenuItem:
        return self.items[self.focused_index]

    def index_for_route(self, route: str) -> int:
        for i, item in enumerate(self.items):
            if item.route == route:
                return i
        if route == "/genre":
            for i, item in enumerate(self.items):
                if item.route == "/live":
                    return i
        return 0

    def expand(self, route: str) -> MenuItem:
        self.focused_index = self.index_for_route(route)
        return self.focused_item

    def move(self, delta: int) -> MenuItem:
        self.focused_index = (self.focused_index + delta) % len(self.items)
        return self.focused_item
