from __future__ import annotations

from shared.logging.logger import get_logger
from shared.storage import keys
from shared.storage.state_store import BOTH_TIERS, PersistentStore, Tier

log = get_logger("services.session.logout")


def perform_full_logout(store: PersistentStore) -> None:
    """
    Clear the authenticated user plus every persisted UI and entitlement
    value that must not survive a logout.
    """

    store.remove(keys.USER, tiers=BOTH_TIERS)

    for marker in keys.ROUTE_FOCUS_MARKERS:
        store.remove(marker, tiers=BOTH_TIERS)

    store.remove(keys.ACTIVE_PACKAGE_IDS, tiers=BOTH_TIERS)
    store.remove(keys.PACKAGE_CHANNELS, tiers=BOTH_TIERS)

    log.info("[session] full logout completed")


def reset_route_markers(store: PersistentStore, route: str) -> bool:
    """Forget the remembered focus/scroll position of ``route``, if it keeps one."""
    markers = keys.ROUTE_RESET_MARKERS.get(route)
    if not markers:
        return False

    for marker in markers:
        store.remove(marker, tiers=(Tier.SESSION,))
    log.debug(f"[session] reset markers for {route}: {list(markers)}")
    return True
