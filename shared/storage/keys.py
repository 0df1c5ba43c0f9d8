"""
Canonical persistent-store key names.

Single source of truth for every key the runtime reads or writes in the
session and durable tiers. Keys written by other parts of the TV client
(login flow, route pages) are listed here too so that logout can clear
them without string duplication.
"""

from __future__ import annotations

# ----------------------------------------------------------------------
# AUTH / DEVICE
# ----------------------------------------------------------------------

USER = "user"
DEVICE_PSEUDO_MAC = "device_pseudo_mac"
DEVICE_PSEUDO_MAC_COLON = "device_pseudo_mac_colon"

# ----------------------------------------------------------------------
# ENTITLEMENT CACHES (single writer: services.entitlements.refresh)
# ----------------------------------------------------------------------

ACTIVE_PACKAGE_IDS = "userPkgIds"
PACKAGE_CHANNELS = "userPkgChannels"
PACKAGE_RECORD = "package"

# ----------------------------------------------------------------------
# CATALOG SNAPSHOT ({"ts": ..., "data": ...} envelope, read by the sidebar)
# ----------------------------------------------------------------------

MANIFEST_CACHE = "manifestCache"

# ----------------------------------------------------------------------
# PER-ROUTE FOCUS / SCROLL MARKERS (session tier)
# ----------------------------------------------------------------------

GENRE_LAST_SELECTED = "genre:lastSelected"
GENRE_LAST_FOCUSED_CHANNEL = "genre:lastFocusedChannel"
GENRE_LAST_FOCUSED_CHANNEL_ID = "genre:lastFocusedChannelId"
GENRE_LAST_FOCUSED_FROM_PLAYER = "genre:lastFocusedFromPlayer"
LANDING_FOCUS_APPLIED = "landingFocusApplied"
LANDING_FIND_ATTEMPTS = "landingFindAttempts"
LIVE_SCREEN_STATE = "live_screen_state_v1"

GENRE_SELECTION_MARKERS = (
    GENRE_LAST_SELECTED,
    GENRE_LAST_FOCUSED_CHANNEL,
    GENRE_LAST_FOCUSED_CHANNEL_ID,
)

ROUTE_FOCUS_MARKERS = (
    *GENRE_SELECTION_MARKERS,
    GENRE_LAST_FOCUSED_FROM_PLAYER,
    LANDING_FOCUS_APPLIED,
    LANDING_FIND_ATTEMPTS,
    LIVE_SCREEN_STATE,
)

# Markers cleared when the sidebar navigates into a route.
ROUTE_RESET_MARKERS = {
    "/genre": GENRE_SELECTION_MARKERS,
    "/live": (LIVE_SCREEN_STATE,),
}
