"""
Push stream message normalization.

Maps the loosely-typed JSON objects carried by the combined push stream
onto ``StreamEvent`` records. Two wire shapes exist:

- snapshot: one or more of the rule arrays (``fingerprints``,
  ``scrollMessages``, ``forceMessages``, ``userBlocks``, ``userUpdates``,
  ``packageUpdates``) bundled into a single message
- discrete: ``{type|event, payload}`` notices and delete/disable signals

Array elements may use long field names (``message``, ``enabled``) or
abbreviated ones (``m``, ``e``); the long form wins when both are present.
Anything unrecognised normalizes to an empty list, never an exception.
"""

from __future__ import annotations

import re
import time
from typing import Any, Dict, List, Optional, Tuple

from services.stream.models import (
    SCOPE_GLOBAL,
    CombinedSnapshot,
    DeleteNotice,
    EventKind,
    FingerprintRule,
    ForceRule,
    ScrollRule,
    SnapshotSettings,
    StreamEvent,
    ToastNotice,
    UserBlockEntry,
)
from shared.logging.logger import get_logger
from shared.runtime.ratelimits import unique_in_order
from shared.utils.hashing import synthesize_event_id

log = get_logger("services.stream.normalizer")

SNAPSHOT_KEYS = (
    "fingerprints",
    "scrollMessages",
    "forceMessages",
    "userBlocks",
    "userUpdates",
    "packageUpdates",
)

SCOPE_KEYS = ("scope", "targetScope", "scrollScope", "messageScope")

CHANNEL_KEYS = ("channelId", "ChannelID", "channel", "liveChannel", "LiveChannel")

CHANNEL_LIST_KEYS = (
    "channelIds",
    "channels",
    "liveChannels",
    "channelIdList",
    "liveChannelIds",
    "channelList",
)

# long name -> abbreviated name
FORCE_STYLE_FIELDS = (
    ("messageBackgroundColorHex", "bgHex"),
    ("messageBackgroundTransparency", "bgT"),
    ("messageFontColorHex", "mfHex"),
    ("messageFontTransparency", "mfT"),
    ("messageFontSizeDp", "mfSize"),
    ("titleFontColorHex", "tfHex"),
    ("titleFontTransparency", "tfT"),
    ("titleFontSizeDp", "tfSize"),
)

SCROLL_TYPES = ("scroll_message", "scroll")
FINGERPRINT_TYPES = ("fingerprint", "finger_print")

_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")


# ----------------------------------------------------------------------
# Field helpers
# ----------------------------------------------------------------------

def _coalesce(obj: Dict[str, Any], *keys: str) -> Any:
    """First value that is present and not null."""
    for key in keys:
        value = obj.get(key)
        if value is not None:
            return value
    return None


def _first_truthy(obj: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = obj.get(key)
        if value:
            return value
    return None


def is_off(value: Any) -> bool:
    """``False`` or numeric zero. ``None`` and other values are not off."""
    if value is False:
        return True
    return type(value) in (int, float) and value == 0


def _is_true_flag(value: Any) -> bool:
    return value is True or (type(value) is int and value == 1)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _leading_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    match = _INT_PREFIX.match(str(value))
    return int(match.group(1)) if match else None


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _channel_targets(rule: Dict[str, Any]) -> Tuple[str, ...]:
    single = _first_truthy(rule, *CHANNEL_KEYS)
    if single:
        return (str(single),)

    targets = _first_truthy(rule, *CHANNEL_LIST_KEYS)
    if isinstance(targets, list) and targets:
        return tuple(str(t) for t in targets)
    if isinstance(targets, str) and targets.strip():
        return (targets.strip(),)
    return ()


# ----------------------------------------------------------------------
# Snapshot element parsers
# ----------------------------------------------------------------------

def parse_scroll_rule(raw: Dict[str, Any]) -> ScrollRule:
    repeat = _leading_int(_coalesce(raw, "repeatCount", "rc"))
    return ScrollRule(
        id=_optional_str(_coalesce(raw, "id", "_id")),
        enabled=not is_off(_coalesce(raw, "enabled", "e")),
        message=_text(_coalesce(raw, "message", "m")),
        interval_sec=_number(_coalesce(raw, "intervalSec", "is")),
        duration_sec=_number(_coalesce(raw, "durationSec", "ds")),
        repeat_count=repeat,
        scope=_text(_first_truthy(raw, *SCOPE_KEYS)),
        channel_targets=_channel_targets(raw),
        updated_at=_optional_str(_coalesce(raw, "updatedAt", "u")),
    )


def parse_force_rule(raw: Dict[str, Any]) -> ForceRule:
    duration = _leading_int(_coalesce(raw, "duration", "d"))
    if duration is not None:
        duration = None if duration == -1 else max(1, duration)

    styling: Dict[str, Any] = {}
    for long_name, short_name in FORCE_STYLE_FIELDS:
        value = _coalesce(raw, long_name, short_name)
        if value is not None:
            styling[long_name] = value

    scope = _text(raw.get("messageScope") or "").upper()

    return ForceRule(
        id=_optional_str(_coalesce(raw, "id", "_id")),
        enabled=not is_off(_coalesce(raw, "enabled", "e")),
        title=_text(_coalesce(raw, "messageTitle", "t", "title")),
        message=_text(_coalesce(raw, "message", "m")),
        scope=scope or SCOPE_GLOBAL,
        duration=duration,
        force_push=_coalesce(raw, "forcePush", "fp") is True,
        styling=styling,
        updated_at=_optional_str(_coalesce(raw, "updatedAt", "u")),
    )


def parse_fingerprint(raw: Dict[str, Any]) -> FingerprintRule:
    name = _text(_coalesce(raw, "displayName", "fingerprintName", "name", "text")).strip()
    return FingerprintRule(
        id=_optional_str(_coalesce(raw, "id", "_id")),
        enabled=not is_off(_coalesce(raw, "enabled", "e")),
        display_name=name or "Fingerprint",
        attributes=dict(raw),
    )


def parse_user_block(raw: Dict[str, Any]) -> UserBlockEntry:
    return UserBlockEntry(
        username=_text(raw.get("username")).strip(),
        customer_number=_text(_coalesce(raw, "customerNumber", "customer_number")).strip(),
        user_id=_text(_coalesce(raw, "userId", "user_id")).strip(),
        is_blocked=_is_true_flag(raw.get("isBlocked")),
    )


def extract_package_ids(updates: List[Any]) -> List[str]:
    ids: List[str] = []
    for item in updates:
        if isinstance(item, dict):
            value = _first_truthy(item, "packageID", "serviceId", "id")
        elif isinstance(item, (str, int)) and not isinstance(item, bool):
            value = item
        else:
            value = None
        text = _text(value).strip() if value else ""
        if text:
            ids.append(text)
    return unique_in_order(ids)


def _dict_items(values: List[Any]) -> List[Dict[str, Any]]:
    return [v for v in values if isinstance(v, dict)]


def _parse_snapshot(obj: Dict[str, Any]) -> CombinedSnapshot:
    def _array(key: str) -> Optional[List[Any]]:
        value = obj.get(key)
        return value if isinstance(value, list) else None

    snapshot = CombinedSnapshot(type=obj.get("type") if isinstance(obj.get("type"), str) else None)

    settings = obj.get("settings")
    if isinstance(settings, dict):
        snapshot.settings = SnapshotSettings(
            global_fingerprint_enabled=not is_off(settings.get("globalFingerprintEnabled")),
            player_fingerprint_enabled=not is_off(settings.get("playerFingerprintEnabled")),
        )

    fingerprints = _array("fingerprints")
    if fingerprints is not None:
        snapshot.fingerprints = [parse_fingerprint(fp) for fp in _dict_items(fingerprints)]

    scroll = _array("scrollMessages")
    if scroll is not None:
        snapshot.scroll_messages = [parse_scroll_rule(sm) for sm in _dict_items(scroll)]

    force = _array("forceMessages")
    if force is not None:
        snapshot.force_messages = [parse_force_rule(fm) for fm in _dict_items(force)]

    blocks = _array("userBlocks")
    if blocks is not None:
        snapshot.user_blocks = [parse_user_block(b) for b in _dict_items(blocks)]

    user_updates = _array("userUpdates")
    if user_updates is not None:
        snapshot.user_updates = list(user_updates)

    package_updates = _array("packageUpdates")
    if package_updates is not None:
        snapshot.package_ids = extract_package_ids(package_updates)

    return snapshot


# ----------------------------------------------------------------------
# Discrete shape
# ----------------------------------------------------------------------

def _delete_reason(obj: Dict[str, Any], payload: Dict[str, Any]) -> Optional[str]:
    if _text(obj.get("op")).lower() == "delete":
        return "op"

    disabled = (
        is_off(obj.get("enabled"))
        or is_off(obj.get("active"))
        or obj.get("toggle") is False
        or obj.get("status") == "off"
        or is_off(payload.get("enabled"))
    )
    if disabled:
        return "disabled"

    if obj.get("message") == "" or payload.get("message") == "":
        return "empty-message"

    return None


def _toast_text(type_raw: str, obj: Dict[str, Any], payload: Dict[str, Any]) -> Optional[str]:
    if type_raw in SCROLL_TYPES:
        value = payload.get("message")
        if value is None:
            value = obj.get("message")
        return _text(value).strip()

    if type_raw in FINGERPRINT_TYPES:
        value = payload.get("fingerprintName")
        return _text(value if value is not None else "Fingerprint").strip()

    return None


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def is_snapshot(obj: Dict[str, Any]) -> bool:
    return any(isinstance(obj.get(key), list) for key in SNAPSHOT_KEYS)


def normalize(raw: Any, arrival_ts: Optional[float] = None) -> List[StreamEvent]:
    """
    Map one decoded stream payload onto zero or more events.

    Never raises on malformed input; unknown shapes yield ``[]``.
    """

    if not isinstance(raw, dict):
        log.debug(f"Dropping non-object payload ({type(raw).__name__})")
        return []

    ts = arrival_ts if arrival_ts is not None else time.time()
    event_id = _optional_str(_coalesce(raw, "id", "_id")) or synthesize_event_id(raw, ts)

    if is_snapshot(raw):
        snapshot = _parse_snapshot(raw)
        return [StreamEvent(EventKind.COMBINED_SNAPSHOT, event_id, snapshot)]

    payload = raw.get("payload")
    if not isinstance(payload, dict):
        payload = {}

    reason = _delete_reason(raw, payload)
    if reason:
        target = _optional_str(raw.get("id"))
        return [StreamEvent(EventKind.DELETE, event_id, DeleteNotice(reason, target))]

    type_raw = _text(raw.get("type") or raw.get("event")).lower()
    text = _toast_text(type_raw, raw, payload)

    if text is None:
        log.debug(f"Dropping unrecognised message type '{type_raw}'")
        return []

    if not text:
        return []

    kind = EventKind.SCROLL_MESSAGE if type_raw in SCROLL_TYPES else EventKind.FINGERPRINT
    return [StreamEvent(kind, event_id, ToastNotice(text, type_raw))]
