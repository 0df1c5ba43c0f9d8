"""
Session identity resolution.

The authenticated-user record is written by the login flow and may be
nested (``{"data": {"username": ...}}``) or flat. Every field is resolved
through a fallback chain; nothing here raises on a malformed record.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from shared.storage import keys
from shared.storage.state_store import PersistentStore, Tier


@dataclass(frozen=True)
class SessionIdentity:
    user_id: Optional[str] = None
    username: Optional[str] = None
    customer_number: Optional[str] = None
    region_code: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.customer_number or self.username or self.user_id)

    def matches(self, candidate: str) -> bool:
        if not candidate:
            return False
        return candidate in (self.username, self.customer_number, self.user_id)


def _first(record: Dict[str, Any], *paths: str) -> Optional[str]:
    for path in paths:
        node: Any = record
        for part in path.split("."):
            node = node.get(part) if isinstance(node, dict) else None
        if node is None or isinstance(node, (dict, list, bool)):
            continue
        text = str(node).strip()
        if text:
            return text
    return None


def identity_from_record(record: Any) -> SessionIdentity:
    if not isinstance(record, dict):
        return SessionIdentity()

    return SessionIdentity(
        user_id=_first(record, "data.userId", "userId"),
        username=_first(record, "data.username", "username", "credentials.username"),
        customer_number=_first(record, "data.customerNumber", "customerNumber"),
        region_code=_first(record, "data.regionCode", "regionCode"),
    )


def load_identity(store: PersistentStore) -> SessionIdentity:
    return identity_from_record(store.get_dict(keys.USER))


def load_device_id(store: PersistentStore) -> Optional[str]:
    for key in (keys.DEVICE_PSEUDO_MAC_COLON, keys.DEVICE_PSEUDO_MAC):
        value = store.get_str(key, tier=Tier.DURABLE)
        if value:
            return value
    return None


def load_active_package_ids(store: PersistentStore) -> list:
    return [str(p) for p in store.get_list(keys.ACTIVE_PACKAGE_IDS) if p not in (None, "")]


def package_display_names(store: PersistentStore) -> str:
    """Comma-joined service names from the cached package record."""
    raw = store.get(keys.PACKAGE_RECORD)
    if raw is None:
        return ""

    record = store.get_dict(keys.PACKAGE_RECORD)
    if not record:
        # Plain-text package labels are shown as stored.
        if isinstance(raw, str) and raw.strip()[:1] not in ("{", "["):
            return raw.strip()
        return ""

    results = record.get("results") or record.get("packages") or []
    if not isinstance(results, list):
        return ""

    names = []
    for item in results:
        if not isinstance(item, dict):
            continue
        name = item.get("serviceName") or item.get("name")
        if name:
            names.append(str(name))

    joined = ",".join(names)
    return joined[:1].upper() + joined[1:]
