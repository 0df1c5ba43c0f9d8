import copy
import json
from enum import Enum
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional

from shared.logging.logger import get_logger
from shared.storage.state_publisher import DurableStatePublisher

_log = get_logger("shared.state_store")


class Tier(str, Enum):
    SESSION = "session"
    DURABLE = "durable"


BOTH_TIERS = (Tier.SESSION, Tier.DURABLE)


class PersistentStore:
    """
    Two-tier key-value store shared by the whole client.

    - SESSION tier lives in memory for the app lifetime
    - DURABLE tier is a JSON document persisted atomically on every write
    - Reads without an explicit tier prefer SESSION, then DURABLE
    - Unsynchronized across writers: last writer wins per key
    """

    def __init__(
        self,
        durable_path: Path | str | None = None,
        *,
        publisher: Optional[DurableStatePublisher] = None,
    ):
        self._lock = Lock()
        self._publisher = publisher or DurableStatePublisher(durable_path)
        self._session: Dict[str, Any] = {}
        self._durable: Dict[str, Any] = self._publisher.load()

    # ==================================================================
    # INTERNAL
    # ==================================================================

    def _tier_map(self, tier: Tier) -> Dict[str, Any]:
        return self._session if tier == Tier.SESSION else self._durable

    def _persist_durable(self) -> None:
        self._publisher.publish(self._durable)

    @staticmethod
    def _decode(value: Any) -> Any:
        # Other writers in the client may store JSON-encoded strings.
        if isinstance(value, str):
            stripped = value.strip()
            if stripped[:1] in ("{", "["):
                try:
                    return json.loads(stripped)
                except ValueError:
                    return value
        return value

    # ==================================================================
    # PUBLIC API
    # ==================================================================

    def get(
        self,
        key: str,
        default: Any = None,
        *,
        tier: Optional[Tier] = None,
    ) -> Any:
        tiers = (tier,) if tier else BOTH_TIERS
        with self._lock:
            for t in tiers:
                values = self._tier_map(t)
                if key in values and values[key] is not None:
                    return copy.deepcopy(values[key])
        return default

    def set(
        self,
        key: str,
        value: Any,
        *,
        tiers: Iterable[Tier] = BOTH_TIERS,
    ) -> None:
        tiers = tuple(tiers)
        with self._lock:
            for t in tiers:
                self._tier_map(t)[key] = copy.deepcopy(value)
            if Tier.DURABLE in tiers:
                self._persist_durable()

    def remove(self, key: str, *, tiers: Iterable[Tier] = BOTH_TIERS) -> None:
        tiers = tuple(tiers)
        with self._lock:
            durable_changed = False
            for t in tiers:
                values = self._tier_map(t)
                if key in values:
                    values.pop(key, None)
                    durable_changed = durable_changed or t == Tier.DURABLE
            if durable_changed:
                self._persist_durable()

    def contains(self, key: str, *, tier: Optional[Tier] = None) -> bool:
        return self.get(key, tier=tier) is not None

    # ------------------------------------------------------------------
    # Typed accessors (default on missing or mistyped values)
    # ------------------------------------------------------------------

    def get_str(self, key: str, default: str = "", *, tier: Optional[Tier] = None) -> str:
        value = self.get(key, tier=tier)
        if value is None:
            return default
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            text = str(value).strip()
            return text or default
        return default

    def get_dict(
        self,
        key: str,
        default: Optional[Dict[str, Any]] = None,
        *,
        tier: Optional[Tier] = None,
    ) -> Dict[str, Any]:
        value = self._decode(self.get(key, tier=tier))
        if isinstance(value, dict):
            return value
        if value is not None:
            _log.debug(f"Store key '{key}' is not an object; using default")
        return dict(default or {})

    def get_list(
        self,
        key: str,
        default: Optional[List[Any]] = None,
        *,
        tier: Optional[Tier] = None,
    ) -> List[Any]:
        value = self._decode(self.get(key, tier=tier))
        if isinstance(value, list):
            return value
        if value is not None:
            _log.debug(f"Store key '{key}' is not a list; using default")
        return list(default or [])

    def snapshot(self, tier: Tier) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._tier_map(tier))
