"""
Entitlement refresh.

``EntitlementRefresher`` performs the external calls and is the only writer
of the entitlement cache keys. ``EntitlementRefreshTrigger`` sits in front
of it for stream-driven refreshes: account refreshes pass an in-flight
guard and a minimum interval, package refreshes fan out in a bounded burst
with the remainder deferred. Trigger-side failures are logged and dropped,
never retried.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from services.entitlements.client import EntitlementClient
from services.session.identity import load_identity
from shared.logging.logger import get_logger
from shared.runtime.ratelimits import FanOutPolicy, RefreshThrottle, unique_in_order
from shared.storage import keys
from shared.storage.state_store import BOTH_TIERS, PersistentStore

log = get_logger("services.entitlements.refresh")

END_DATE_KEYS = ("end-date", "expire-date", "expireDate", "endDate")


@dataclass
class PackageChannels:
    asset_ids: List[str] = field(default_factory=list)
    content_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {"assetIds": list(self.asset_ids), "contentIds": list(self.content_ids)}


@dataclass
class AccountEntitlements:
    active_ids: List[str] = field(default_factory=list)
    channels_by_package: Dict[str, PackageChannels] = field(default_factory=dict)


# ----------------------------------------------------------------------
# Pure helpers
# ----------------------------------------------------------------------

def _kebab_or_camel(item: Dict[str, Any], kebab: str, camel: str) -> str:
    value = item.get(kebab)
    if value is None:
        value = item.get(camel)
    return "" if value is None else str(value)


def _results(payload: Any) -> List[Dict[str, Any]]:
    results = payload.get("results") if isinstance(payload, dict) else None
    if not isinstance(results, list):
        return []
    return [r for r in results if isinstance(r, dict)]


def is_service_active(item: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    """
    Active when no end date is set, or the end date (end of that day, UTC)
    is not in the past. Unparseable dates count as active.
    """
    end = None
    for key in END_DATE_KEYS:
        if item.get(key):
            end = str(item[key])
            break
    if not end:
        return True

    try:
        end_of_day = datetime.fromisoformat(f"{end}T23:59:59+00:00")
    except ValueError:
        return True

    now = now or datetime.now(timezone.utc)
    return end_of_day >= now


def parse_channels(payload: Any) -> PackageChannels:
    items = _results(payload)
    return PackageChannels(
        asset_ids=[a for a in (_kebab_or_camel(i, "asset-id", "assetId") for i in items) if a],
        content_ids=[c for c in (_kebab_or_camel(i, "content-id", "contentId") for i in items) if c],
    )


def normalize_package_entry(entry: Any) -> PackageChannels:
    # Older caches stored a bare list of asset ids per package.
    if isinstance(entry, list):
        return PackageChannels(asset_ids=[str(a) for a in entry])
    if not isinstance(entry, dict):
        return PackageChannels()
    assets = entry.get("assetIds")
    contents = entry.get("contentIds")
    return PackageChannels(
        asset_ids=[str(a) for a in assets] if isinstance(assets, list) else [],
        content_ids=[str(c) for c in contents] if isinstance(contents, list) else [],
    )


def is_asset_playable(store: PersistentStore, asset_id: Any = "", content_id: Any = "") -> bool:
    asset = str(asset_id or "").strip()
    content = str(content_id or "").strip()
    if not asset and not content:
        return False

    for entry in store.get_dict(keys.PACKAGE_CHANNELS).values():
        channels = normalize_package_entry(entry)
        if asset and asset in channels.asset_ids:
            return True
        if content and content in channels.content_ids:
            return True
    return False


# ----------------------------------------------------------------------
# Refresher
# ----------------------------------------------------------------------

class EntitlementRefresher:
    def __init__(
        self,
        client: EntitlementClient,
        store: PersistentStore,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._client = client
        self._store = store
        self._clock = clock

    async def refresh_account(self, customer_id: str) -> AccountEntitlements:
        if not customer_id:
            return AccountEntitlements()

        services = await self._client.fetch_customer_services(customer_id)
        now = self._clock()
        active_ids = [
            sid for sid in (
                _kebab_or_camel(item, "service-id", "serviceId")
                for item in _results(services)
                if is_service_active(item, now)
            )
            if sid
        ]
        log.info(f"[entitlements] {customer_id}: active services {active_ids}")

        channels: Dict[str, PackageChannels] = {}
        for sid in active_ids:
            try:
                channels[sid] = parse_channels(
                    await self._client.fetch_service_live_channels(sid)
                )
            except Exception as e:
                log.warning(f"[entitlements] channel listing for {sid} failed: {e}")

        self._store.set(keys.ACTIVE_PACKAGE_IDS, active_ids, tiers=BOTH_TIERS)
        self._store.set(
            keys.PACKAGE_CHANNELS,
            {sid: entry.to_dict() for sid, entry in channels.items()},
            tiers=BOTH_TIERS,
        )
        return AccountEntitlements(active_ids, channels)

    async def refresh_package(self, package_id: str) -> PackageChannels:
        package_id = str(package_id)
        channels = parse_channels(
            await self._client.fetch_service_live_channels(package_id)
        )

        # Re-read after the await so a concurrent writer's entries survive.
        current = self._store.get_dict(keys.PACKAGE_CHANNELS)
        current[package_id] = channels.to_dict()
        self._store.set(keys.PACKAGE_CHANNELS, current, tiers=BOTH_TIERS)

        log.debug(
            f"[entitlements] package {package_id}: "
            f"{len(channels.asset_ids)} assets, {len(channels.content_ids)} contents"
        )
        return channels


# ----------------------------------------------------------------------
# Stream-driven trigger
# ----------------------------------------------------------------------

class EntitlementRefreshTrigger:
    def __init__(
        self,
        refresher: EntitlementRefresher,
        store: PersistentStore,
        scheduler: Any,
        *,
        throttle: Optional[RefreshThrottle] = None,
        fanout: Optional[FanOutPolicy] = None,
    ):
        self._refresher = refresher
        self._store = store
        self._scheduler = scheduler
        self.throttle = throttle or RefreshThrottle(5.0)
        self.fanout = fanout or FanOutPolicy()

    # ------------------------------------------------------------

    def trigger_account(self) -> bool:
        if not self.throttle.try_acquire(self._scheduler.now()):
            log.debug("[entitlements] account refresh suppressed")
            return False

        customer = load_identity(self._store).customer_number
        if not customer:
            self.throttle.release()
            log.debug("[entitlements] no customer number; account refresh skipped")
            return False

        self._scheduler.spawn(self._run_account(customer), name="entitlements:account")
        return True

    async def _run_account(self, customer: str) -> None:
        try:
            await self._refresher.refresh_account(customer)
        except Exception as e:
            log.warning(f"[entitlements] account refresh error ignored: {e}")
        finally:
            self.throttle.release()

    # ------------------------------------------------------------

    def trigger_packages(self, package_ids: Sequence[str]) -> int:
        ids = unique_in_order([str(p).strip() for p in package_ids if str(p).strip()])
        immediate, deferred = self.fanout.split(ids)

        for pid in immediate:
            self._spawn_package(pid)

        if deferred:
            self._scheduler.call_later(
                self.fanout.defer_seconds,
                lambda: [self._spawn_package(pid) for pid in deferred],
                name="entitlements:deferred",
            )
            log.debug(f"[entitlements] deferred {len(deferred)} package refreshes")

        return len(ids)

    def _spawn_package(self, package_id: str) -> None:
        self._scheduler.spawn(
            self._run_package(package_id),
            name=f"entitlements:package:{package_id}",
        )

    async def _run_package(self, package_id: str) -> None:
        try:
            await self._refresher.refresh_package(package_id)
        except Exception as e:
            log.warning(f"[entitlements] package {package_id} refresh error ignored: {e}")
