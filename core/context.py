import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from core.scheduler import Scheduler
from services.focus.navigation import HistoryNavigator
from services.session.identity import (
    SessionIdentity,
    load_active_package_ids,
    load_device_id,
    load_identity,
)
from shared.config.system import SystemConfig
from shared.runtime.state_cell import StateCell
from shared.storage.state_store import PersistentStore

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass
class EngineContext:
    # -------------------------------------------------
    # CORE
    # -------------------------------------------------
    config: SystemConfig
    store: PersistentStore
    scheduler: Scheduler
    navigator: HistoryNavigator

    # -------------------------------------------------
    # SHARED STATE (single writer: overlay arbitrator)
    # -------------------------------------------------
    force_lock: StateCell[bool] = field(
        default_factory=lambda: StateCell("force_overlay_active", False)
    )

    # -------------------------------------------------

    @property
    def force_overlay_active(self) -> bool:
        return bool(self.force_lock.get())


def build_engine_context(
    config: SystemConfig,
    *,
    store: Optional[PersistentStore] = None,
    scheduler: Optional[Scheduler] = None,
    navigator: Optional[HistoryNavigator] = None,
) -> EngineContext:
    return EngineContext(
        config=config,
        store=store or PersistentStore(config.storage.durable_path),
        scheduler=scheduler or Scheduler(),
        navigator=navigator or HistoryNavigator(config.navigation.root_route),
    )


# -------------------------------------------------
# STREAM QUERY DERIVATION
# -------------------------------------------------

def normalize_region(code: Optional[str], default: Optional[str]) -> Optional[str]:
    """``"01"`` -> ``"1"``; non-numeric or missing codes fall back to ``default``."""
    if not code:
        return default
    match = _LEADING_INT.match(code)
    return str(int(match.group(1))) if match else default


def build_stream_query(
    identity: SessionIdentity,
    *,
    device_id: Optional[str],
    package_ids: List[str],
    app_version: Optional[str],
    default_region: Optional[str] = None,
) -> Dict[str, str]:
    """
    Query for one stream open. Values that cannot be resolved are left out
    so the backend applies its own defaults.
    """

    query: Dict[str, str] = {}

    if package_ids:
        query["package"] = str(package_ids[0])

    user_id = identity.user_id or identity.customer_number
    username = identity.username
    if user_id and username:
        query["user"] = f"{user_id}:{username}"
    elif username:
        query["user"] = username
    elif user_id:
        query["user"] = user_id

    region = normalize_region(identity.region_code, default_region)
    if region:
        query["region"] = region

    if app_version:
        query["appVersion"] = app_version

    if device_id:
        query["macId"] = device_id

    return query


def derive_stream_query(ctx: EngineContext) -> Dict[str, str]:
    return build_stream_query(
        load_identity(ctx.store),
        device_id=load_device_id(ctx.store),
        package_ids=load_active_package_ids(ctx.store),
        app_version=ctx.config.stream.app_version,
        default_region=ctx.config.stream.default_region,
    )
