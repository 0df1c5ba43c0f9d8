from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from runtime.version import APP_VERSION_TAG
from shared.logging.logger import get_logger

log = get_logger("shared.config.system")

CONFIG_PATH = Path(__file__).parent / "system.json"


@dataclass
class StreamSettings:
    base_url: str = "http://localhost:7443/api"
    path: str = "/app/combined-sse"
    api_key: str = ""
    app_version: str = APP_VERSION_TAG
    initial_backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0
    connect_timeout_seconds: float = 10.0
    default_region: Optional[str] = "1"


@dataclass
class EntitlementSettings:
    base_url: str = "http://localhost:3443"
    api_key: str = ""
    timeout_seconds: float = 10.0
    customer_services_path: str = "/src/api/v1/customer-services/{customer_id}"
    live_channels_path: str = "/src/api/v1/services-assets/livechannels/{service_id}"
    customer_page_limit: int = 20
    channel_page_limit: int = 1000


@dataclass
class OverlayTimings:
    toast_dwell_seconds: float = 8.0
    dedup_window_seconds: float = 30.0
    block_logout_seconds: float = 5.0


@dataclass
class RefreshPolicy:
    account_min_interval_seconds: float = 5.0
    package_max_immediate: int = 5
    package_defer_seconds: float = 1.0


@dataclass
class NavigationSettings:
    root_route: str = "/"
    login_route: str = "/panmetro-login"
    entry_routes: List[str] = field(default_factory=lambda: ["/panmetro-login", "/login"])
    player_routes: List[str] = field(default_factory=lambda: ["/player", "/tv"])
    sidebar_routes: List[str] = field(default_factory=lambda: [
        "/live",
        "/categories",
        "/content-grid",
        "/profile",
        "/plan",
        "/settings",
        "/edit-profile",
        "/about",
        "/tv",
        "/movies",
        "/sports",
        "/admin",
        "/player",
        "/tv-player",
        "/search",
    ])


@dataclass
class StorageSettings:
    durable_path: str = "shared/state/durable_store.json"


@dataclass
class SystemConfig:
    stream: StreamSettings = field(default_factory=StreamSettings)
    entitlements: EntitlementSettings = field(default_factory=EntitlementSettings)
    overlays: OverlayTimings = field(default_factory=OverlayTimings)
    refresh: RefreshPolicy = field(default_factory=RefreshPolicy)
    navigation: NavigationSettings = field(default_factory=NavigationSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------

def _load_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        log.warning(f"system.json not found at {path}; using defaults")
        return {}

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
            return data if isinstance(data, dict) else {}
    except Exception as e:  # pragma: no cover - defensive
        log.warning(f"Failed to load system.json ({e}); using defaults")
        return {}


def _section(raw: Any, name: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        return {}
    value = raw.get(name)
    return value if isinstance(value, dict) else {}


def _as_float(raw: Dict[str, Any], key: str, default: float) -> float:
    value = raw.get(key, default)
    try:
        return float(value)
    except Exception:
        log.warning(f"{key} must be numeric; defaulting to {default}")
        return default


def _as_int(raw: Dict[str, Any], key: str, default: int) -> int:
    value = raw.get(key, default)
    try:
        return int(value)
    except Exception:
        log.warning(f"{key} must be an integer; defaulting to {default}")
        return default


def _as_str(raw: Dict[str, Any], key: str, default: str) -> str:
    value = raw.get(key, default)
    return str(value) if value is not None else default


def _as_routes(raw: Dict[str, Any], key: str, default: List[str]) -> List[str]:
    value = raw.get(key)
    if value is None:
        return list(default)
    if isinstance(value, list):
        return [str(v) for v in value if isinstance(v, str) and v.strip()]
    log.warning(f"{key} must be a list of routes; using defaults")
    return list(default)


# ----------------------------------------------------------------------
# Section loaders
# ----------------------------------------------------------------------

def _load_stream(raw: Dict[str, Any]) -> StreamSettings:
    d = StreamSettings()
    region = raw.get("default_region", d.default_region)
    return StreamSettings(
        base_url=_as_str(raw, "base_url", d.base_url),
        path=_as_str(raw, "path", d.path),
        api_key=_as_str(raw, "api_key", d.api_key),
        app_version=_as_str(raw, "app_version", d.app_version),
        initial_backoff_seconds=_as_float(raw, "initial_backoff_seconds", d.initial_backoff_seconds),
        max_backoff_seconds=_as_float(raw, "max_backoff_seconds", d.max_backoff_seconds),
        connect_timeout_seconds=_as_float(raw, "connect_timeout_seconds", d.connect_timeout_seconds),
        default_region=str(region) if region not in (None, "") else None,
    )


def _load_entitlements(raw: Dict[str, Any]) -> EntitlementSettings:
    d = EntitlementSettings()
    return EntitlementSettings(
        base_url=_as_str(raw, "base_url", d.base_url),
        api_key=_as_str(raw, "api_key", d.api_key),
        timeout_seconds=_as_float(raw, "timeout_seconds", d.timeout_seconds),
        customer_services_path=_as_str(raw, "customer_services_path", d.customer_services_path),
        live_channels_path=_as_str(raw, "live_channels_path", d.live_channels_path),
        customer_page_limit=_as_int(raw, "customer_page_limit", d.customer_page_limit),
        channel_page_limit=_as_int(raw, "channel_page_limit", d.channel_page_limit),
    )


def _load_overlays(raw: Dict[str, Any]) -> OverlayTimings:
    d = OverlayTimings()
    return OverlayTimings(
        toast_dwell_seconds=_as_float(raw, "toast_dwell_seconds", d.toast_dwell_seconds),
        dedup_window_seconds=_as_float(raw, "dedup_window_seconds", d.dedup_window_seconds),
        block_logout_seconds=_as_float(raw, "block_logout_seconds", d.block_logout_seconds),
    )


def _load_refresh(raw: Dict[str, Any]) -> RefreshPolicy:
    d = RefreshPolicy()
    return RefreshPolicy(
        account_min_interval_seconds=_as_float(
            raw, "account_min_interval_seconds", d.account_min_interval_seconds
        ),
        package_max_immediate=_as_int(raw, "package_max_immediate", d.package_max_immediate),
        package_defer_seconds=_as_float(raw, "package_defer_seconds", d.package_defer_seconds),
    )


def _load_navigation(raw: Dict[str, Any]) -> NavigationSettings:
    d = NavigationSettings()
    return NavigationSettings(
        root_route=_as_str(raw, "root_route", d.root_route),
        login_route=_as_str(raw, "login_route", d.login_route),
        entry_routes=_as_routes(raw, "entry_routes", d.entry_routes),
        player_routes=_as_routes(raw, "player_routes", d.player_routes),
        sidebar_routes=_as_routes(raw, "sidebar_routes", d.sidebar_routes),
    )


def _load_storage(raw: Dict[str, Any]) -> StorageSettings:
    d = StorageSettings()
    return StorageSettings(durable_path=_as_str(raw, "durable_path", d.durable_path))


# ----------------------------------------------------------------------
# Environment overrides (secrets and deployment endpoints)
# ----------------------------------------------------------------------

_ENV_OVERRIDES = (
    ("TVPUSH_STREAM_BASE_URL", "stream", "base_url"),
    ("TVPUSH_STREAM_API_KEY", "stream", "api_key"),
    ("TVPUSH_APP_VERSION", "stream", "app_version"),
    ("TVPUSH_ENTITLEMENT_BASE_URL", "entitlements", "base_url"),
    ("TVPUSH_ENTITLEMENT_API_KEY", "entitlements", "api_key"),
    ("TVPUSH_DURABLE_STORE_PATH", "storage", "durable_path"),
)


def apply_env_overrides(cfg: SystemConfig) -> SystemConfig:
    for env_key, section, attr in _ENV_OVERRIDES:
        value = os.getenv(env_key)
        if value is None or not value.strip():
            continue
        setattr(getattr(cfg, section), attr, value.strip())
        log.debug(f"Config override from {env_key} -> {section}.{attr}")
    return cfg


def load_system_config(raw: Optional[Dict[str, Any]] = None) -> SystemConfig:
    raw = raw if raw is not None else _load_json(CONFIG_PATH)

    cfg = SystemConfig(
        stream=_load_stream(_section(raw, "stream")),
        entitlements=_load_entitlements(_section(raw, "entitlements")),
        overlays=_load_overlays(_section(raw, "overlays")),
        refresh=_load_refresh(_section(raw, "refresh")),
        navigation=_load_navigation(_section(raw, "navigation")),
        storage=_load_storage(_section(raw, "storage")),
    )
    return apply_env_overrides(cfg)
