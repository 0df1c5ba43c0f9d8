from core.app import hydrate_session
from core.context import build_engine_context, build_stream_query, derive_stream_query, normalize_region
from services.session.identity import (
    SessionIdentity,
    identity_from_record,
    load_device_id,
    package_display_names,
)
from services.session.logout import perform_full_logout, reset_route_markers
from shared.config.system import SystemConfig
from shared.storage import keys
from shared.storage.state_store import BOTH_TIERS, Tier


def test_identity_resolves_nested_and_flat_records():
    nested = identity_from_record({"data": {"userId": 42, "username": "alice", "customerNumber": "C1", "regionCode": "01"}})
    assert nested == SessionIdentity("42", "alice", "C1", "01")

    flat = identity_from_record({"credentials": {"username": "bob"}, "customerNumber": " C2 "})
    assert flat.username == "bob"
    assert flat.customer_number == "C2"
    assert flat.user_id is None

    assert not identity_from_record("garbage").is_authenticated


def test_device_id_prefers_colon_form_from_durable_tier(store):
    store.set(keys.DEVICE_PSEUDO_MAC, "AABB", tiers=(Tier.DURABLE,))
    assert load_device_id(store) == "AABB"

    store.set(keys.DEVICE_PSEUDO_MAC_COLON, "AA:BB", tiers=(Tier.DURABLE,))
    assert load_device_id(store) == "AA:BB"

    store.set(keys.DEVICE_PSEUDO_MAC_COLON, "SESSION", tiers=(Tier.SESSION,))
    assert load_device_id(store) == "AA:BB"


def test_package_display_names(store):
    assert package_display_names(store) == ""

    store.set(keys.PACKAGE_RECORD, {"results": [{"serviceName": "basic"}, {"name": "Sports"}, {}]})
    assert package_display_names(store) == "Basic,Sports"

    store.set(keys.PACKAGE_RECORD, "Premium")
    assert package_display_names(store) == "Premium"


def test_full_logout_clears_user_markers_and_caches(store):
    store.set(keys.USER, {"username": "alice"})
    store.set(keys.ACTIVE_PACKAGE_IDS, ["1"])
    store.set(keys.PACKAGE_CHANNELS, {"1": []})
    for marker in keys.ROUTE_FOCUS_MARKERS:
        store.set(marker, "x", tiers=BOTH_TIERS)
    store.set(keys.DEVICE_PSEUDO_MAC_COLON, "AA:BB", tiers=(Tier.DURABLE,))

    perform_full_logout(store)

    assert not store.contains(keys.USER)
    assert not store.contains(keys.ACTIVE_PACKAGE_IDS)
    assert not store.contains(keys.PACKAGE_CHANNELS)
    assert all(not store.contains(m) for m in keys.ROUTE_FOCUS_MARKERS)
    assert load_device_id(store) == "AA:BB"


def test_route_marker_reset_is_scoped_to_route(store):
    store.set(keys.GENRE_LAST_SELECTED, "news", tiers=(Tier.SESSION,))
    store.set(keys.LIVE_SCREEN_STATE, {"row": 1}, tiers=(Tier.SESSION,))

    assert reset_route_markers(store, "/genre")
    assert not store.contains(keys.GENRE_LAST_SELECTED)
    assert store.contains(keys.LIVE_SCREEN_STATE)
    assert not reset_route_markers(store, "/settings")


# ----------------------------------------------------------------------
# Stream query
# ----------------------------------------------------------------------

def test_stream_query_includes_everything_resolved():
    query = build_stream_query(
        SessionIdentity("42", "alice", "C1", "01"),
        device_id="AA:BB",
        package_ids=["7", "8"],
        app_version="caastv_1.0.26",
        default_region="1",
    )
    assert query == {
        "package": "7",
        "user": "42:alice",
        "region": "1",
        "appVersion": "caastv_1.0.26",
        "macId": "AA:BB",
    }


def test_stream_query_omits_unresolved_values():
    assert build_stream_query(SessionIdentity(), device_id=None, package_ids=[], app_version=None) == {}

    query = build_stream_query(
        SessionIdentity(username="alice", customer_number="C1"),
        device_id=None,
        package_ids=[],
        app_version=None,
        default_region="1",
    )
    assert query == {"user": "C1:alice", "region": "1"}


def test_region_normalization():
    assert normalize_region("01", "1") == "1"
    assert normalize_region("12abc", None) == "12"
    assert normalize_region("north", "1") == "1"
    assert normalize_region(None, None) is None


def test_query_is_derived_from_store_after_hydration(store, scheduler, navigator):
    store.set(keys.USER, {"data": {"username": "alice", "customerNumber": "C1"}}, tiers=(Tier.DURABLE,))
    store.set(keys.ACTIVE_PACKAGE_IDS, ["5"])
    ctx = build_engine_context(SystemConfig(), store=store, scheduler=scheduler, navigator=navigator)

    identity = hydrate_session(ctx.store)
    assert identity.customer_number == "C1"
    assert store.contains(keys.USER, tier=Tier.SESSION)

    query = derive_stream_query(ctx)
    assert query["user"] == "C1:alice"
    assert query["package"] == "5"
    assert query["region"] == "1"
    assert query["appVersion"] == ctx.config.stream.app_version
    assert "macId" not in query
    assert not ctx.force_overlay_active
