import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from services.entitlements.client import EntitlementClient, EntitlementError
from services.entitlements.refresh import (
    EntitlementRefresher,
    EntitlementRefreshTrigger,
    is_asset_playable,
    is_service_active,
    normalize_package_entry,
)
from shared.config.system import EntitlementSettings
from shared.storage import keys
from shared.storage.state_store import Tier

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _client(handler, **settings):
    cfg = EntitlementSettings(base_url="http://drm.test", **settings)
    transport = httpx.MockTransport(handler)
    return EntitlementClient(
        cfg,
        client=httpx.AsyncClient(base_url=cfg.base_url, transport=transport),
    )


def _drm_handler(requests):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        path = request.url.path
        if path == "/src/api/v1/customer-services/C100":
            return httpx.Response(200, json={"results": [
                {"service-id": "10", "end-date": "2099-12-31"},
                {"serviceId": "11", "expireDate": "2024-04-30"},
                {"service-id": "12"},
            ]})
        if path == "/src/api/v1/services-assets/livechannels/10":
            return httpx.Response(200, json={"results": [
                {"asset-id": "a1", "content-id": "c1"},
                {"assetId": "a2"},
            ]})
        if path == "/src/api/v1/services-assets/livechannels/13":
            return httpx.Response(200, json={"results": [{"asset-id": "a9"}]})
        return httpx.Response(500, text="upstream down")

    return handler


def test_service_activity_uses_end_of_day():
    assert is_service_active({}, NOW)
    assert is_service_active({"end-date": "2024-05-01"}, NOW)
    assert not is_service_active({"endDate": "2024-04-30"}, NOW)
    assert is_service_active({"expire-date": "soon"}, NOW)


def test_account_refresh_writes_both_tiers(store):
    requests = []
    client = _client(_drm_handler(requests), api_key="secret")
    refresher = EntitlementRefresher(client, store, clock=lambda: NOW)

    result = asyncio.run(refresher.refresh_account("C100"))

    assert result.active_ids == ["10", "12"]
    expected = {"10": {"assetIds": ["a1", "a2"], "contentIds": ["c1"]}}
    for tier in (Tier.SESSION, Tier.DURABLE):
        assert store.get(keys.ACTIVE_PACKAGE_IDS, tier=tier) == ["10", "12"]
        assert store.get(keys.PACKAGE_CHANNELS, tier=tier) == expected

    first = requests[0]
    assert first.headers["X-API-KEY"] == "secret"
    assert first.url.params["page"] == "1"
    assert first.url.params["limit"] == "20"
    assert requests[1].url.params["limit"] == "1000"


def test_package_refresh_merges_into_existing_map(store):
    store.set(keys.PACKAGE_CHANNELS, {"10": ["legacy-asset"]})
    refresher = EntitlementRefresher(_client(_drm_handler([])), store)

    channels = asyncio.run(refresher.refresh_package("13"))

    assert channels.asset_ids == ["a9"]
    mapping = store.get_dict(keys.PACKAGE_CHANNELS)
    assert mapping["10"] == ["legacy-asset"]
    assert mapping["13"] == {"assetIds": ["a9"], "contentIds": []}


def test_client_errors_surface_as_entitlement_error():
    client = _client(_drm_handler([]))
    with pytest.raises(EntitlementError) as exc:
        asyncio.run(client.fetch_service_live_channels("99"))
    assert exc.value.status_code == 500

    text_client = _client(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(EntitlementError):
        asyncio.run(text_client.fetch_customer_services("C100"))


def test_asset_playability_accepts_both_cache_shapes(store):
    store.set(keys.PACKAGE_CHANNELS, {
        "10": ["legacy-asset"],
        "11": {"assetIds": ["a1"], "contentIds": ["c1"]},
    })
    assert is_asset_playable(store, "legacy-asset")
    assert is_asset_playable(store, asset_id="nope", content_id="c1")
    assert not is_asset_playable(store, "nope")
    assert not is_asset_playable(store)
    assert normalize_package_entry(None).asset_ids == []


def test_account_trigger_requires_customer_number(store, scheduler):
    trigger = EntitlementRefreshTrigger(EntitlementRefresher(_client(_drm_handler([])), store), store, scheduler)
    assert not trigger.trigger_account()
    assert scheduler.spawned == []
    assert not trigger.throttle.in_flight


def test_account_trigger_failure_is_logged_and_released(store, scheduler):
    store.set(keys.USER, {"customerNumber": "C404"})

    class FailingRefresher:
        async def refresh_account(self, customer_id):
            raise EntitlementError("boom", 500)

    trigger = EntitlementRefreshTrigger(FailingRefresher(), store, scheduler)
    assert trigger.trigger_account()
    assert trigger.throttle.in_flight

    scheduler.run_spawned()
    assert not trigger.throttle.in_flight
