from services.entitlements.refresh import EntitlementRefreshTrigger
from services.overlays.arbitrator import OverlayArbitrator
from services.stream.normalizer import normalize
from shared.config.system import OverlayTimings
from shared.runtime.ratelimits import FanOutPolicy, RefreshThrottle
from shared.runtime.state_cell import StateCell
from shared.storage import keys
from shared.storage.state_store import Tier


class RecordingRefresh:
    def __init__(self) -> None:
        self.account_calls = 0
        self.package_calls: list[list[str]] = []

    def trigger_account(self) -> bool:
        self.account_calls += 1
        return True

    def trigger_packages(self, package_ids) -> int:
        self.package_calls.append(list(package_ids))
        return len(package_ids)


class FakeRefresher:
    def __init__(self) -> None:
        self.accounts: list[str] = []
        self.packages: list[str] = []

    async def refresh_account(self, customer_id):
        self.accounts.append(customer_id)

    async def refresh_package(self, package_id):
        self.packages.append(package_id)


def _build(store, scheduler, *, refresh=None, navigator=None):
    lock = StateCell("force_overlay_active", False)
    arbitrator = OverlayArbitrator(
        store=store,
        scheduler=scheduler,
        force_lock=lock.claim_writer("test"),
        timings=OverlayTimings(),
        refresh=refresh,
        navigator=navigator,
    )
    return arbitrator, lock


def _feed(arbitrator, raw):
    for event in normalize(raw, 0.0):
        arbitrator.apply(event)


def _sign_in(store, username="alice", customer="C100"):
    store.set(keys.USER, {"data": {"username": username, "customerNumber": customer}})


# ----------------------------------------------------------------------
# Snapshot replacement
# ----------------------------------------------------------------------

def test_absent_array_keeps_rules_and_empty_array_clears(store, scheduler):
    arbitrator, _lock = _build(store, scheduler)

    _feed(arbitrator, {"scrollMessages": [{"m": "Welcome"}]})
    assert [r.message for r in arbitrator.scroll_rules] == ["Welcome"]

    _feed(arbitrator, {"forceMessages": []})
    assert [r.message for r in arbitrator.scroll_rules] == ["Welcome"]

    _feed(arbitrator, {"scrollMessages": []})
    assert arbitrator.scroll_rules == []


def test_only_enabled_global_scroll_rules_are_kept(store, scheduler):
    arbitrator, _lock = _build(store, scheduler)
    _feed(arbitrator, {"scrollMessages": [
        {"m": "global"},
        {"m": "player", "scope": "PLAYER"},
        {"m": "channel", "channelId": "12"},
        {"m": "off", "e": 0},
        {"m": "   "},
    ]})
    assert [r.message for r in arbitrator.scroll_rules] == ["global"]


def test_fingerprints_follow_global_setting(store, scheduler):
    arbitrator, _lock = _build(store, scheduler)

    _feed(arbitrator, {"fingerprints": [{"name": "A"}, {"name": "B", "e": 0}]})
    assert [fp.display_name for fp in arbitrator.fingerprints] == ["A"]

    _feed(arbitrator, {
        "fingerprints": [{"name": "A"}],
        "settings": {"globalFingerprintEnabled": False},
    })
    assert arbitrator.fingerprints == []


# ----------------------------------------------------------------------
# Force messages and the shared lock
# ----------------------------------------------------------------------

def test_force_message_holds_lock_until_acknowledged(store, scheduler):
    arbitrator, lock = _build(store, scheduler)
    snapshot = {"forceMessages": [{"id": "f1", "t": "Notice", "m": "Maintenance", "d": -1}]}

    _feed(arbitrator, snapshot)
    assert lock.get() is True
    assert arbitrator.visible().input_locked

    assert arbitrator.acknowledge_force()
    assert lock.get() is False

    # Same rule re-sent: stays dismissed.
    _feed(arbitrator, snapshot)
    assert lock.get() is False

    # Dropped and re-published: shown again.
    _feed(arbitrator, {"forceMessages": []})
    _feed(arbitrator, snapshot)
    assert lock.get() is True


def test_force_push_cannot_be_acknowledged(store, scheduler):
    arbitrator, lock = _build(store, scheduler)
    _feed(arbitrator, {"forceMessages": [{"m": "Pay now", "fp": True}]})

    assert not arbitrator.acknowledge_force()
    assert lock.get() is True


def test_force_message_expires_after_duration(store, scheduler):
    arbitrator, lock = _build(store, scheduler)
    _feed(arbitrator, {"forceMessages": [{"id": "f1", "m": "Short", "d": 10}]})

    scheduler.advance(9.0)
    assert lock.get() is True

    scheduler.advance(1.0)
    assert lock.get() is False
    assert arbitrator.force_rules == []


def test_player_scoped_force_message_does_not_lock(store, scheduler):
    arbitrator, lock = _build(store, scheduler)
    _feed(arbitrator, {"forceMessages": [{"m": "Player only", "messageScope": "player"}]})
    assert lock.get() is False


def test_placeholders_expand_in_rendered_view(store, scheduler):
    _sign_in(store)
    store.set(keys.DEVICE_PSEUDO_MAC_COLON, "AA:BB", tiers=(Tier.DURABLE,))
    arbitrator, _lock = _build(store, scheduler)

    _feed(arbitrator, {"forceMessages": [{"t": "Hi $$@USER", "m": "Device$$@mac"}]})
    rendered = arbitrator.visible().force[0]
    assert rendered.title == "Hi  alice "
    assert rendered.message == "Device AA:BB "


# ----------------------------------------------------------------------
# Delete, toasts
# ----------------------------------------------------------------------

def test_delete_clears_every_overlay(store, scheduler):
    arbitrator, lock = _build(store, scheduler)
    _feed(arbitrator, {
        "scrollMessages": [{"m": "s"}],
        "forceMessages": [{"m": "f"}],
        "fingerprints": [{"name": "fp"}],
    })
    _feed(arbitrator, {"type": "scroll", "payload": {"message": "toast"}})
    assert arbitrator.toasts.current is not None

    _feed(arbitrator, {"op": "delete"})

    view = arbitrator.visible()
    assert view.scroll == ()
    assert view.force == ()
    assert view.fingerprints == ()
    assert view.toast is None
    assert lock.get() is False


def test_discrete_notice_is_queued_as_toast(store, scheduler):
    arbitrator, _lock = _build(store, scheduler)
    seen = []
    arbitrator.subscribe(seen.append)

    _feed(arbitrator, {"type": "fingerprint", "payload": {"fingerprintName": "Ch 4"}})
    assert arbitrator.visible().toast.text == "Ch 4"
    assert seen[-1].toast.text == "Ch 4"


# ----------------------------------------------------------------------
# Block directive
# ----------------------------------------------------------------------

def test_block_directive_logs_out_once_after_countdown(store, scheduler, navigator):
    _sign_in(store)
    store.set(keys.LIVE_SCREEN_STATE, {"row": 3}, tiers=(Tier.SESSION,))
    arbitrator, _lock = _build(store, scheduler, navigator=navigator)

    block = {"userBlocks": [{"username": "alice", "isBlocked": 1}]}
    _feed(arbitrator, block)
    _feed(arbitrator, block)

    assert arbitrator.block_dialog_visible
    assert len(scheduler.pending("block-logout")) == 1

    scheduler.advance(4.0)
    assert store.contains(keys.USER)

    scheduler.advance(1.0)
    assert not store.contains(keys.USER)
    assert not store.contains(keys.LIVE_SCREEN_STATE)
    assert navigator.current == "/panmetro-login"
    assert navigator.depth == 1
    assert not arbitrator.block_dialog_visible


def test_block_entry_for_someone_else_is_ignored(store, scheduler):
    _sign_in(store, customer="C100")
    arbitrator, _lock = _build(store, scheduler)

    _feed(arbitrator, {"userBlocks": [
        {"username": "bob", "isBlocked": 1},
        {"customerNumber": "C100", "isBlocked": 0},
    ]})
    assert not arbitrator.block_dialog_visible


def test_block_matches_customer_number(store, scheduler):
    _sign_in(store, customer="C100")
    arbitrator, _lock = _build(store, scheduler)
    _feed(arbitrator, {"userBlocks": [{"customerNumber": "C100", "isBlocked": 1}]})
    assert arbitrator.block_dialog_visible


def test_signed_out_device_is_never_blocked(store, scheduler):
    arbitrator, _lock = _build(store, scheduler)
    _feed(arbitrator, {"userBlocks": [{"username": "", "isBlocked": 1}]})
    assert not arbitrator.block_dialog_visible


# ----------------------------------------------------------------------
# Entitlement refresh triggers
# ----------------------------------------------------------------------

def test_snapshot_sections_drive_refresh_triggers(store, scheduler):
    refresh = RecordingRefresh()
    arbitrator, _lock = _build(store, scheduler, refresh=refresh)

    _feed(arbitrator, {"userUpdates": [{"customerNumber": "C100"}], "packageUpdates": ["3", "4"]})
    _feed(arbitrator, {"userUpdates": []})

    assert refresh.account_calls == 1
    assert refresh.package_calls == [["3", "4"]]


def test_user_updates_one_second_apart_refresh_once(store, scheduler):
    _sign_in(store)
    refresher = FakeRefresher()
    trigger = EntitlementRefreshTrigger(
        refresher, store, scheduler, throttle=RefreshThrottle(5.0)
    )
    arbitrator, _lock = _build(store, scheduler, refresh=trigger)

    _feed(arbitrator, {"userUpdates": [{}]})
    scheduler.advance(1.0)
    _feed(arbitrator, {"userUpdates": [{}]})

    assert scheduler.spawned_names() == ["entitlements:account"]
    scheduler.run_spawned()
    assert refresher.accounts == ["C100"]

    scheduler.advance(3.0)
    _feed(arbitrator, {"userUpdates": [{}]})
    assert scheduler.spawned == []

    scheduler.advance(1.0)
    _feed(arbitrator, {"userUpdates": [{}]})
    assert scheduler.spawned_names() == ["entitlements:account"]


def test_package_updates_fan_out_in_bounded_burst(store, scheduler):
    refresher = FakeRefresher()
    trigger = EntitlementRefreshTrigger(
        refresher, store, scheduler, fanout=FanOutPolicy(max_immediate=5, defer_seconds=1.0)
    )
    arbitrator, _lock = _build(store, scheduler, refresh=trigger)

    _feed(arbitrator, {"packageUpdates": [str(i) for i in range(1, 8)]})
    assert len(scheduler.spawned) == 5

    scheduler.advance(1.0)
    assert len(scheduler.spawned) == 7

    scheduler.run_spawned()
    assert refresher.packages == ["1", "2", "3", "4", "5", "6", "7"]
