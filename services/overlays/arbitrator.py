"""
Overlay arbitration.

The arbitrator owns every overlay the push stream can raise:

- marquee (scroll) rules, global scope only
- force messages, global scope only; while any is active the shared
  force lock is held
- fingerprint badges, gated by the snapshot's global setting
- the block dialog and its logout countdown
- the toast queue for discrete notices

It is the only writer of the force lock cell. Snapshot arrays replace the
corresponding set wholesale; an absent array leaves it untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Set, Tuple

from services.overlays.placeholders import PlaceholderValues, expand_placeholders
from services.overlays.toast import ToastItem, ToastQueue
from services.session.identity import SessionIdentity, load_identity
from services.session.logout import perform_full_logout
from services.stream.models import (
    SCOPE_GLOBAL,
    CombinedSnapshot,
    DeleteNotice,
    EventKind,
    FingerprintRule,
    ForceRule,
    ScrollRule,
    StreamEvent,
    ToastNotice,
    UserBlockEntry,
)
from shared.config.system import OverlayTimings
from shared.logging.logger import get_logger
from shared.runtime.state_cell import CellWriter
from shared.storage.state_store import PersistentStore

log = get_logger("services.overlays.arbitrator")


class RefreshTrigger(Protocol):
    def trigger_account(self) -> bool: ...

    def trigger_packages(self, package_ids: Sequence[str]) -> int: ...


class Navigator(Protocol):
    def navigate(self, route: str, *, replace: bool = False) -> None: ...


@dataclass(frozen=True)
class RenderedRule:
    id: Optional[str]
    title: str
    message: str
    rule: Any


@dataclass(frozen=True)
class OverlayView:
    scroll: Tuple[RenderedRule, ...]
    force: Tuple[RenderedRule, ...]
    fingerprints: Tuple[FingerprintRule, ...]
    toast: Optional[ToastItem]
    block_dialog: bool

    @property
    def input_locked(self) -> bool:
        return bool(self.force)


# ----------------------------------------------------------------------
# Rule filters
# ----------------------------------------------------------------------

def active_scroll_rules(rules: List[ScrollRule]) -> List[ScrollRule]:
    return [
        r for r in rules
        if r.enabled and r.message.strip() and r.is_global
    ]


def active_force_rules(rules: List[ForceRule]) -> List[ForceRule]:
    return [
        r for r in rules
        if r.enabled and (r.title or r.message).strip() and r.scope == SCOPE_GLOBAL
    ]


def is_identity_blocked(identity: SessionIdentity, entries: List[UserBlockEntry]) -> bool:
    if not identity.is_authenticated:
        return False

    for entry in entries:
        if not entry.is_blocked:
            continue
        if identity.matches(entry.username):
            return True
        if entry.customer_number and entry.customer_number == identity.customer_number:
            return True
        if entry.user_id and entry.user_id == identity.user_id:
            return True
    return False


class OverlayArbitrator:
    def __init__(
        self,
        *,
        store: PersistentStore,
        scheduler: Any,
        force_lock: CellWriter[bool],
        timings: Optional[OverlayTimings] = None,
        refresh: Optional[RefreshTrigger] = None,
        navigator: Optional[Navigator] = None,
        login_route: str = "/panmetro-login",
    ):
        self._store = store
        self._scheduler = scheduler
        self._force_lock = force_lock
        self._timings = timings or OverlayTimings()
        self._refresh = refresh
        self._navigator = navigator
        self._login_route = login_route

        self._scroll: List[ScrollRule] = []
        self._force: List[ForceRule] = []
        self._fingerprints: List[FingerprintRule] = []

        self._dismissed: Set[str] = set()
        self._force_timers: Dict[str, Tuple[Optional[int], Any]] = {}

        self._block_dialog = False
        self._block_timer: Any = None

        self._listeners: List[Callable[[OverlayView], None]] = []

        self.toasts = ToastQueue(
            scheduler,
            dwell_seconds=self._timings.toast_dwell_seconds,
            dedup_window_seconds=self._timings.dedup_window_seconds,
            on_change=lambda _item: self._emit(),
        )

    # ==================================================================
    # READ SIDE
    # ==================================================================

    @property
    def scroll_rules(self) -> List[ScrollRule]:
        return list(self._scroll)

    @property
    def force_rules(self) -> List[ForceRule]:
        return list(self._force)

    @property
    def fingerprints(self) -> List[FingerprintRule]:
        return list(self._fingerprints)

    @property
    def block_dialog_visible(self) -> bool:
        return self._block_dialog

    def visible(self) -> OverlayView:
        values = PlaceholderValues.from_store(self._store)

        def _render(rule: Any, title: str) -> RenderedRule:
            return RenderedRule(
                id=rule.id,
                title=expand_placeholders(title, values),
                message=expand_placeholders(rule.message, values),
                rule=rule,
            )

        return OverlayView(
            scroll=tuple(_render(r, "") for r in self._scroll),
            force=tuple(_render(r, r.title) for r in self._force),
            fingerprints=tuple(self._fingerprints),
            toast=self.toasts.current,
            block_dialog=self._block_dialog,
        )

    def subscribe(self, listener: Callable[[OverlayView], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self) -> None:
        if not self._listeners:
            return
        view = self.visible()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception as e:
                log.warning(f"[overlays] listener error ignored: {e}")

    # ==================================================================
    # EVENT ENTRY
    # ==================================================================

    def apply(self, event: StreamEvent) -> None:
        if event.kind == EventKind.COMBINED_SNAPSHOT:
            self._apply_snapshot(event.payload)
        elif event.kind == EventKind.DELETE:
            self._apply_delete(event.payload)
        elif event.kind in (EventKind.SCROLL_MESSAGE, EventKind.FINGERPRINT):
            self._apply_notice(event)
        else:
            log.debug(f"[overlays] ignoring event kind {event.kind.value}")

    # ------------------------------------------------------------------

    def _apply_snapshot(self, snapshot: CombinedSnapshot) -> None:
        log.info(
            "[overlays] snapshot sections: "
            f"{[k.value for k in snapshot.sections()]}"
        )
        changed = False

        if snapshot.fingerprints is not None:
            enabled = [fp for fp in snapshot.fingerprints if fp.enabled]
            self._fingerprints = (
                enabled if snapshot.settings.global_fingerprint_enabled else []
            )
            changed = True

        if snapshot.scroll_messages is not None:
            self._scroll = active_scroll_rules(snapshot.scroll_messages)
            changed = True

        if snapshot.force_messages is not None:
            self._replace_force(active_force_rules(snapshot.force_messages))
            changed = True

        if snapshot.user_blocks is not None:
            identity = load_identity(self._store)
            if is_identity_blocked(identity, snapshot.user_blocks):
                changed = self._raise_block() or changed

        if snapshot.user_updates and self._refresh is not None:
            self._refresh.trigger_account()

        if snapshot.package_ids and self._refresh is not None:
            self._refresh.trigger_packages(snapshot.package_ids)

        if changed:
            self._emit()

    def _apply_delete(self, notice: DeleteNotice) -> None:
        log.info(f"[overlays] delete signal ({notice.reason}); clearing overlays")
        self._scroll = []
        self._fingerprints = []
        self._replace_force([])
        self._dismissed.clear()
        self.toasts.clear()
        self._emit()

    def _apply_notice(self, event: StreamEvent) -> None:
        notice: ToastNotice = event.payload
        self.toasts.offer(event.id, notice.text)

    # ==================================================================
    # FORCE MESSAGES
    # ==================================================================

    def _replace_force(self, rules: List[ForceRule]) -> None:
        incoming = {r.key for r in rules}
        self._dismissed &= incoming

        self._force = [r for r in rules if r.key not in self._dismissed]
        live = {r.key: r for r in self._force}

        for key in list(self._force_timers):
            duration, handle = self._force_timers[key]
            rule = live.get(key)
            if rule is None or rule.duration != duration:
                self._scheduler.cancel(handle)
                self._force_timers.pop(key, None)

        for rule in self._force:
            if rule.duration is None or rule.key in self._force_timers:
                continue
            handle = self._scheduler.call_later(
                rule.duration,
                lambda key=rule.key: self._close_force(key, "expired"),
                name=f"force:{rule.key}",
            )
            self._force_timers[rule.key] = (rule.duration, handle)

        self._sync_force_lock()

    def _close_force(self, key: str, reason: str) -> None:
        before = len(self._force)
        self._force = [r for r in self._force if r.key != key]
        if len(self._force) == before:
            return

        self._dismissed.add(key)
        entry = self._force_timers.pop(key, None)
        if entry is not None:
            self._scheduler.cancel(entry[1])

        log.info(f"[overlays] force message {key} closed ({reason})")
        self._sync_force_lock()
        self._emit()

    def acknowledge_force(self) -> bool:
        """
        OK on the front-most force message. Messages flagged ``forcePush``
        cannot be acknowledged and stay until expiry or replacement.
        """
        if not self._force:
            return False
        front = self._force[0]
        if front.force_push:
            return False
        self._close_force(front.key, "acknowledged")
        return True

    def _sync_force_lock(self) -> None:
        self._force_lock.set(bool(self._force))

    # ==================================================================
    # BLOCK DIRECTIVE
    # ==================================================================

    def _raise_block(self) -> bool:
        if self._block_dialog:
            return False

        self._block_dialog = True
        log.warning(
            "[overlays] account blocked; logging out in "
            f"{self._timings.block_logout_seconds:.0f}s"
        )
        self._block_timer = self._scheduler.call_later(
            self._timings.block_logout_seconds,
            self._complete_block_logout,
            name="block-logout",
        )
        return True

    def _complete_block_logout(self) -> None:
        self._block_timer = None
        perform_full_logout(self._store)
        self._block_dialog = False
        self._emit()
        if self._navigator is not None:
            self._navigator.navigate(self._login_route, replace=True)

    # ==================================================================
    # TEARDOWN
    # ==================================================================

    def reset(self) -> None:
        """Drop every overlay and pending timer (stream closed)."""
        if self._block_timer is not None:
            self._scheduler.cancel(self._block_timer)
            self._block_timer = None
        self._block_dialog = False

        self._scroll = []
        self._fingerprints = []
        self._replace_force([])
        self._dismissed.clear()
        self.toasts.clear()
        self._emit()
