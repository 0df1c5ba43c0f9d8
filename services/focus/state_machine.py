"""
Input ownership state machine.

Exactly one region owns remote-control input at a time: the page content,
the sidebar, a modal dialog, or a force overlay. Transitions come from a
table keyed by ``(owner, key)``. The force overlay is driven only by the
shared force lock cell; while the lock is held every key except Select
(acknowledge) is swallowed and no ownership change is accepted.

Owner changes are published synchronously as ``FocusChange`` records. The
presentation layer decides when to move visual focus.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from services.focus.dialog import DialogSpec, DialogTrap
from services.focus.keys import KeyResult, RemoteKey
from services.focus.navigation import BackPolicy, HistoryNavigator
from services.focus.sidebar import FocusTarget, MenuItem, SidebarMenu, content_focus_target
from services.session.logout import reset_route_markers
from shared.logging.logger import get_logger
from shared.runtime.state_cell import StateCell
from shared.storage.state_store import PersistentStore

log = get_logger("services.focus.state_machine")


class FocusOwner(str, Enum):
    CONTENT = "Content"
    SIDEBAR = "Sidebar"
    DIALOG = "Dialog"
    FORCE_OVERLAY = "ForceOverlay"


@dataclass(frozen=True)
class FocusChange:
    previous: FocusOwner
    current: FocusOwner
    target: Optional[FocusTarget] = None
    menu_item: Optional[MenuItem] = None


FocusListener = Callable[[FocusChange], None]
Transition = Callable[[], KeyResult]


class FocusStateMachine:
    def __init__(
        self,
        *,
        force_lock: StateCell[bool],
        navigator: HistoryNavigator,
        back_policy: BackPolicy,
        menu: SidebarMenu,
        store: Optional[PersistentStore] = None,
        on_force_acknowledge: Optional[Callable[[], bool]] = None,
    ):
        self._force_lock = force_lock
        self._navigator = navigator
        self._back_policy = back_policy
        self.menu = menu
        self._store = store
        self._on_force_acknowledge = on_force_acknowledge

        self._owner = FocusOwner.CONTENT
        self._restore_owner: Optional[FocusOwner] = None

        self._dialog: Optional[DialogTrap] = None
        self._dialog_opener: FocusOwner = FocusOwner.CONTENT

        self._listeners: List[FocusListener] = []
        self._exit_listeners: List[Callable[[], None]] = []

        self._transitions: Dict[Tuple[FocusOwner, RemoteKey], Transition] = {
            (FocusOwner.CONTENT, RemoteKey.LEFT): self._content_left,
            (FocusOwner.CONTENT, RemoteKey.BACK): self._content_back,
            (FocusOwner.SIDEBAR, RemoteKey.UP): lambda: self._sidebar_move(-1),
            (FocusOwner.SIDEBAR, RemoteKey.DOWN): lambda: self._sidebar_move(1),
            (FocusOwner.SIDEBAR, RemoteKey.RIGHT): self._sidebar_collapse,
            (FocusOwner.SIDEBAR, RemoteKey.SELECT): self._sidebar_select,
            (FocusOwner.SIDEBAR, RemoteKey.BACK): self._sidebar_back,
            (FocusOwner.SIDEBAR, RemoteKey.LEFT): lambda: KeyResult.SWALLOWED,
        }

        self._unsubscribe_force = force_lock.subscribe(self._on_force_changed)
        if force_lock.get():
            self._enter_force()

    # ==================================================================
    # STATE
    # ==================================================================

    @property
    def owner(self) -> FocusOwner:
        return self._owner

    @property
    def input_blocked(self) -> bool:
        return bool(self._force_lock.get())

    @property
    def dialog(self) -> Optional[DialogTrap]:
        return self._dialog

    def subscribe(self, listener: FocusListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def on_exit_requested(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._exit_listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._exit_listeners:
                self._exit_listeners.remove(listener)

        return _unsubscribe

    def detach(self) -> None:
        self._unsubscribe_force()

    # ------------------------------------------------------------------

    def _set_owner(
        self,
        owner: FocusOwner,
        *,
        target: Optional[FocusTarget] = None,
        menu_item: Optional[MenuItem] = None,
    ) -> None:
        previous = self._owner
        self._owner = owner
        change = FocusChange(previous, owner, target, menu_item)
        log.debug(f"[focus] {previous.value} -> {owner.value}")
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                log.warning(f"[focus] listener error ignored: {e}")

    # ==================================================================
    # FORCE OVERLAY
    # ==================================================================

    def _on_force_changed(self, previous: bool, current: bool) -> None:
        if current:
            self._enter_force()
        else:
            self._leave_force()

    def _enter_force(self) -> None:
        if self._owner == FocusOwner.FORCE_OVERLAY:
            return
        self._restore_owner = self._owner
        self._set_owner(FocusOwner.FORCE_OVERLAY)

    def _leave_force(self) -> None:
        if self._owner != FocusOwner.FORCE_OVERLAY:
            return
        restore = self._restore_owner or FocusOwner.CONTENT
        self._restore_owner = None

        if restore == FocusOwner.DIALOG and self._dialog is None:
            restore = self._dialog_opener
        self._set_owner(restore, **self._landing_for(restore))

    def _landing_for(self, owner: FocusOwner) -> dict:
        if owner == FocusOwner.CONTENT:
            return {"target": content_focus_target(self._navigator.current)}
        if owner == FocusOwner.SIDEBAR:
            return {"menu_item": self.menu.focused_item}
        return {}

    # ==================================================================
    # KEY DISPATCH
    # ==================================================================

    def handle_raw_key(
        self,
        key: Optional[str] = None,
        key_code: Optional[int] = None,
        *,
        shift: bool = False,
        page_consumed: bool = False,
    ) -> KeyResult:
        mapped = RemoteKey.from_event(key, key_code)
        if mapped is None:
            return KeyResult.SWALLOWED if self.input_blocked else KeyResult.IGNORED
        return self.handle_key(mapped, shift=shift, page_consumed=page_consumed)

    def handle_key(
        self,
        key: RemoteKey,
        *,
        shift: bool = False,
        page_consumed: bool = False,
    ) -> KeyResult:
        """
        Offer one canonical key. ``page_consumed`` tells the machine a
        page-local handler already acted on it.
        """

        if self.input_blocked or self._owner == FocusOwner.FORCE_OVERLAY:
            if key == RemoteKey.SELECT and self._on_force_acknowledge is not None:
                try:
                    if self._on_force_acknowledge():
                        return KeyResult.HANDLED
                except Exception as e:
                    log.warning(f"[focus] force acknowledge error ignored: {e}")
            return KeyResult.SWALLOWED

        if self._owner == FocusOwner.DIALOG and self._dialog is not None:
            return self._dialog_key(key, shift)

        if page_consumed:
            return KeyResult.IGNORED

        transition = self._transitions.get((self._owner, key))
        if transition is None:
            return KeyResult.IGNORED
        return transition()

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def _open_sidebar(self) -> KeyResult:
        item = self.menu.expand(self._navigator.current)
        self._set_owner(FocusOwner.SIDEBAR, menu_item=item)
        return KeyResult.HANDLED

    def _content_left(self) -> KeyResult:
        if not self._back_policy.shows_sidebar(self._navigator.current):
            return KeyResult.IGNORED
        return self._open_sidebar()

    def _content_back(self) -> KeyResult:
        route = self._navigator.current
        if self._back_policy.leaves_to_page(route):
            return KeyResult.IGNORED
        if self._back_policy.shows_sidebar(route):
            return self._open_sidebar()

        destination = self._back_policy.navigate_back(self._navigator)
        log.debug(f"[focus] back navigation {route} -> {destination}")
        return KeyResult.HANDLED

    # ------------------------------------------------------------------
    # Sidebar
    # ------------------------------------------------------------------

    def _sidebar_move(self, delta: int) -> KeyResult:
        item = self.menu.move(delta)
        self._set_owner(FocusOwner.SIDEBAR, menu_item=item)
        return KeyResult.HANDLED

    def _return_to_content(self) -> None:
        target = content_focus_target(self._navigator.current)
        self._set_owner(FocusOwner.CONTENT, target=target)

    def _sidebar_collapse(self) -> KeyResult:
        self._return_to_content()
        return KeyResult.HANDLED

    def _sidebar_select(self) -> KeyResult:
        route = self.menu.focused_item.route
        if route == self._navigator.current:
            return self._sidebar_collapse()

        if self._store is not None:
            reset_route_markers(self._store, route)
        self._navigator.navigate(route, replace=True)
        self._return_to_content()
        return KeyResult.HANDLED

    def _sidebar_back(self) -> KeyResult:
        log.debug("[focus] exit confirmation requested")
        for listener in list(self._exit_listeners):
            try:
                listener()
            except Exception as e:
                log.warning(f"[focus] exit listener error ignored: {e}")
        return KeyResult.HANDLED

    # ==================================================================
    # DIALOGS
    # ==================================================================

    def open_dialog(self, spec: DialogSpec, *, behind_force: bool = False) -> Optional[DialogTrap]:
        """
        Open a modal dialog and hand it input ownership.

        Under the force lock a dialog is refused, unless ``behind_force`` is
        set: the dialog is then installed as the owner restored once the
        lock is released.
        """
        if self.input_blocked:
            if not behind_force:
                log.debug(f"[focus] dialog '{spec.name}' refused while force overlay is active")
                return None
            if self._dialog is None:
                self._dialog_opener = self._restore_owner or FocusOwner.CONTENT
            self._dialog = DialogTrap(spec)
            self._restore_owner = FocusOwner.DIALOG
            log.debug(f"[focus] dialog '{spec.name}' waiting behind force overlay")
            return self._dialog

        if self._dialog is None:
            self._dialog_opener = self._owner
        self._dialog = DialogTrap(spec)
        self._set_owner(FocusOwner.DIALOG)
        return self._dialog

    def close_dialog(self) -> None:
        if self._dialog is None:
            return
        self._dialog = None

        if self._owner != FocusOwner.DIALOG:
            if self._restore_owner == FocusOwner.DIALOG:
                self._restore_owner = self._dialog_opener
            return

        opener = self._dialog_opener
        if opener == FocusOwner.SIDEBAR:
            item = self.menu.expand(self._navigator.current)
            self._set_owner(FocusOwner.SIDEBAR, menu_item=item)
        else:
            self._return_to_content()

    def _dialog_key(self, key: RemoteKey, shift: bool) -> KeyResult:
        trap = self._dialog
        result, activated = trap.handle(key, shift=shift)
        if activated is not None and trap.spec.close_on_action and self._dialog is trap:
            self.close_dialog()
        return result

    # ==================================================================
    # EXTERNAL FOCUS REQUESTS
    # ==================================================================

    def request_owner(self, owner: FocusOwner) -> bool:
        """Page-driven ownership change (e.g. pointer focus); refused under force."""
        if self.input_blocked or owner in (FocusOwner.FORCE_OVERLAY, FocusOwner.DIALOG):
            return False
        if self._owner == FocusOwner.DIALOG:
            return False
        if owner == self._owner:
            return True
        if owner == FocusOwner.SIDEBAR:
            self._open_sidebar()
        else:
            self._return_to_content()
        return True
