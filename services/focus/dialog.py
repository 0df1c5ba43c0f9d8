from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from services.focus.keys import KeyResult, RemoteKey
from shared.logging.logger import get_logger

log = get_logger("services.focus.dialog")


class DialogButton(str, Enum):
    DISMISS = "dismiss"
    CONFIRM = "confirm"


@dataclass
class DialogSpec:
    name: str
    title: str = ""
    message: str = ""
    dismiss_text: Optional[str] = None
    on_dismiss: Optional[Callable[[], None]] = None
    confirm_text: Optional[str] = None
    on_confirm: Optional[Callable[[], None]] = None
    initial_focus_on_confirm: bool = False
    close_on_action: bool = True


class DialogTrap:
    """
    Focus trap for one modal dialog with at most two buttons
    (dismiss first, confirm second).
    """

    def __init__(self, spec: DialogSpec):
        self.spec = spec
        self.buttons: List[DialogButton] = []
        if spec.dismiss_text and spec.on_dismiss:
            self.buttons.append(DialogButton.DISMISS)
        if spec.confirm_text and spec.on_confirm:
            self.buttons.append(DialogButton.CONFIRM)
        self.focused: Optional[DialogButton] = self._initial_focus()

    def _initial_focus(self) -> Optional[DialogButton]:
        if not self.buttons:
            return None
        if self.spec.initial_focus_on_confirm and DialogButton.CONFIRM in self.buttons:
            return DialogButton.CONFIRM
        return self.buttons[0]

    def _step(self, delta: int) -> None:
        if not self.buttons:
            return
        if self.focused in self.buttons:
            index = self.buttons.index(self.focused)
        else:
            index = 0 if delta > 0 else len(self.buttons)
        self.focused = self.buttons[(index + delta) % len(self.buttons)]

    def _run(self, button: DialogButton) -> None:
        action = self.spec.on_confirm if button == DialogButton.CONFIRM else self.spec.on_dismiss
        if action is None:
            return
        try:
            action()
        except Exception as e:
            log.warning(f"[dialog:{self.spec.name}] {button.value} action error ignored: {e}")

    def handle(self, key: RemoteKey, *, shift: bool = False) -> Tuple[KeyResult, Optional[DialogButton]]:
        """Returns the key outcome and the button that was activated, if any."""

        if key == RemoteKey.TAB:
            if not self.buttons:
                return KeyResult.SWALLOWED, None
            self._step(-1 if shift else 1)
            return KeyResult.HANDLED, None

        if key in (RemoteKey.LEFT, RemoteKey.RIGHT):
            if len(self.buttons) > 1:
                self._step(1 if key == RemoteKey.RIGHT else -1)
                return KeyResult.HANDLED, None
            return KeyResult.SWALLOWED, None

        if key in (RemoteKey.UP, RemoteKey.DOWN):
            return KeyResult.SWALLOWED, None

        if key == RemoteKey.BACK:
            if self.spec.on_dismiss is None:
                return KeyResult.SWALLOWED, None
            self._run(DialogButton.DISMISS)
            return KeyResult.HANDLED, DialogButton.DISMISS

        if key == RemoteKey.SELECT:
            if self.focused is None:
                return KeyResult.SWALLOWED, None
            button = self.focused
            self._run(button)
            return KeyResult.HANDLED, button

        return KeyResult.SWALLOWED, None
