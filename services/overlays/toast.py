from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, List, Optional

from shared.logging.logger import get_logger
from shared.runtime.ratelimits import CooldownWindow

log = get_logger("services.overlays.toast")


@dataclass(frozen=True)
class ToastItem:
    id: str
    text: str
    enqueued_at: float


class ToastQueue:
    """
    Strict FIFO with exactly one visible item at a time.

    Each item stays visible for ``dwell_seconds``. A text is rejected while an
    identical text is visible or waiting, and for ``dedup_window_seconds``
    after it was last shown.
    """

    def __init__(
        self,
        scheduler: Any,
        *,
        dwell_seconds: float = 8.0,
        dedup_window_seconds: float = 30.0,
        on_change: Optional[Callable[[Optional[ToastItem]], None]] = None,
    ):
        self._scheduler = scheduler
        self._dwell = dwell_seconds
        self._recent = CooldownWindow(dedup_window_seconds)
        self._on_change = on_change

        self._pending: Deque[ToastItem] = deque()
        self._current: Optional[ToastItem] = None
        self._timer: Any = None
        self.suppressed = 0

    @property
    def current(self) -> Optional[ToastItem]:
        return self._current

    @property
    def pending(self) -> List[ToastItem]:
        return list(self._pending)

    # ------------------------------------------------------------

    def _is_duplicate(self, text: str, now: float) -> bool:
        if self._current is not None and self._current.text == text:
            return True
        if any(item.text == text for item in self._pending):
            return True
        return self._recent.active(text, now)

    def offer(self, item_id: str, text: str) -> bool:
        text = (text or "").strip()
        if not text:
            return False

        now = self._scheduler.now()
        if self._is_duplicate(text, now):
            self.suppressed += 1
            log.debug(f"[toast] suppressed repeat: {text!r}")
            return False

        self._pending.append(ToastItem(item_id, text, now))
        self._advance()
        return True

    def _advance(self) -> None:
        if self._current is not None or not self._pending:
            return

        item = self._pending.popleft()
        self._current = item
        self._recent.record(item.text, self._scheduler.now())
        self._timer = self._scheduler.call_later(self._dwell, self._expire, name="toast")
        log.debug(f"[toast] showing {item.id}: {item.text!r}")
        self._notify()

    def _expire(self) -> None:
        self._timer = None
        self._current = None
        self._notify()
        self._advance()

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self._current)
        except Exception as e:
            log.warning(f"[toast] change listener error ignored: {e}")

    # ------------------------------------------------------------

    def clear(self) -> None:
        """Drop the visible item, everything pending and the repeat history."""
        if self._timer is not None:
            self._scheduler.cancel(self._timer)
            self._timer = None

        had_content = self._current is not None or bool(self._pending)
        self._pending.clear()
        self._current = None
        self._recent.clear()

        if had_content:
            self._notify()
