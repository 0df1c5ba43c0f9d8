"""Process-wide shared state cells with a single writer."""

from __future__ import annotations

from threading import Lock
from typing import Callable, Generic, List, Optional, TypeVar

from shared.logging.logger import get_logger

log = get_logger("runtime.state_cell")

T = TypeVar("T")

Listener = Callable[[T, T], None]


class StateCell(Generic[T]):
    """
    Level-signal cell: many readers, exactly one writer.

    Readers call ``get()`` or subscribe for ``(previous, current)``
    notifications. The writer is obtained once through ``claim_writer()``.
    There is no reference counting; the stored value is the signal.
    """

    def __init__(self, name: str, initial: T):
        self.name = name
        self._lock = Lock()
        self._value = initial
        self._listeners: List[Listener] = []
        self._writer: Optional["CellWriter[T]"] = None

    def get(self) -> T:
        with self._lock:
            return self._value

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def claim_writer(self, owner: str) -> "CellWriter[T]":
        with self._lock:
            if self._writer is not None:
                raise RuntimeError(
                    f"State cell '{self.name}' already has a writer ({self._writer.owner})"
                )
            self._writer = CellWriter(self, owner)
            return self._writer

    # ------------------------------------------------------------

    def _store(self, value: T) -> None:
        with self._lock:
            previous = self._value
            self._value = value

        if previous == value:
            return

        log.debug(f"[{self.name}] {previous!r} -> {value!r}")
        for listener in list(self._listeners):
            try:
                listener(previous, value)
            except Exception as e:
                log.warning(f"[{self.name}] listener error ignored: {e}")


class CellWriter(Generic[T]):
    def __init__(self, cell: StateCell[T], owner: str):
        self.cell = cell
        self.owner = owner

    def set(self, value: T) -> None:
        self.cell._store(value)


__all__ = ["StateCell", "CellWriter"]
