from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Sequence, Tuple, TypeVar

T = TypeVar("T")


# ======================================================================
# Cooldown window (repeat suppression)
# ======================================================================

@dataclass
class CooldownWindow:
    """
    Remembers when each key was last used and reports whether it is still
    inside the suppression window.
    """
    window_seconds: float
    _last_seen: Dict[Hashable, float] = field(default_factory=dict)

    def active(self, key: Hashable, now: float) -> bool:
        last = self._last_seen.get(key)
        if last is None:
            return False
        return (now - last) < self.window_seconds

    def record(self, key: Hashable, now: float) -> None:
        self._last_seen[key] = now
        self._prune(now)

    def clear(self) -> None:
        self._last_seen.clear()

    def _prune(self, now: float) -> None:
        expired = [
            k for k, ts in self._last_seen.items()
            if (now - ts) >= self.window_seconds
        ]
        for k in expired:
            self._last_seen.pop(k, None)


# ======================================================================
# Refresh throttle (in-flight guard + minimum interval)
# ======================================================================

@dataclass
class RefreshThrottle:
    """
    Admits at most one attempt at a time, and no attempt sooner than
    ``min_interval_seconds`` after the previous admitted one.
    """
    min_interval_seconds: float
    in_flight: bool = False
    last_attempt: float | None = None
    suppressed: int = 0

    def try_acquire(self, now: float) -> bool:
        if self.in_flight:
            self.suppressed += 1
            return False

        if (
            self.last_attempt is not None
            and (now - self.last_attempt) < self.min_interval_seconds
        ):
            self.suppressed += 1
            return False

        self.in_flight = True
        self.last_attempt = now
        return True

    def release(self) -> None:
        self.in_flight = False


# ======================================================================
# Fan-out policy (bounded burst concurrency)
# ======================================================================

@dataclass(frozen=True)
class FanOutPolicy:
    max_immediate: int = 5
    defer_seconds: float = 1.0

    def split(self, items: Sequence[T]) -> Tuple[List[T], List[T]]:
        limit = max(0, int(self.max_immediate))
        return list(items[:limit]), list(items[limit:])


def unique_in_order(items: Sequence[T]) -> List[T]:
    seen = set()
    result: List[T] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


__all__ = [
    "CooldownWindow",
    "RefreshThrottle",
    "FanOutPolicy",
    "unique_in_order",
]
