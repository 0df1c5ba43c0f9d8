import asyncio
import os
import tempfile

import pytest

# Loggers open their per-run file on first use; keep test runs out of ./logs.
os.environ.setdefault("TVPUSH_LOG_DIR", tempfile.mkdtemp(prefix="tvpush-logs-"))

from services.focus.navigation import HistoryNavigator  # noqa: E402
from shared.storage.state_store import PersistentStore  # noqa: E402


class ManualTimer:
    def __init__(self, due: float, callback, name: str) -> None:
        self.due = due
        self.callback = callback
        self.name = name
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic stand-in for core.scheduler.Scheduler."""

    def __init__(self, start: float = 0.0) -> None:
        self.clock = start
        self.timers: list[ManualTimer] = []
        self.spawned: list[tuple[str, object]] = []

    def now(self) -> float:
        return self.clock

    def call_later(self, delay: float, callback, *, name: str = "timer") -> ManualTimer:
        timer = ManualTimer(self.clock + max(0.0, delay), callback, name)
        self.timers.append(timer)
        return timer

    def cancel(self, handle) -> None:
        if handle is not None:
            handle.cancel()

    def spawn(self, coro, *, name: str = "task"):
        self.spawned.append((name, coro))
        return coro

    def pending(self, name_prefix: str = "") -> list[ManualTimer]:
        return [
            t for t in self.timers
            if not t.cancelled and t.name.startswith(name_prefix)
        ]

    def advance(self, seconds: float) -> None:
        target = self.clock + seconds
        while True:
            due = [t for t in self.timers if not t.cancelled and t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.timers.remove(timer)
            self.clock = timer.due
            timer.callback()
        self.clock = target

    def spawned_names(self) -> list[str]:
        return [name for name, _coro in self.spawned]

    def run_spawned(self) -> None:
        while self.spawned:
            _name, coro = self.spawned.pop(0)
            asyncio.run(coro)

    def discard_spawned(self) -> None:
        for _name, coro in self.spawned:
            coro.close()
        self.spawned.clear()


@pytest.fixture
def scheduler():
    sched = ManualScheduler()
    yield sched
    sched.discard_spawned()


@pytest.fixture
def store(tmp_path):
    return PersistentStore(tmp_path / "durable.json")


@pytest.fixture
def navigator():
    return HistoryNavigator("/")
