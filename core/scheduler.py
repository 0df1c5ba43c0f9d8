import asyncio
import time
from typing import Any, Callable, Coroutine, Optional, Set

from shared.logging.logger import get_logger

log = get_logger("core.scheduler")


class Scheduler:
    """
    Single owner of every timer and fire-and-forget task in the engine.

    - Timer callbacks and spawned tasks are wrapped: errors are logged and
      ignored, never propagated into the hosting loop
    - Shutdown cancels pending timers and tasks
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._timers: Set[asyncio.TimerHandle] = set()
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return time.monotonic()

    # ------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------

    def call_later(
        self,
        delay: float,
        callback: Callable[[], Any],
        *,
        name: str = "timer",
    ) -> asyncio.TimerHandle:
        handle: Optional[asyncio.TimerHandle] = None

        def _run() -> None:
            self._timers.discard(handle)
            try:
                callback()
            except Exception as e:
                log.warning(f"[{name}] timer error ignored: {e}")

        handle = self._get_loop().call_later(max(0.0, delay), _run)
        self._timers.add(handle)
        return handle

    def cancel(self, handle: Any) -> None:
        if handle is None:
            return
        handle.cancel()
        self._timers.discard(handle)

    # ------------------------------------------------------------
    # Fire-and-forget tasks
    # ------------------------------------------------------------

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str = "task") -> asyncio.Task:
        task = self._get_loop().create_task(coro, name=name)
        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                log.debug(f"[{name}] task cancelled")
                return
            exc = t.exception()
            if exc is not None:
                log.warning(f"[{name}] task error ignored: {exc}")

        task.add_done_callback(_done)
        return task

    # ------------------------------------------------------------

    async def shutdown(self):
        log.info("Scheduler shutdown initiated")

        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()

        pending = [t for t in self._tasks if not t.done()]
        for task in pending:
            task.cancel()

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self._tasks.clear()
        log.info("Scheduler shutdown complete")
