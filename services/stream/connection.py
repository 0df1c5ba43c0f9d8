"""
Push stream connection lifecycle.

One live connection per engine. ``open`` closes whatever handle is current
before starting the next one, so a navigation-driven re-open never leaves
two streams delivering into the same overlay state.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, Optional

from services.stream.sse_client import PushStreamClient, SSEEvent
from shared.config.system import StreamSettings
from shared.logging.logger import get_logger

log = get_logger("services.stream.connection")

OnMessage = Callable[[Any], None]
OnError = Callable[[Exception], None]
ClientFactory = Callable[..., PushStreamClient]


def decode_payload(data: str) -> Any:
    """JSON bodies become objects; anything else is passed on as the raw string."""
    try:
        return json.loads(data)
    except ValueError:
        return data


class StreamHandle:
    """
    A single open stream. ``close()`` is idempotent and never raises, even
    after the underlying task already failed.
    """

    def __init__(
        self,
        client: PushStreamClient,
        on_message: OnMessage,
        on_error: Optional[OnError] = None,
        *,
        name: str = "stream",
    ):
        self.name = name
        self._client = client
        self._on_message = on_message
        self._on_error = on_error
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def start(self, spawn: Callable[..., asyncio.Task]) -> None:
        self._task = spawn(self._pump(), name=self.name)

    # ------------------------------------------------------------

    def _dispatch(self, event: SSEEvent) -> None:
        payload = decode_payload(event.data)
        try:
            self._on_message(payload)
        except Exception as e:
            log.warning(f"[{self.name}] message handler error ignored: {e}")

    def _notify_error(self, exc: Exception) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(exc)
        except Exception as e:
            log.warning(f"[{self.name}] error handler error ignored: {e}")

    async def _pump(self) -> None:
        try:
            async for event in self._client.iter_events():
                if self._closed:
                    break
                self._dispatch(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning(f"[{self.name}] stream ended with error: {e}")
            self._notify_error(e)
        finally:
            await self._client.aclose()

    # ------------------------------------------------------------

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        task = self._task
        if task is not None and not task.done():
            task.cancel()
        log.info(f"[{self.name}] closed")


class StreamConnectionManager:
    """
    Owns the push stream connection for one mounted engine.
    """

    def __init__(
        self,
        settings: StreamSettings,
        spawn: Callable[..., asyncio.Task],
        *,
        client_factory: Optional[ClientFactory] = None,
    ):
        self._settings = settings
        self._spawn = spawn
        self._client_factory = client_factory or self._default_client
        self._current: Optional[StreamHandle] = None
        self._opened = 0

    @property
    def current(self) -> Optional[StreamHandle]:
        return self._current

    def _default_client(
        self,
        url: str,
        *,
        params: Dict[str, str],
        headers: Dict[str, str],
    ) -> PushStreamClient:
        s = self._settings
        return PushStreamClient(
            url,
            params=params,
            headers=headers,
            initial_backoff_seconds=s.initial_backoff_seconds,
            max_backoff_seconds=s.max_backoff_seconds,
            connect_timeout_seconds=s.connect_timeout_seconds,
        )

    def build_url(self, path: str) -> str:
        return self._settings.base_url.rstrip("/") + "/" + path.lstrip("/")

    def open(
        self,
        path: str,
        *,
        query: Dict[str, str],
        on_message: OnMessage,
        on_error: Optional[OnError] = None,
    ) -> StreamHandle:
        self.close()

        headers: Dict[str, str] = {}
        if self._settings.api_key:
            headers["x-api-key"] = self._settings.api_key

        params = {k: str(v) for k, v in query.items() if v is not None}
        url = self.build_url(path)
        client = self._client_factory(url, params=params, headers=headers)

        self._opened += 1
        handle = StreamHandle(
            client,
            on_message,
            on_error,
            name=f"stream#{self._opened}",
        )
        handle.start(self._spawn)
        self._current = handle

        log.info(f"[{handle.name}] opened {path} query={sorted(params)}")
        return handle

    def close(self) -> None:
        if self._current is not None:
            self._current.close()
            self._current = None
