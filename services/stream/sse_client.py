import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional

import httpx

from shared.logging.logger import get_logger

log = get_logger("services.stream.sse")


class StreamUnavailable(Exception):
    """
    Raised only when the caller configured ``max_failures`` and the endpoint
    kept failing. The default policy retries forever.

    HTTP 204 is a keepalive, not a failure.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class SSEEvent:
    """
    Lightweight container for SSE frames.

    The push endpoint emits event/data/id triplets using the standard
    Server-Sent Events framing.
    """

    event: str
    data: str
    event_id: Optional[str] = None


class PushStreamClient:
    """
    SSE client for the combined push stream.

    Rules:
    - Connects to one URL with a fixed query derived by the caller
    - Handles keepalives, reconnect backoff, and Last-Event-ID for idempotency
    - Yields decoded SSEEvent objects without opinionated parsing
    """

    def __init__(
        self,
        url: str,
        *,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
        initial_backoff_seconds: float = 1.0,
        max_backoff_seconds: float = 30.0,
        connect_timeout_seconds: float = 10.0,
        keepalive_wait_seconds: float = 2.0,
        max_failures: Optional[int] = None,
    ):
        self.url = url
        self.params = dict(params or {})

        base_headers = {
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }
        if headers:
            base_headers.update(headers)
        self._base_headers = base_headers

        # Allow caller to supply a shared client; otherwise own lifecycle
        self._client = client or httpx.AsyncClient(
            headers=self._base_headers,
            timeout=httpx.Timeout(connect_timeout_seconds, read=None),
            follow_redirects=True,
        )
        self._client_owned = client is None

        self._initial_backoff = initial_backoff_seconds
        self._max_backoff = max_backoff_seconds
        self._keepalive_wait = keepalive_wait_seconds
        self._max_failures = max_failures

        self._closed = False
        self._last_event_id: Optional[str] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def last_event_id(self) -> Optional[str]:
        return self._last_event_id

    # ------------------------------------------------------------------

    def _register_failure(self, failure_count: int, status: Optional[int] = None) -> None:
        if self._max_failures is not None and failure_count >= self._max_failures:
            self._closed = True
            raise StreamUnavailable(
                f"Push stream failed after {failure_count} attempts (last status={status})",
                status_code=status,
            )

    async def iter_events(self) -> AsyncIterator[SSEEvent]:
        """
        Connect to the SSE endpoint and yield parsed frames.

        Reconnects with bounded exponential backoff and replays
        Last-Event-ID when the server provided one. Callers close or
        cancel to stop iteration.
        """

        backoff_seconds = self._initial_backoff
        failure_count = 0

        while not self._closed:
            headers = dict(self._base_headers)
            if self._last_event_id:
                headers["Last-Event-ID"] = self._last_event_id

            try:
                async with self._client.stream(
                    "GET", self.url, params=self.params, headers=headers
                ) as resp:
                    ct = resp.headers.get("content-type")
                    status = resp.status_code

                    if status == 204:
                        log.info("[stream] keepalive HTTP 204; waiting for events")
                        failure_count = 0
                        await asyncio.sleep(self._keepalive_wait)
                        continue

                    if status != 200 or (ct and "text/event-stream" not in ct):
                        body_preview = ""
                        try:
                            raw = await resp.aread()
                            body_preview = raw.decode(errors="ignore")[:500]
                        except Exception:
                            body_preview = "<unreadable>"

                        log.warning(
                            f"[stream] connection failed [{status}] "
                            f"content-type={ct} url={self.url} body={body_preview}"
                        )
                        failure_count += 1
                        self._register_failure(failure_count, status)

                    else:
                        log.info(f"[stream] connected ({self.url})")
                        backoff_seconds = self._initial_backoff
                        failure_count = 0

                        async for event in self._read_stream(resp):
                            if event.event_id:
                                self._last_event_id = event.event_id
                            yield event

            except asyncio.CancelledError:
                raise

            except StreamUnavailable:
                raise

            except Exception as e:
                if self._closed:
                    break
                failure_count += 1
                log.warning(f"[stream] transport error (attempt={failure_count}): {e}")
                self._register_failure(failure_count)

            if self._closed:
                break

            log.debug(f"[stream] reconnecting in {backoff_seconds:.1f}s")
            await asyncio.sleep(backoff_seconds)
            backoff_seconds = min(backoff_seconds * 2, self._max_backoff)

    # ------------------------------------------------------------------

    async def _read_stream(self, resp: httpx.Response) -> AsyncIterator[SSEEvent]:
        """
        Parse a single HTTP response body into SSEEvent objects.
        """
        data_lines: List[str] = []
        event_name: Optional[str] = None
        event_id: Optional[str] = None

        async for raw_line in resp.aiter_lines():
            if self._closed:
                break

            line = raw_line.strip("\ufeff")

            # Empty line signals dispatch
            if line == "":
                if data_lines:
                    yield SSEEvent(
                        event=event_name or "message",
                        data="\n".join(data_lines),
                        event_id=event_id or self._last_event_id,
                    )

                data_lines = []
                event_name = None
                event_id = None
                continue

            # Comments/keepalives begin with ':'
            if line.startswith(":"):
                continue

            if line.startswith("data:"):
                data_lines.append(line[5:].lstrip())
                continue

            if line.startswith("event:"):
                event_name = line[6:].strip() or event_name
                continue

            if line.startswith("id:"):
                event_id = line[3:].strip() or event_id
                continue

        # Flush any trailing data when the stream closes without a blank line
        if data_lines and not self._closed:
            yield SSEEvent(
                event=event_name or "message",
                data="\n".join(data_lines),
                event_id=event_id or self._last_event_id,
            )

    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        self._closed = True

        if self._client_owned:
            try:
                await self._client.aclose()
            except Exception as e:
                log.debug(f"[stream] client close error ignored: {e}")
