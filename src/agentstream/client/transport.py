"""HTTP streaming transport for the assistant endpoint."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Mapping

import httpx

from ..protocol.events import StreamDecodeError, StreamEvent
from ..protocol.framing import MEDIA_TYPE, LineDecoder
from .cancellation import CancellationController

LOGGER = logging.getLogger(__name__)

DEFAULT_STREAM_PATH = "/api/assistant/stream"
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_IDLE_TIMEOUT = 120.0


class TransportError(RuntimeError):
    """Raised when the stream cannot be opened or breaks mid-flight.

    ``status_code`` is set for non-2xx responses.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StreamTransport:
    """POST one request and yield decoded stream events as they arrive.

    ``idle_timeout`` bounds the wait for each chunk, not the whole
    response; ``None`` waits indefinitely and leaves abandonment to the
    cancellation controller.
    """

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        path: str = DEFAULT_STREAM_PATH,
        idle_timeout: float | None = DEFAULT_IDLE_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client
        self._owns_client = client is None
        self._path = path
        self._idle_timeout = idle_timeout
        self._connect_timeout = connect_timeout
        self._headers = dict(headers or {})

    @property
    def url(self) -> str:
        return f"{self._base_url}{self._path}"

    @property
    def idle_timeout(self) -> float | None:
        return self._idle_timeout

    async def stream(
        self,
        payload: Mapping[str, Any],
        *,
        cancellation: CancellationController | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield events until the server closes the stream or the request is aborted.

        Raises :class:`TransportError` for HTTP errors, connection drops,
        idle timeouts and malformed records.
        """

        client = self._ensure_client()
        timeout = httpx.Timeout(self._connect_timeout, read=self._idle_timeout)
        headers = {"Accept": MEDIA_TYPE, **self._headers}
        decoder = LineDecoder()
        try:
            async with client.stream("POST", self.url, json=dict(payload), headers=headers, timeout=timeout) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise TransportError(
                        _error_message(response.status_code, body),
                        status_code=response.status_code,
                    )
                async for chunk in response.aiter_bytes():
                    if cancellation is not None and cancellation.aborted:
                        LOGGER.debug("Stopping stream read after abort")
                        return
                    for event in decoder.feed(chunk):
                        yield event
                for event in decoder.close():
                    yield event
        except httpx.TimeoutException as exc:
            LOGGER.warning("Stream idle for more than %ss; giving up", self._idle_timeout)
            raise TransportError(f"No data received for {self._idle_timeout} seconds") from exc
        except httpx.HTTPError as exc:
            LOGGER.warning("Stream transport failed: %s", exc)
            raise TransportError(f"Connection failed: {exc}") from exc
        except StreamDecodeError as exc:
            LOGGER.warning("Malformed stream record: %s", exc)
            raise TransportError(str(exc)) from exc

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def _error_message(status_code: int, body: bytes) -> str:
    """Prefer the server's ``{"error": ...}`` field over a generic status line."""

    try:
        payload = json.loads(body or b"null")
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = None
    if isinstance(payload, Mapping):
        error = payload.get("error") or payload.get("detail")
        if isinstance(error, str) and error:
            return error
    text = body.decode("utf-8", errors="replace").strip() if body else ""
    return text[:500] or f"Request failed with HTTP {status_code}"


__all__ = ["DEFAULT_STREAM_PATH", "StreamTransport", "TransportError"]
