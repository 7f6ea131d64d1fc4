"""Tests for the httpx streaming transport."""

from __future__ import annotations

import json
from typing import AsyncIterator, Callable, Iterable

import httpx
import pytest

from agentstream.client.cancellation import CancellationController
from agentstream.client.transport import StreamTransport, TransportError
from agentstream.protocol.events import Done, MessageEnd, MessageStart, TextDelta
from agentstream.protocol.framing import MEDIA_TYPE, encode_line


async def _chunks(parts: Iterable[bytes | BaseException]) -> AsyncIterator[bytes]:
    for part in parts:
        if isinstance(part, BaseException):
            raise part
        yield part


def _transport(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> StreamTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return StreamTransport("http://assistant.test/", client=client, **kwargs)


async def _read(transport: StreamTransport, **kwargs) -> list:
    return [event async for event in transport.stream({"messages": []}, **kwargs)]


class TestStreamTransport:
    """Request shape, incremental decoding and failure mapping."""

    @pytest.mark.asyncio
    async def test_posts_json_and_decodes_records_split_across_chunks(self) -> None:
        seen: list[httpx.Request] = []
        wire = b"".join(
            encode_line(event) for event in [MessageStart(), TextDelta("Hi "), TextDelta("there"), MessageEnd(), Done()]
        )

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            pieces = [wire[i : i + 7] for i in range(0, len(wire), 7)]
            return httpx.Response(200, headers={"Content-Type": MEDIA_TYPE}, content=_chunks(pieces))

        transport = _transport(handler)

        events = await _read(transport)

        assert events == [MessageStart(), TextDelta("Hi "), TextDelta("there"), MessageEnd(), Done()]
        request = seen[0]
        assert str(request.url) == "http://assistant.test/api/assistant/stream"
        assert request.headers["accept"] == MEDIA_TYPE
        assert json.loads(request.content) == {"messages": []}

    @pytest.mark.asyncio
    async def test_unterminated_final_record_is_delivered(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=encode_line(MessageStart()) + b'{"type":"done"}')

        events = await _read(_transport(handler))

        assert events == [MessageStart(), Done()]

    @pytest.mark.asyncio
    async def test_error_status_uses_server_message(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, json={"error": "messages: field required"})

        with pytest.raises(TransportError) as info:
            await _read(_transport(handler))

        assert str(info.value) == "messages: field required"
        assert info.value.status_code == 422

    @pytest.mark.asyncio
    async def test_error_status_without_json_falls_back_to_text(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, content=b"")

        with pytest.raises(TransportError, match="HTTP 502"):
            await _read(_transport(handler))

    @pytest.mark.asyncio
    async def test_connection_failure_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError, match="Connection failed"):
            await _read(_transport(handler))

    @pytest.mark.asyncio
    async def test_drop_mid_stream_keeps_earlier_events(self) -> None:
        received: list = []

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                content=_chunks([encode_line(MessageStart()), encode_line(TextDelta("par")), httpx.ReadError("reset")]),
            )

        with pytest.raises(TransportError):
            async for event in _transport(handler).stream({}):
                received.append(event)

        assert received == [MessageStart(), TextDelta("par")]

    @pytest.mark.asyncio
    async def test_idle_timeout_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=_chunks([encode_line(MessageStart()), httpx.ReadTimeout("idle")]))

        with pytest.raises(TransportError, match="No data received for 5"):
            await _read(_transport(handler, idle_timeout=5))

    @pytest.mark.asyncio
    async def test_malformed_record_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"{oops}\n")

        with pytest.raises(TransportError, match="Invalid JSON"):
            await _read(_transport(handler))

    @pytest.mark.asyncio
    async def test_abort_stops_reading(self) -> None:
        controller = CancellationController()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=_chunks([encode_line(MessageStart()), encode_line(TextDelta("late"))]))

        received: list = []
        async for event in _transport(handler).stream({}, cancellation=controller):
            received.append(event)
            controller.abort()

        assert received == [MessageStart()]

    @pytest.mark.asyncio
    async def test_aclose_leaves_injected_client_open(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        transport = StreamTransport("http://assistant.test", client=client)

        await transport.aclose()

        assert not client.is_closed
        await client.aclose()
