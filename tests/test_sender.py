"""Tests for gatehouse.server.sender response emission rules."""

from collections.abc import AsyncIterator

import anyio
import httpx
import pytest

from gatehouse.http.response import Response, StreamingResponse
from gatehouse.server.sender import send_response, send_streaming_response


class TestSendResponseNoBodyStatuses:
    async def test_204_drops_body_and_sets_zero_content_length(self) -> None:
        messages: list[dict] = []

        async def send(message: dict) -> None:
            messages.append(message)

        # Even if a handler accidentally attaches body content, the sender
        # enforces RFC no-body semantics for 204.
        response = Response("unexpected-body").with_status(204)
        await send_response(response, send)

        assert messages[0]["type"] == "http.response.start"
        headers = dict(messages[0]["headers"])
        assert headers[b"content-length"] == b"0"

        assert messages[1]["type"] == "http.response.body"
        assert messages[1]["body"] == b""

    async def test_304_drops_body_and_sets_zero_content_length(self) -> None:
        messages: list[dict] = []

        async def send(message: dict) -> None:
            messages.append(message)

        response = Response("unexpected-body").with_status(304)
        await send_response(response, send)

        headers = dict(messages[0]["headers"])
        assert headers[b"content-length"] == b"0"
        assert messages[1]["body"] == b""

    async def test_200_preserves_body(self) -> None:
        messages: list[dict] = []

        async def send(message: dict) -> None:
            messages.append(message)

        await send_response(Response("ok"), send)

        headers = dict(messages[0]["headers"])
        assert headers[b"content-length"] == b"2"
        assert headers[b"content-type"] == b"text/plain; charset=utf-8"
        assert messages[1]["body"] == b"ok"

    async def test_head_keeps_length_drops_body(self) -> None:
        messages: list[dict] = []

        async def send(message: dict) -> None:
            messages.append(message)

        await send_response(Response("hello"), send, head=True)

        headers = dict(messages[0]["headers"])
        assert headers[b"content-length"] == b"5"
        assert messages[1]["body"] == b""


class _Upstream:
    """A fake upstream body that records whether it was released."""

    def __init__(self, *chunks: bytes, error: Exception | None = None, hang: bool = False) -> None:
        self.chunks = chunks
        self.error = error
        self.hang = hang
        self.closed = False

    async def body(self) -> AsyncIterator[bytes]:
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error
        if self.hang:
            await anyio.sleep_forever()

    async def close(self) -> None:
        self.closed = True

    def response(self) -> StreamingResponse:
        return StreamingResponse(
            chunks=self.body(),
            status=200,
            headers=(("content-type", "text/plain"),),
            on_close=self.close,
        )


async def _never_disconnect() -> dict:
    await anyio.sleep_forever()
    return {}


class TestSendStreamingResponse:
    async def test_relays_chunks_then_terminates(self) -> None:
        messages: list[dict] = []

        async def send(message: dict) -> None:
            messages.append(message)

        upstream = _Upstream(b"a", b"", b"b")
        await send_streaming_response(upstream.response(), send, _never_disconnect)

        assert messages[0]["status"] == 200
        assert (b"content-type", b"text/plain") in messages[0]["headers"]
        bodies = [m["body"] for m in messages[1:]]
        assert bodies == [b"a", b"b", b""]
        assert messages[-1]["more_body"] is False
        assert upstream.closed

    async def test_client_disconnect_stops_relay_and_closes_upstream(self) -> None:
        messages: list[dict] = []
        disconnected = anyio.Event()

        async def send(message: dict) -> None:
            messages.append(message)
            if message.get("body") == b"first":
                disconnected.set()

        async def receive() -> dict:
            await disconnected.wait()
            return {"type": "http.disconnect"}

        upstream = _Upstream(b"first", hang=True)
        with anyio.fail_after(2):
            await send_streaming_response(upstream.response(), send, receive)

        assert upstream.closed
        assert all(m.get("more_body", True) for m in messages[1:])

    async def test_upstream_error_leaves_body_unterminated(self, caplog: pytest.LogCaptureFixture) -> None:
        messages: list[dict] = []

        async def send(message: dict) -> None:
            messages.append(message)

        upstream = _Upstream(b"partial", error=httpx.ReadError("reset"))
        await send_streaming_response(upstream.response(), send, _never_disconnect)

        assert [m["body"] for m in messages[1:]] == [b"partial"]
        assert messages[-1]["more_body"] is True
        assert upstream.closed
        assert "mid-response" in caplog.text
