"""ASGI response sending: translates gatehouse responses to ASGI messages.

Handles both buffered responses (static files, errors) and relayed
upstream responses.
"""

import logging

import anyio
import httpx

from gatehouse._internal.asgi import Receive, Send, cancel_on_disconnect
from gatehouse.http.response import Response, StreamingResponse

logger = logging.getLogger("gatehouse.server")


def _body_allowed(status: int) -> bool:
    """Whether an HTTP status code permits a response body."""
    # RFC: 1xx, 204, and 304 responses do not include a message body.
    return not (100 <= status < 200 or status in {204, 304})


def _encode_headers(
    headers: tuple[tuple[str, str], ...], content_type: str | None
) -> list[tuple[bytes, bytes]]:
    raw: list[tuple[bytes, bytes]] = []
    if content_type is not None:
        raw.append((b"content-type", content_type.encode("latin-1")))
    for name, value in headers:
        raw.append((name.lower().encode("latin-1"), value.encode("latin-1")))
    return raw


async def send_response(response: Response, send: Send, *, head: bool = False) -> None:
    """Translate a buffered Response into ASGI send() calls.

    For HEAD requests the headers describe the full body but none is sent.
    """
    raw_headers = _encode_headers(response.headers, response.content_type)

    body = response.body_bytes if _body_allowed(response.status) else b""
    raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))

    await send(
        {
            "type": "http.response.start",
            "status": response.status,
            "headers": raw_headers,
        }
    )
    await send(
        {
            "type": "http.response.body",
            "body": b"" if head else body,
        }
    )


async def send_streaming_response(
    response: StreamingResponse,
    send: Send,
    receive: Receive,
) -> None:
    """Relay a streamed response chunk by chunk.

    Headers go out immediately, then each chunk as an ASGI body message
    with ``more_body=True``. Relaying stops as soon as the client
    disconnects. The response's upstream is released in every case.
    """
    try:
        async with anyio.create_task_group() as tg:
            tg.start_soon(cancel_on_disconnect, receive, tg.cancel_scope)
            await _relay(response, send)
            tg.cancel_scope.cancel()
    finally:
        with anyio.CancelScope(shield=True):
            await response.aclose()


async def _relay(response: StreamingResponse, send: Send) -> None:
    await send(
        {
            "type": "http.response.start",
            "status": response.status,
            "headers": _encode_headers(response.headers, response.content_type),
        }
    )

    try:
        async for chunk in response.chunks:
            if chunk:
                await send({"type": "http.response.body", "body": chunk, "more_body": True})
    except httpx.HTTPError as exc:
        # Headers are already out; leave the body unterminated so the
        # client sees a truncated response rather than a complete one.
        logger.warning("upstream stream broke mid-response: %s", exc)
        return
    except Exception:
        logger.exception("relaying upstream response failed mid-response")
        return

    await send({"type": "http.response.body", "body": b"", "more_body": False})
