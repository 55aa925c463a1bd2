"""ASGI response that runs one delivery straight onto the connection.

Response headers are held back until the first media byte is ready, so
a delivery that fails before streaming still yields a proper JSON error
with a 500 status.  A concurrent listener turns ``http.disconnect`` into
the delivery's cancel signal.
"""

from __future__ import annotations

import asyncio
import logging
import typing

from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from ytd_stream.api.errors import error_response
from ytd_stream.core.models import DeliverySelection
from ytd_stream.exceptions import YtdStreamError
from ytd_stream.infra.delivery import DeliveryEngine

logger = logging.getLogger(__name__)


class StreamAbortedError(RuntimeError):
    """A delivery failed after the response headers were sent.

    Not a :class:`YtdStreamError`, so no exception handler claims it;
    the server drops the connection.
    """


class AsgiSink:
    """:class:`~ytd_stream.core.protocols.ResponseSink` over ASGI ``send``."""

    def __init__(
        self,
        scope: Scope,
        receive: Receive,
        send: Send,
        *,
        status_code: int,
        raw_headers: list[tuple[bytes, bytes]],
    ) -> None:
        self._scope = scope
        self._receive = receive
        self._send = send
        self._status_code = status_code
        self._raw_headers = raw_headers
        self.started = False
        self.aborted: YtdStreamError | None = None

    async def _start(self) -> None:
        if not self.started:
            self.started = True
            await self._send(
                {
                    "type": "http.response.start",
                    "status": self._status_code,
                    "headers": self._raw_headers,
                }
            )

    async def write(self, chunk: bytes) -> None:
        await self._start()
        await self._send({"type": "http.response.body", "body": chunk, "more_body": True})

    async def finish(self) -> None:
        await self._start()
        await self._send({"type": "http.response.body", "body": b"", "more_body": False})

    async def fail(self, error: YtdStreamError) -> None:
        response = error_response(error)
        await response(self._scope, self._receive, self._send)

    async def abort(self, error: YtdStreamError) -> None:
        self.aborted = error


class DeliveryResponse(Response):
    """Streams a :class:`DeliverySelection` through a :class:`DeliveryEngine`."""

    def __init__(
        self,
        engine: DeliveryEngine,
        selection: DeliverySelection,
        *,
        headers: typing.Mapping[str, str] | None = None,
        media_type: str = "video/mp4",
    ) -> None:
        self.engine = engine
        self.selection = selection
        self.status_code = 200
        self.media_type = media_type
        self.background = None
        self.init_headers(headers)

    @staticmethod
    async def listen_for_disconnect(receive: Receive, cancel: asyncio.Event) -> None:
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                logger.debug("Client disconnected")
                cancel.set()
                return

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        sink = AsgiSink(
            scope,
            receive,
            send,
            status_code=self.status_code,
            raw_headers=self.raw_headers,
        )
        cancel = asyncio.Event()
        listener = asyncio.create_task(self.listen_for_disconnect(receive, cancel))
        try:
            await self.engine.deliver(self.selection, sink, cancel)
        finally:
            listener.cancel()
            await asyncio.gather(listener, return_exceptions=True)

        if sink.aborted is not None:
            raise StreamAbortedError(sink.aborted.message) from sink.aborted
