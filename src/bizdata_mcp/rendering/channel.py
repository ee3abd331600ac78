"""
The live HTTP response a render writes into.

A channel either sends one complete body (``send_json``/``send_text``) or is
switched to streaming once (``start_stream``) and then receives chunks until
``end``. Once headers are out they never change.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional

logger = logging.getLogger(__name__)

STREAM_MEDIA_TYPE = "text/event-stream"
STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class ResponseChannel(ABC):
    """Abstract live response."""

    @property
    @abstractmethod
    def headers_sent(self) -> bool:
        """True once a one-shot body was sent or streaming started."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        """True once the client went away."""

    @abstractmethod
    async def start_stream(self) -> None:
        """Send streaming headers; a no-op when already streaming."""

    @abstractmethod
    async def write(self, chunk: str) -> bool:
        """Write one chunk. Returns False when the client is gone."""

    @abstractmethod
    async def send_json(self, payload: Any, status: int = 200) -> None:
        """Send a complete JSON body. A string payload is sent verbatim."""

    @abstractmethod
    async def send_text(self, text: str, status: int = 200) -> None:
        """Send a complete plain-text body."""

    @abstractmethod
    async def end(self) -> None:
        """Finish the response."""


@dataclass
class ResponseHead:
    """What the HTTP layer needs to start the response."""

    status: int
    media_type: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None

    @property
    def streaming(self) -> bool:
        return self.body is None


_END = object()


class QueueResponseChannel(ResponseChannel):
    """
    Channel backed by an ``asyncio.Queue``.

    The HTTP route awaits ``head`` to learn whether to answer with a one-shot
    response or a streaming one; a streaming response drains ``chunks()``.
    When the streaming generator is torn down (client disconnect or normal
    end) it closes the channel, and later writes return False.
    """

    def __init__(self):
        self.head: "asyncio.Future[ResponseHead]" = asyncio.get_running_loop().create_future()
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._headers_sent = False
        self._closed = False
        self._ended = False

    @property
    def headers_sent(self) -> bool:
        return self._headers_sent

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Mark the client as gone."""
        if not self._closed:
            self._closed = True
            logger.debug("Response channel closed")

    async def start_stream(self) -> None:
        if self._headers_sent:
            return
        self._set_head(ResponseHead(200, STREAM_MEDIA_TYPE, dict(STREAM_HEADERS)))

    async def write(self, chunk: str) -> bool:
        if self._closed or self._ended:
            return False
        if not self._headers_sent:
            await self.start_stream()
        if self.head.result().body is not None:
            return False
        self._queue.put_nowait(chunk)
        return True

    async def send_json(self, payload: Any, status: int = 200) -> None:
        body = payload if isinstance(payload, str) else json.dumps(payload, default=str)
        self._send_once(ResponseHead(status, "application/json", body=body))

    async def send_text(self, text: str, status: int = 200) -> None:
        self._send_once(ResponseHead(status, "text/plain; charset=utf-8", body=text))

    async def end(self) -> None:
        if self._ended:
            return
        self._ended = True
        if not self._headers_sent:
            self._set_head(ResponseHead(200, "text/plain; charset=utf-8", body=""))
        else:
            self._queue.put_nowait(_END)

    async def chunks(self) -> AsyncIterator[str]:
        """Drain streamed chunks until the channel ends."""
        try:
            while True:
                item = await self._queue.get()
                if item is _END:
                    break
                yield item
        finally:
            self.close()

    def _send_once(self, head: ResponseHead) -> None:
        if self._headers_sent:
            logger.warning("Response already started; dropping %s body", head.media_type)
            return
        self._set_head(head)
        self._ended = True

    def _set_head(self, head: ResponseHead) -> None:
        self._headers_sent = True
        if not self.head.done():
            self.head.set_result(head)
