"""
Renderer - turns raw tool results into the requested presentation.

Text and table formats are streamed to the client as the model produces
them. Chart formats are produced in one call and sent as a JSON body.
"""

import asyncio
import logging
import re
from typing import Any, List

from bizdata_mcp.errors import BizDataError, ParseError
from bizdata_mcp.llm.client import CompletionClient
from bizdata_mcp.llm.prompts import SYSTEM_PROMPT_FOR_CHART
from bizdata_mcp.rendering.channel import ResponseChannel
from bizdata_mcp.rendering.formats import ChartSpec, DataFormat, RenderRequest

logger = logging.getLogger(__name__)

WORDS_PER_CHUNK = 3
WORD_WITH_SPACE = re.compile(r"\S+\s*")


def chunk_words(text: str, size: int = WORDS_PER_CHUNK) -> List[str]:
    """Split text into chunks of ``size`` words, keeping the original spacing."""
    words = WORD_WITH_SPACE.findall(text or "")
    return ["".join(words[i:i + size]) for i in range(0, len(words), size)]


class Renderer:
    """Streams rendered results into a response channel."""

    def __init__(self, client: CompletionClient, text_chunk_delay: float = 0.1):
        """
        Initialize the renderer.

        Args:
            client: Completion client used for conversion
            text_chunk_delay: Pause between chunks in ``stream_text``
        """
        self.client = client
        self.text_chunk_delay = text_chunk_delay

    async def render(self, request: RenderRequest, channel: ResponseChannel) -> None:
        """
        Render a result into the channel. Never raises.

        Args:
            request: Data, prompts and target format
            channel: Live response to write into
        """
        try:
            if isinstance(request.data_format, DataFormat) and request.data_format.is_chart:
                await self._render_chart(request, channel)
            else:
                await self._render_text(request, channel)
        except Exception as exc:
            logger.exception("Rendering failed: %s", exc)
            await self.fail(channel, exc)

    async def stream_text(self, text: str, channel: ResponseChannel) -> None:
        """Stream a ready-made text in small paced chunks."""
        await channel.start_stream()
        chunks = chunk_words(text)
        for index, chunk in enumerate(chunks):
            if not await channel.write(chunk):
                logger.info("Client disconnected after %d of %d chunks", index, len(chunks))
                return
            if self.text_chunk_delay and index < len(chunks) - 1:
                await asyncio.sleep(self.text_chunk_delay)
        await channel.end()

    async def fail(self, channel: ResponseChannel, exc: Exception) -> None:
        """Report an error in whatever way the channel still allows."""
        if not channel.headers_sent:
            if isinstance(exc, BizDataError):
                payload = exc.to_dict()
            else:
                payload = {"type": "error", "message": str(exc) or exc.__class__.__name__}
            await channel.send_json(payload, 500)
        else:
            await channel.end()

    async def _render_text(self, request: RenderRequest, channel: ResponseChannel) -> None:
        stream = self.client.complete_streaming(
            request.system_prompt,
            [request.input_text(), request.user_prompt],
            temperature=0.0,
        )
        try:
            # Setup errors surface here, before any byte reaches the client
            try:
                first = await stream.__anext__()
            except StopAsyncIteration:
                first = None

            await channel.start_stream()
            if request.prefix_message and not await channel.write(request.prefix_message + "\n\n"):
                return
            if first is not None:
                if not await channel.write(first):
                    return
                async for delta in stream:
                    if not await channel.write(delta):
                        logger.info("Client disconnected, stopping stream")
                        return
            await channel.end()
        finally:
            await stream.aclose()

    async def _render_chart(self, request: RenderRequest, channel: ResponseChannel) -> None:
        fmt: Any = request.data_format
        body = await self.client.complete(
            SYSTEM_PROMPT_FOR_CHART,
            [request.input_text(), f"{request.user_prompt}\nPreferred chart type: {fmt.value}"],
            temperature=0.0,
            json_mode=True,
        )
        try:
            ChartSpec.parse(body)
        except ParseError as exc:
            logger.warning("Chart response has an unexpected shape: %s", exc)
        await channel.send_json(body, 200)
