"""Response rendering: formats, the live response channel and the renderer."""

from bizdata_mcp.rendering.channel import QueueResponseChannel, ResponseChannel, ResponseHead
from bizdata_mcp.rendering.formats import ChartSpec, DataFormat, RenderRequest
from bizdata_mcp.rendering.renderer import Renderer

__all__ = [
    "ChartSpec",
    "DataFormat",
    "QueueResponseChannel",
    "RenderRequest",
    "Renderer",
    "ResponseChannel",
    "ResponseHead",
]
