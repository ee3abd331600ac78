"""
HTTP transport (FastAPI).

Endpoints:
- GET  /health            service status
- GET  /sse               connection info for SSE clients
- GET  /sse/stream        SSE stream bound to a new MCP session
- POST /messages          a ``{"message": ...}`` chat request, answered by the
                          router/dispatcher/renderer pipeline; any other body
                          is a JSON-RPC message for the session's MCP loop
"""

import asyncio
import json
import logging
import os
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

import psutil
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from mcp.server.fastmcp import FastMCP
from mcp.server.lowlevel import Server
from mcp.shared.message import SessionMessage
from mcp.types import JSONRPCMessage, JSONRPCNotification
from pydantic import ValidationError
from starlette.types import Message, Receive, Scope, Send

from bizdata_mcp.config import SERVICE_NAME, SERVICE_VERSION
from bizdata_mcp.context import AppContext, get_app_context
from bizdata_mcp.rendering.channel import QueueResponseChannel
from bizdata_mcp.server.mcp_server import mcp
from bizdata_mcp.server.sessions import SessionRegistry, build_session_server

logger = logging.getLogger(__name__)

STREAM_ENDPOINT = "/sse/stream"
MESSAGES_ENDPOINT = "/messages"


def memory_usage() -> Dict[str, Any]:
    """Current memory of this process, in bytes."""
    info = psutil.Process().memory_info()
    return {"rss": info.rss, "vms": info.vms, "pid": os.getpid()}


def connection_notification(session_id: str) -> SessionMessage:
    """The JSON-RPC notification that greets a new session."""
    notification = JSONRPCNotification(
        jsonrpc="2.0",
        method="message",
        params={
            "sessionId": session_id,
            "status": "connected",
            "type": "connection_response",
            "message": "SSE connection established",
            "connectionDetails": {
                "messagesEndpoint": f"{MESSAGES_ENDPOINT}?sessionId={session_id}",
                "service": SERVICE_NAME,
                "version": SERVICE_VERSION,
            },
        },
    )
    return SessionMessage(JSONRPCMessage(notification))


class SessionStream:
    """ASGI endpoint that runs one MCP session for the lifetime of its SSE stream."""

    def __init__(self, registry: SessionRegistry, server: Server):
        self.registry = registry
        self.server = server

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        async with self.registry.connect(scope, receive, send) as (session, streams):
            read_stream, write_stream = streams
            await write_stream.send(connection_notification(session.id))
            await self.server.run(
                read_stream, write_stream, self.server.create_initialization_options()
            )


class CapturedResponse:
    """Collects an ASGI response so a route can return it."""

    def __init__(self):
        self.status = 500
        self.headers: List[Tuple[bytes, bytes]] = []
        self.body = b""

    async def send(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status = message["status"]
            self.headers = list(message.get("headers", []))
        elif message["type"] == "http.response.body":
            self.body += message.get("body", b"")

    def response(self) -> Response:
        media_type = None
        for name, value in self.headers:
            if name.lower() == b"content-type":
                media_type = value.decode("latin-1")
        return Response(content=self.body, status_code=self.status, media_type=media_type)


def create_app(context: Optional[AppContext] = None, server: FastMCP = mcp) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        context: Application context (default: the process-wide one)
        server: MCP server whose tools are served to SSE sessions
    """
    context = context or get_app_context()
    registry = SessionRegistry(MESSAGES_ENDPOINT)
    background: Set["asyncio.Task[None]"] = set()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with app.state.context.session():
            yield

    app = FastAPI(title="BizData MCP", version=SERVICE_VERSION, lifespan=lifespan)
    app.state.context = context
    app.state.sessions = registry
    app.add_route(
        STREAM_ENDPOINT,
        SessionStream(registry, build_session_server(server, context)),
        methods=["GET"],
    )

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        ctx: AppContext = app.state.context
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "uptime": round(ctx.uptime, 3),
            "memory": memory_usage(),
            "environment": ctx.settings.environment,
        }

    @app.get("/sse")
    async def sse_info() -> Dict[str, Any]:
        return {
            "success": True,
            "message": "Connect to the stream endpoint to open a session",
            "streamEndpoint": STREAM_ENDPOINT,
            "sessionId": str(uuid.uuid4()),
        }

    @app.post(MESSAGES_ENDPOINT)
    async def messages(request: Request) -> Response:
        # sessionId is ours; session_id is what the MCP transport announces
        session_id = request.query_params.get("sessionId") or request.query_params.get("session_id")
        session = registry.resolve(session_id)
        if session is None:
            return JSONResponse({"error": "No transport found for sessionId"}, status_code=400)

        raw = await request.body()
        try:
            body = json.loads(raw)
        except ValueError:
            return JSONResponse({"error": "Request body must be JSON"}, status_code=400)

        if isinstance(body, dict) and "message" in body:
            return await answer_message(body["message"])

        try:
            JSONRPCMessage.model_validate(body)
        except ValidationError as e:
            return JSONResponse({"error": "Invalid JSON-RPC message", "details": str(e)}, status_code=400)

        reply = CapturedResponse()
        await registry.post(session, request.scope, raw, reply.send)
        return reply.response()

    async def answer_message(message: Any) -> Response:
        ctx: AppContext = app.state.context
        channel = QueueResponseChannel()
        task = asyncio.create_task(ctx.dispatcher.handle_message(message, channel))
        background.add(task)
        task.add_done_callback(_finished(background))

        await asyncio.wait({task, channel.head}, return_when=asyncio.FIRST_COMPLETED)
        if not channel.head.done():
            # The handler finished without producing anything
            await channel.end()

        head = channel.head.result()
        if not head.streaming:
            return Response(content=head.body, status_code=head.status, media_type=head.media_type)

        return StreamingResponse(
            channel.chunks(),
            status_code=head.status,
            media_type=head.media_type,
            headers=head.headers,
        )

    return app


def _finished(background: Set["asyncio.Task[None]"]):
    def callback(task: "asyncio.Task[None]") -> None:
        background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Message handler failed", exc_info=task.exception())
    return callback


def run_http_server(host: str = "0.0.0.0", port: int = 8080, log_level: str = "info"):
    """Run the HTTP transport with uvicorn."""
    import uvicorn

    uvicorn.run(create_app(), host=host, port=port, log_level=log_level)
