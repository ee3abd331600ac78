"""
SSE sessions on top of the MCP SSE transport.

``SseServerTransport`` owns the protocol side: it opens the event stream,
announces the POST endpoint and routes JSON-RPC posts to the session's
server loop. The registry adds what the HTTP app needs on top: knowing
which sessions are connected, in what order, so a post naming an unknown
session can fall back to the most recent one.
"""

import logging
import re
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional, Tuple

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp.server.fastmcp import FastMCP
from mcp.server.lowlevel import Server
from mcp.server.sse import SseServerTransport
from mcp.shared.message import SessionMessage
from starlette.types import Message, Receive, Scope, Send

from bizdata_mcp.context import AppContext

logger = logging.getLogger(__name__)

# The transport's first event carries the POST URI ending in ?session_id=<hex>
ENDPOINT_SESSION_ID = re.compile(rb"session_id=([0-9a-f]{32})")
ANNOUNCE_TIMEOUT_SECONDS = 10.0

SessionStreams = Tuple[
    MemoryObjectReceiveStream[Any],
    MemoryObjectSendStream[SessionMessage],
]


@dataclass
class Session:
    id: str
    connected_at: float = field(default_factory=time.time)


def build_session_server(app: FastMCP, context: AppContext) -> Server:
    """
    Protocol server for SSE sessions, backed by the tools registered on ``app``.

    Every session runs inside ``context.session()``, so tools called through
    it see the HTTP app's context rather than the process-wide one.
    """

    @asynccontextmanager
    async def lifespan(_: Server) -> AsyncIterator[AppContext]:
        async with context.session():
            yield context

    server: Server = Server(app.name, instructions=app.instructions, lifespan=lifespan)

    @server.list_tools()
    async def list_tools():
        return await app.list_tools()

    # Arguments are validated by the tool's own signature
    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: Dict[str, Any]):
        return await app.call_tool(name, arguments)

    return server


class SessionRegistry:
    """Connected sessions by id, remembering connection order."""

    def __init__(self, messages_endpoint: str = "/messages"):
        self.transport = SseServerTransport(messages_endpoint)
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def latest(self) -> Optional[Session]:
        if not self._sessions:
            return None
        return next(reversed(self._sessions.values()))

    def resolve(self, session_id: Optional[str]) -> Optional[Session]:
        """The named session, else the most recently connected one."""
        session = self.get(session_id)
        if session is None and session_id:
            logger.warning("Unknown session %s, falling back to the latest session", session_id)
        return session or self.latest()

    @asynccontextmanager
    async def connect(
        self, scope: Scope, receive: Receive, send: Send
    ) -> AsyncIterator[Tuple[Session, SessionStreams]]:
        """
        Open the event stream for one client and register its session.

        Yields the session and the (read, write) streams of its server loop.
        The session is forgotten when the client disconnects.
        """
        announced = anyio.Event()
        found: Dict[str, str] = {}

        async def watch(message: Message) -> None:
            if not announced.is_set() and message["type"] == "http.response.body":
                match = ENDPOINT_SESSION_ID.search(message.get("body", b""))
                if match:
                    found["id"] = match.group(1).decode()
                    announced.set()
            await send(message)

        async with self.transport.connect_sse(scope, receive, watch) as streams:
            with anyio.fail_after(ANNOUNCE_TIMEOUT_SECONDS):
                await announced.wait()

            session = Session(id=found["id"])
            self._sessions[session.id] = session
            logger.info("Session %s connected (%d active)", session.id, len(self._sessions))
            try:
                yield session, streams
            finally:
                self._sessions.pop(session.id, None)
                logger.info("Session %s disconnected (%d active)", session.id, len(self._sessions))

    async def post(self, session: Session, scope: Scope, body: bytes, send: Send) -> None:
        """Hand a JSON-RPC body to the transport, addressed to ``session``."""
        scope = dict(scope)
        scope["query_string"] = f"session_id={session.id}".encode()
        delivered = False

        async def receive() -> Message:
            nonlocal delivered
            if delivered:
                return {"type": "http.disconnect"}
            delivered = True
            return {"type": "http.request", "body": body, "more_body": False}

        await self.transport.handle_post_message(scope, receive, send)
