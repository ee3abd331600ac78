"""Shared fixtures: a scripted completion client, a recording channel, temp storage."""

from typing import Any, Dict, List, Optional

import anyio
import httpx
import pytest

from bizdata_mcp.config import Settings
from bizdata_mcp.context import AppContext, set_app_context
from bizdata_mcp.data import Database, JiraClient, ProductCatalog
from bizdata_mcp.data.database_setup import setup_database
from bizdata_mcp.llm.client import CompletionClient
from bizdata_mcp.rendering.channel import ResponseChannel


class FakeCompletionClient(CompletionClient):
    """
    Completion client that replays scripted answers.

    ``responses`` are consumed one per request attempt; an exception item is
    raised instead of returned. Every streaming call yields ``stream_chunks``
    (or raises ``stream_error`` before the first chunk).
    """

    provider = "fake"

    def __init__(
        self,
        responses: Optional[List[Any]] = None,
        stream_chunks: Optional[List[str]] = None,
        stream_error: Optional[Exception] = None,
        **kwargs: Any,
    ):
        kwargs.setdefault("retry_delay", 0)
        super().__init__(**kwargs)
        self.responses = list(responses or [])
        self.stream_chunks = list(stream_chunks or [])
        self.stream_error = stream_error
        self.calls: List[dict] = []
        self.stream_calls: List[dict] = []

    def ensure_configured(self) -> None:
        pass

    async def _request(self, messages, temperature, json_mode):
        self.calls.append({
            "system": messages[0]["content"],
            "user": [m["content"] for m in messages[1:]],
            "temperature": temperature,
            "json_mode": json_mode,
        })
        if not self.responses:
            raise AssertionError("unexpected completion call")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def _stream(self, messages, temperature):
        self.stream_calls.append({
            "system": messages[0]["content"],
            "user": [m["content"] for m in messages[1:]],
        })
        if self.stream_error is not None:
            raise self.stream_error
        for chunk in self.stream_chunks:
            yield chunk


class RecordingChannel(ResponseChannel):
    """Response channel that records everything; optionally 'disconnects'."""

    def __init__(self, close_after: Optional[int] = None):
        self.chunks: List[str] = []
        self.json_body: Any = None
        self.text_body: Optional[str] = None
        self.status: Optional[int] = None
        self.stream_starts = 0
        self.ended = False
        self.close_after = close_after
        self._closed = False

    @property
    def headers_sent(self) -> bool:
        return self.stream_starts > 0 or self.status is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def body(self) -> str:
        return "".join(self.chunks)

    async def start_stream(self) -> None:
        if self.stream_starts == 0 and self.status is None:
            self.stream_starts = 1

    async def write(self, chunk: str) -> bool:
        if self._closed:
            return False
        await self.start_stream()
        self.chunks.append(chunk)
        if self.close_after is not None and len(self.chunks) >= self.close_after:
            self._closed = True
        return True

    async def send_json(self, payload: Any, status: int = 200) -> None:
        self.json_body = payload
        self.status = status

    async def send_text(self, text: str, status: int = 200) -> None:
        self.text_body = text
        self.status = status

    async def end(self) -> None:
        self.ended = True


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at temporary storage, with no pacing delay."""
    return Settings(
        database_path=str(tmp_path / "bizdata.db"),
        examples_path=str(tmp_path / "jql-examples.json"),
        jira_api_url="https://jira.example.com/rest/api/3/",
        jira_base_url="https://jira.example.com",
        jira_username="bot@example.com",
        jira_api_token="token",
        text_chunk_delay=0,
    )


@pytest.fixture
def sample_db(settings) -> str:
    """Create the sample database and return its path."""
    assert setup_database(settings.database_path)
    return settings.database_path


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


def mock_http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def build_context(
    settings: Settings,
    client: CompletionClient,
    jira_handler=None,
    products_handler=None,
) -> AppContext:
    """Wire a full context around a fake model and mocked HTTP collaborators."""
    jira = JiraClient(settings, http_client=mock_http(jira_handler)) if jira_handler else None
    products = None
    if products_handler:
        products = ProductCatalog(settings.product_api_url, http_client=mock_http(products_handler))
    return AppContext.create(
        settings=settings,
        client=client,
        db=Database(settings.database_path, retry_delay=0),
        jira=jira,
        products=products,
    )


@pytest.fixture
def use_context():
    """Install contexts as the process-wide one; restored afterwards."""
    def install(context: AppContext) -> AppContext:
        set_app_context(context)
        return context

    yield install
    set_app_context(None)


JIRA_ISSUE = {
    "id": "10012",
    "key": "SCRUM-12",
    "fields": {
        "summary": "Fix login timeout",
        "issuetype": {"name": "Bug"},
        "status": {"name": "In Progress"},
        "assignee": {"displayName": "Asha Verma"},
        "fixVersions": [{"name": "1.2.0"}],
        "customfield_10020": [{"name": "Sprint 7", "state": "active"}],
        "customfield_10016": 3,
        "customfield_10021": [{"value": "Impediment"}],
        "parent": {"key": "SCRUM-1", "fields": {"issuetype": {"name": "Epic"}}},
        "subtasks": [{}, {}],
        "created": "2024-05-01T10:00:00.000+0000",
        "updated": "2024-05-02T10:00:00.000+0000",
    },
}


class EventStreamReader:
    """
    Drive a streaming GET through an ASGI app and read its SSE events as they arrive.

    Run ``run`` in a task group; ``disconnect`` makes the client go away.
    """

    def __init__(self, app, path: str):
        self.app = app
        self.path = path
        self.status: Optional[int] = None
        self._gone = anyio.Event()
        self._outbox, self._inbox = anyio.create_memory_object_stream(100)
        self._buffer = ""

    def scope(self) -> dict:
        return {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": self.path,
            "raw_path": self.path.encode(),
            "root_path": "",
            "query_string": b"",
            "headers": [(b"host", b"testserver"), (b"accept", b"text/event-stream")],
            "server": ("testserver", 80),
            "client": ("testclient", 50000),
        }

    async def run(self) -> None:
        await self.app(self.scope(), self._receive, self._outbox.send)

    def disconnect(self) -> None:
        self._gone.set()

    async def _receive(self) -> dict:
        await self._gone.wait()
        return {"type": "http.disconnect"}

    async def next_event(self) -> Dict[str, str]:
        """The next event carrying data, as its field/value pairs."""
        while True:
            while "\n\n" not in self._buffer:
                message = await self._inbox.receive()
                if message["type"] == "http.response.start":
                    self.status = message["status"]
                elif message["type"] == "http.response.body":
                    self._buffer += message.get("body", b"").decode().replace("\r\n", "\n")
            raw, self._buffer = self._buffer.split("\n\n", 1)
            event = {}
            for line in raw.split("\n"):
                name, _, value = line.partition(": ")
                if name:
                    event[name] = value
            if "data" in event:
                return event


def post_scope(path: str = "/messages") -> dict:
    """ASGI scope of a JSON POST."""
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [(b"host", b"testserver"), (b"content-type", b"application/json")],
        "server": ("testserver", 80),
        "client": ("testclient", 50000),
    }
