"""Local completion backend: an Ollama server reached over HTTP."""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from bizdata_mcp.config import DEFAULT_OLLAMA_URL, REQUEST_TIMEOUT_SECONDS
from bizdata_mcp.errors import ConfigurationError, TransientUpstreamError, UpstreamError
from bizdata_mcp.llm.client import ChatMessage, CompletionClient

logger = logging.getLogger(__name__)


class OllamaCompletionClient(CompletionClient):
    """
    Completion client for a local Ollama ``/api/chat`` endpoint.

    Streaming responses arrive as newline-delimited JSON objects, each
    carrying ``message.content`` and a final one with ``done: true``.
    """

    provider = "ollama"

    def __init__(
        self,
        base_url: str = DEFAULT_OLLAMA_URL,
        model: str = "mistral",
        http_client: Optional[httpx.AsyncClient] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.base_url = base_url
        self.model = model
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS)
        return self._client

    @property
    def tags_url(self) -> str:
        if self.base_url.endswith("/api/chat"):
            return self.base_url[: -len("/api/chat")] + "/api/tags"
        return self.base_url.rstrip("/") + "/api/tags"

    def ensure_configured(self) -> None:
        if not self.base_url:
            raise ConfigurationError("Local model endpoint is not configured", details="Set OLLAMA_API_URL")
        if not self.model:
            raise ConfigurationError("No local model configured", details="Set LOCAL_MODEL")

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def check_health(self) -> bool:
        """Return True when the Ollama server answers its model listing."""
        try:
            response = await self.client.get(self.tags_url)
        except httpx.TransportError as exc:
            logger.info("Local model server unreachable at %s: %s", self.tags_url, exc)
            return False
        return response.status_code == 200

    def _payload(
        self, messages: List[ChatMessage], temperature: float, json_mode: bool, stream: bool
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "stream": stream,
            "options": {"temperature": temperature},
        }
        if json_mode:
            payload["format"] = "json"
        return payload

    async def _request(
        self, messages: List[ChatMessage], temperature: float, json_mode: bool
    ) -> str:
        payload = self._payload(messages, temperature, json_mode, stream=False)
        try:
            response = await self.client.post(self.base_url, json=payload)
        except httpx.TransportError as exc:
            raise TransientUpstreamError("Local model request failed", details=str(exc)) from exc

        _raise_for_status(response)

        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise TransientUpstreamError("Malformed response from local model", details=str(exc)) from exc

        content = (data.get("message") or {}).get("content")
        if not content:
            raise UpstreamError("Empty response from local model")
        return content

    async def _stream(
        self, messages: List[ChatMessage], temperature: float
    ) -> AsyncIterator[str]:
        payload = self._payload(messages, temperature, json_mode=False, stream=True)
        request = self.client.build_request("POST", self.base_url, json=payload)
        try:
            response = await self.client.send(request, stream=True)
        except httpx.TransportError as exc:
            raise TransientUpstreamError("Local model stream failed", details=str(exc)) from exc

        try:
            if response.status_code >= 400:
                await response.aread()
                _raise_for_status(response)

            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Skipping undecodable stream line: %r", line[:200])
                    continue
                content = (data.get("message") or {}).get("content") or ""
                if content:
                    yield content
                if data.get("done"):
                    return
        except httpx.TransportError as exc:
            raise TransientUpstreamError("Local model stream interrupted", details=str(exc)) from exc
        finally:
            await response.aclose()


def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code == 429:
        raise TransientUpstreamError("Local model is rate limited", details="HTTP 429")
    if response.status_code >= 400:
        raise UpstreamError(
            f"Local model returned HTTP {response.status_code}",
            details=response.text[:500],
        )
