"""Remote completion backend: OpenAI chat models through LangChain."""

import logging
from typing import Any, AsyncIterator, List, Optional

import openai
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from bizdata_mcp.config import REQUEST_TIMEOUT_SECONDS
from bizdata_mcp.errors import ConfigurationError, TransientUpstreamError, UpstreamError
from bizdata_mcp.llm.client import ChatMessage, CompletionClient

logger = logging.getLogger(__name__)


class OpenAICompletionClient(CompletionClient):
    """
    Completion client for the hosted OpenAI API.

    The underlying ``ChatOpenAI`` is created with ``max_retries=0`` so the
    retry bound of ``CompletionClient`` is the only one in effect.
    """

    provider = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o-mini",
        llm: Optional[Any] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model = model
        self._llm = llm

    @property
    def llm(self) -> Any:
        if self._llm is None:
            self._llm = ChatOpenAI(
                model=self.model,
                api_key=self.api_key,
                timeout=REQUEST_TIMEOUT_SECONDS,
                max_retries=0,
            )
        return self._llm

    def ensure_configured(self) -> None:
        if not self.api_key:
            raise ConfigurationError(
                "OpenAI API key is not configured",
                details="Set LLM_API_KEY or OPENAI_API_KEY in your .env file",
            )
        if not self.model:
            raise ConfigurationError("No OpenAI model configured", details="Set LLM_MODEL")

    async def _request(
        self, messages: List[ChatMessage], temperature: float, json_mode: bool
    ) -> str:
        options = {"temperature": temperature}
        if json_mode:
            options["response_format"] = {"type": "json_object"}

        try:
            response = await self.llm.bind(**options).ainvoke(_to_langchain(messages))
        except (openai.APIConnectionError, openai.RateLimitError) as exc:
            raise TransientUpstreamError("OpenAI request failed", details=str(exc)) from exc
        except openai.APIError as exc:
            raise UpstreamError("OpenAI rejected the request", details=str(exc)) from exc

        content = _content_text(response.content)
        if not content:
            raise UpstreamError("Empty response from OpenAI API")
        return content

    async def _stream(
        self, messages: List[ChatMessage], temperature: float
    ) -> AsyncIterator[str]:
        try:
            async for chunk in self.llm.bind(temperature=temperature).astream(
                _to_langchain(messages)
            ):
                text = _content_text(chunk.content)
                if text:
                    yield text
        except (openai.APIConnectionError, openai.RateLimitError) as exc:
            raise TransientUpstreamError("OpenAI stream failed", details=str(exc)) from exc
        except openai.APIError as exc:
            raise UpstreamError("OpenAI rejected the stream", details=str(exc)) from exc


def _to_langchain(messages: List[ChatMessage]) -> List[BaseMessage]:
    converted: List[BaseMessage] = []
    for message in messages:
        if message["role"] == "system":
            converted.append(SystemMessage(content=message["content"]))
        else:
            converted.append(HumanMessage(content=message["content"]))
    return converted


def _content_text(content: Any) -> str:
    """LangChain content is either a string or a list of typed parts."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, dict):
                parts.append(str(item.get("text", "")))
            else:
                parts.append(str(item))
        return "".join(parts)
    return str(content or "")
