"""Tests for the completion clients, their retry policy and backend selection."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest
from langchain_core.messages import AIMessage, AIMessageChunk

from bizdata_mcp.config import Settings
from bizdata_mcp.errors import ConfigurationError, TransientUpstreamError, UpstreamError
from bizdata_mcp.llm import (
    HealthCheck,
    LLMProvider,
    OllamaCompletionClient,
    OpenAICompletionClient,
    create_completion_client,
    is_provider_available,
    resolve_provider,
)
from bizdata_mcp.llm.client import build_messages
from tests.conftest import FakeCompletionClient


OLLAMA_URL = "http://ollama.test/api/chat"


def ollama_client(handler) -> OllamaCompletionClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OllamaCompletionClient(base_url=OLLAMA_URL, model="mistral", http_client=http_client, retry_delay=0)


class TestRetryPolicy:

    @pytest.mark.asyncio
    async def test_transient_failures_are_bounded(self):
        client = FakeCompletionClient(responses=[TransientUpstreamError("timeout")] * 5)

        with pytest.raises(UpstreamError) as exc_info:
            await client.complete("system", "hello")

        assert len(client.calls) == 3
        assert isinstance(exc_info.value.__cause__, TransientUpstreamError)

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self):
        client = FakeCompletionClient(responses=[TransientUpstreamError("timeout"), "answer"])

        assert await client.complete("system", "hello") == "answer"
        assert len(client.calls) == 2

    @pytest.mark.asyncio
    async def test_non_transient_failure_is_not_retried(self):
        client = FakeCompletionClient(responses=[UpstreamError("bad request"), "never"])

        with pytest.raises(UpstreamError, match="bad request"):
            await client.complete("system", "hello")

        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_backoff_grows_linearly(self):
        client = FakeCompletionClient(responses=[TransientUpstreamError("x")] * 3, retry_delay=1.0)

        with patch("bizdata_mcp.llm.client.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(UpstreamError):
                await client.complete("system", "hello")

        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_messages_are_sent_in_order(self):
        client = FakeCompletionClient(responses=["ok"])

        await client.complete("system", ["first", "second"], temperature=0.7, json_mode=True)

        call = client.calls[0]
        assert call["system"] == "system"
        assert call["user"] == ["first", "second"]
        assert call["temperature"] == 0.7
        assert call["json_mode"] is True

    def test_build_messages_accepts_a_single_string(self):
        assert build_messages("sys", "hi") == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "hi"},
        ]

    @pytest.mark.asyncio
    async def test_streaming_setup_error_propagates(self):
        client = FakeCompletionClient(stream_error=UpstreamError("refused"))

        with pytest.raises(UpstreamError, match="refused"):
            async for _ in client.complete_streaming("system", "hello"):
                pass

    @pytest.mark.asyncio
    async def test_streaming_yields_deltas(self):
        client = FakeCompletionClient(stream_chunks=["Hel", "lo"])

        deltas = [d async for d in client.complete_streaming("system", "hello")]

        assert deltas == ["Hel", "lo"]


class TestOllamaClient:

    @pytest.mark.asyncio
    async def test_complete_returns_message_content(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"message": {"role": "assistant", "content": "hi there"}})

        client = ollama_client(handler)
        assert await client.complete("system", "hello", json_mode=True) == "hi there"

        payload = seen[0]
        assert payload["model"] == "mistral"
        assert payload["stream"] is False
        assert payload["format"] == "json"
        assert payload["messages"][0] == {"role": "system", "content": "system"}

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        responses = [httpx.Response(429), httpx.Response(200, json={"message": {"content": "ok"}})]

        client = ollama_client(lambda request: responses.pop(0))

        assert await client.complete("system", "hello") == "ok"

    @pytest.mark.asyncio
    async def test_server_error_fails_immediately(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, text="model not loaded")

        client = ollama_client(handler)
        with pytest.raises(UpstreamError, match="HTTP 500"):
            await client.complete("system", "hello")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_connection_errors_exhaust_attempts(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = ollama_client(handler)
        with pytest.raises(UpstreamError):
            await client.complete("system", "hello")
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_empty_content_is_an_error(self):
        client = ollama_client(lambda request: httpx.Response(200, json={"message": {"content": ""}}))

        with pytest.raises(UpstreamError, match="Empty response"):
            await client.complete("system", "hello")

    @pytest.mark.asyncio
    async def test_streaming_reads_ndjson_until_done(self):
        lines = [
            {"message": {"content": "Hel"}, "done": False},
            {"message": {"content": ""}, "done": False},
            {"message": {"content": "lo"}, "done": False},
            {"message": {"content": ""}, "done": True},
            {"message": {"content": "ignored"}, "done": False},
        ]
        body = "\n".join(json.dumps(line) for line in lines) + "\n"

        client = ollama_client(lambda request: httpx.Response(200, content=body.encode()))

        deltas = [d async for d in client.complete_streaming("system", "hello")]
        assert deltas == ["Hel", "lo"]

    @pytest.mark.asyncio
    async def test_check_health(self):
        def handler(request):
            assert request.url.path == "/api/tags"
            return httpx.Response(200, json={"models": []})

        client = ollama_client(handler)
        assert isinstance(client, HealthCheck)
        assert await client.check_health() is True

    @pytest.mark.asyncio
    async def test_check_health_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert await ollama_client(handler).check_health() is False

    def test_tags_url_from_base(self):
        assert OllamaCompletionClient(base_url="http://localhost:11434").tags_url == "http://localhost:11434/api/tags"


class TestOpenAIClient:

    def fake_llm(self, bound):
        llm = MagicMock()
        llm.bind.return_value = bound
        return llm

    @pytest.mark.asyncio
    async def test_missing_key_is_configuration_error(self):
        client = OpenAICompletionClient(api_key=None)

        with pytest.raises(ConfigurationError):
            await client.complete("system", "hello")

    @pytest.mark.asyncio
    async def test_json_mode_binds_response_format(self):
        bound = MagicMock()
        bound.ainvoke = AsyncMock(return_value=AIMessage(content='{"tool": null}'))
        llm = self.fake_llm(bound)
        client = OpenAICompletionClient(api_key="sk-test", llm=llm, retry_delay=0)

        assert await client.complete("system", "hello", json_mode=True) == '{"tool": null}'

        llm.bind.assert_called_once_with(temperature=0.0, response_format={"type": "json_object"})
        sent = bound.ainvoke.await_args.args[0]
        assert [m.content for m in sent] == ["system", "hello"]

    @pytest.mark.asyncio
    async def test_connection_errors_are_retried(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        bound = MagicMock()
        bound.ainvoke = AsyncMock(side_effect=openai.APIConnectionError(request=request))
        client = OpenAICompletionClient(api_key="sk-test", llm=self.fake_llm(bound), retry_delay=0)

        with pytest.raises(UpstreamError):
            await client.complete("system", "hello")

        assert bound.ainvoke.await_count == 3

    @pytest.mark.asyncio
    async def test_empty_content_is_an_error(self):
        bound = MagicMock()
        bound.ainvoke = AsyncMock(return_value=AIMessage(content=""))
        client = OpenAICompletionClient(api_key="sk-test", llm=self.fake_llm(bound), retry_delay=0)

        with pytest.raises(UpstreamError, match="Empty response"):
            await client.complete("system", "hello")

    @pytest.mark.asyncio
    async def test_streaming_skips_empty_chunks(self):
        async def astream(messages):
            for text in ["Hello", "", " world"]:
                yield AIMessageChunk(content=text)

        bound = MagicMock()
        bound.astream = astream
        client = OpenAICompletionClient(api_key="sk-test", llm=self.fake_llm(bound), retry_delay=0)

        deltas = [d async for d in client.complete_streaming("system", "hello")]

        assert deltas == ["Hello", " world"]


class TestProviderSelection:

    def test_explicit_provider_wins(self):
        settings = Settings(llm_provider="openai", llm_api_key="sk-test")
        assert resolve_provider(settings, "local") is LLMProvider.OLLAMA

    def test_environment_provider(self):
        assert resolve_provider(Settings(llm_provider="ollama", llm_api_key="sk-test")) is LLMProvider.OLLAMA

    def test_key_selects_openai(self):
        assert resolve_provider(Settings(llm_provider=None, llm_api_key="sk-test")) is LLMProvider.OPENAI

    def test_no_key_selects_ollama(self):
        assert resolve_provider(Settings(llm_provider=None, llm_api_key=None)) is LLMProvider.OLLAMA

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError):
            resolve_provider(Settings(), "anthropic")

    def test_create_client(self):
        settings = Settings(llm_provider=None, llm_api_key="sk-test", llm_model="gpt-4o-mini")

        client = create_completion_client(settings)
        assert isinstance(client, OpenAICompletionClient)
        assert client.model == "gpt-4o-mini"

        local = create_completion_client(settings, LLMProvider.OLLAMA)
        assert isinstance(local, OllamaCompletionClient)
        assert local.model == settings.local_model

    @pytest.mark.asyncio
    async def test_openai_unavailable_without_key(self):
        assert await is_provider_available("openai", Settings(llm_api_key=None)) is False

    @pytest.mark.asyncio
    async def test_openai_available_with_key(self):
        assert await is_provider_available("openai", Settings(llm_api_key="sk-test")) is True

    @pytest.mark.asyncio
    async def test_ollama_availability_uses_health_check(self):
        with patch.object(OllamaCompletionClient, "check_health", new=AsyncMock(return_value=True)) as check:
            assert await is_provider_available(LLMProvider.OLLAMA, Settings()) is True
        check.assert_awaited_once()
