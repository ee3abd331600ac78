"""
Backend-agnostic chat completion client.

``CompletionClient`` owns the retry policy and the shape of requests and
responses; concrete backends only implement a single request, a single
stream, and a configuration check. Callers never see backend exceptions:
backends translate them into ``TransientUpstreamError`` (retried) or
``UpstreamError`` (raised as-is).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Protocol,
    Sequence,
    TypeVar,
    Union,
    runtime_checkable,
)

from bizdata_mcp.config import MAX_ATTEMPTS, RETRY_DELAY_SECONDS
from bizdata_mcp.errors import TransientUpstreamError, UpstreamError

logger = logging.getLogger(__name__)

ChatMessage = Dict[str, str]
T = TypeVar("T")


@runtime_checkable
class HealthCheck(Protocol):
    """Optional capability: a backend that can tell whether it is reachable."""

    async def check_health(self) -> bool:
        ...


class CompletionClient(ABC):
    """
    Base class for chat completion backends.

    Provides:
    - ``complete``: one request, one text answer
    - ``complete_streaming``: an async iterator of text deltas
    - a bounded retry loop with linearly increasing backoff shared by both
    """

    provider: str = "unknown"

    def __init__(
        self,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ):
        """
        Initialize the client.

        Args:
            max_attempts: Total attempts per call, including the first one
            retry_delay: Base delay in seconds; attempt N waits ``retry_delay * N``
        """
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    async def complete(
        self,
        system_prompt: str,
        user_messages: Union[str, Sequence[str]],
        *,
        temperature: float = 0.0,
        json_mode: bool = False,
    ) -> str:
        """
        Run a single chat completion.

        Args:
            system_prompt: System instruction for the model
            user_messages: One or more user messages, sent in order
            temperature: Sampling temperature
            json_mode: Ask the backend to force a JSON object response

        Returns:
            The model's full text answer

        Raises:
            ConfigurationError: Backend has no credential or endpoint
            UpstreamError: Retries exhausted or a non-retryable failure
        """
        self.ensure_configured()
        messages = build_messages(system_prompt, user_messages)
        return await self._with_retry(
            lambda: self._request(messages, temperature, json_mode),
            "completion",
        )

    async def complete_streaming(
        self,
        system_prompt: str,
        user_messages: Union[str, Sequence[str]],
        *,
        temperature: float = 0.0,
    ) -> AsyncIterator[str]:
        """
        Stream a chat completion as text deltas.

        Retries cover connection setup, up to and including the first delta.
        A failure after that ends the sequence early instead of raising.
        """
        self.ensure_configured()
        messages = build_messages(system_prompt, user_messages)

        async def open_stream():
            stream = self._stream(messages, temperature)
            try:
                first = await stream.__anext__()
            except StopAsyncIteration:
                return stream, None
            except BaseException:
                await stream.aclose()
                raise
            return stream, first

        stream, first = await self._with_retry(open_stream, "streaming completion")
        if first is None:
            return

        try:
            yield first
            async for delta in stream:
                yield delta
        except (TransientUpstreamError, UpstreamError) as exc:
            logger.warning("Stream from %s ended early: %s", self.provider, exc)
        finally:
            await stream.aclose()

    async def aclose(self) -> None:
        """Release network resources held by the backend."""

    @abstractmethod
    def ensure_configured(self) -> None:
        """Raise ``ConfigurationError`` if the backend cannot be called."""

    @abstractmethod
    async def _request(
        self, messages: List[ChatMessage], temperature: float, json_mode: bool
    ) -> str:
        """Perform one request and return the answer text."""

    @abstractmethod
    def _stream(
        self, messages: List[ChatMessage], temperature: float
    ) -> AsyncIterator[str]:
        """Return an async generator of non-empty text deltas."""

    async def _with_retry(self, operation: Callable[[], Awaitable[T]], label: str) -> T:
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except TransientUpstreamError as exc:
                last_error = exc
                if attempt == self.max_attempts:
                    break
                delay = self.retry_delay * attempt
                logger.warning(
                    "%s attempt %d/%d via %s failed (%s), retrying in %.1fs",
                    label, attempt, self.max_attempts, self.provider, exc, delay,
                )
                await asyncio.sleep(delay)

        raise UpstreamError(
            f"The language model {label} failed after {self.max_attempts} attempts",
            details=str(last_error),
        ) from last_error


def build_messages(
    system_prompt: str, user_messages: Union[str, Sequence[str]]
) -> List[ChatMessage]:
    """Build the role/content message list shared by every backend."""
    if isinstance(user_messages, str):
        user_messages = [user_messages]
    messages = [{"role": "system", "content": system_prompt}]
    messages.extend({"role": "user", "content": text} for text in user_messages)
    return messages
