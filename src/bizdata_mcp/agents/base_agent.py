"""
Base Agent class for the LLM-backed agents.

All agents inherit from this class to get a shared completion client and
the per-agent log buffer.
"""

import logging
from abc import ABC
from collections import deque
from typing import Deque, List

from bizdata_mcp.llm.client import CompletionClient

MAX_LOG_ENTRIES = 500


class BaseAgent(ABC):
    """
    Base class for all agents in the system.

    Provides:
    - Completion client access with the agent's default temperature
    - Logging utilities (in-memory buffer plus the module logger)
    """

    def __init__(
        self,
        name: str,
        description: str,
        client: CompletionClient,
        temperature: float = 0.0,
    ):
        """
        Initialize the base agent.

        Args:
            name: Unique agent name
            description: Human-readable description
            client: Completion client used for every model call
            temperature: Sampling temperature for this agent's calls
        """
        self.name = name
        self.description = description
        self.client = client
        self.temperature = temperature
        self._logs: Deque[str] = deque(maxlen=MAX_LOG_ENTRIES)
        self._logger = logging.getLogger(f"bizdata_mcp.agents.{name}")

    def log(self, message: str, level: int = logging.INFO) -> None:
        """Add a log entry."""
        self._logs.append(f"[{self.name}] {message}")
        self._logger.log(level, message)

    def get_logs(self) -> List[str]:
        """Get all log entries."""
        return list(self._logs)

    def clear_logs(self) -> None:
        """Clear log entries."""
        self._logs.clear()

    async def call_llm(
        self, system_prompt: str, user_message: str, json_mode: bool = False
    ) -> str:
        """
        Call the LLM with a system prompt and user message.

        Args:
            system_prompt: System prompt for the LLM
            user_message: User message to process
            json_mode: Force a JSON object response

        Returns:
            LLM response text
        """
        return await self.client.complete(
            system_prompt,
            user_message,
            temperature=self.temperature,
            json_mode=json_mode,
        )
