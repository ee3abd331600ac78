"""
Router Agent - maps a free-form message to one tool call.

The Router Agent is the entry point for user messages. It:
1. Asks the model for a tool decision in JSON mode
2. Recovers the decision from whatever the model actually returned
3. Normalises the decision so the dispatcher can trust its shape
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from bizdata_mcp.agents.base_agent import BaseAgent
from bizdata_mcp.errors import InvalidInputError, ParseError
from bizdata_mcp.llm.client import CompletionClient
from bizdata_mcp.llm.prompts import SYSTEM_PROMPT_FOR_TOOL
from bizdata_mcp.rendering.formats import DataFormat

FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```", re.IGNORECASE)

PARSED_DIRECT = "direct"
PARSED_FENCED = "fenced"
PARSED_FALLBACK = "fallback"


@dataclass
class ToolDecision:
    """The router's choice of tool, arguments and presentation format."""

    tool: Optional[str]
    parameters: Dict[str, Any] = field(default_factory=dict)
    requested_format: DataFormat = DataFormat.MARKDOWN_TABLE
    response_text: Optional[str] = None
    parse_outcome: str = PARSED_DIRECT

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], parse_outcome: str = PARSED_DIRECT) -> "ToolDecision":
        tool = payload.get("tool")
        if not isinstance(tool, str) or not tool.strip():
            tool = None
        else:
            tool = tool.strip()

        parameters = payload.get("parameters")
        if not isinstance(parameters, dict):
            parameters = {}

        fmt = payload.get("requested_format", payload.get("format"))

        response_text = payload.get("response_text")
        if response_text is not None and not isinstance(response_text, str):
            response_text = json.dumps(response_text, default=str)

        return cls(
            tool=tool,
            parameters=parameters,
            requested_format=DataFormat.parse(fmt),
            response_text=response_text or None,
            parse_outcome=parse_outcome,
        )


def _load_object(text: str) -> Dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError("Not valid JSON", details=str(exc)) from exc
    if not isinstance(data, dict):
        raise ParseError("JSON is not an object")
    return data


def parse_decision(raw: str) -> ToolDecision:
    """
    Recover a tool decision from raw model output.

    Tries, in order: the whole text as JSON, a JSON object inside a fenced
    code block, and finally treats the text itself as the answer.
    Never raises.
    """
    text = (raw or "").strip()

    try:
        return ToolDecision.from_payload(_load_object(text), PARSED_DIRECT)
    except ParseError:
        pass

    match = FENCED_JSON.search(text)
    if match:
        try:
            return ToolDecision.from_payload(_load_object(match.group(1)), PARSED_FENCED)
        except ParseError:
            pass

    return ToolDecision(
        tool=None,
        parameters={},
        requested_format=DataFormat.MARKDOWN_TEXT,
        response_text=text or None,
        parse_outcome=PARSED_FALLBACK,
    )


class RouterAgent(BaseAgent):
    """
    Router Agent for turning user messages into tool decisions.

    The model's choice is not validated against intent; only its shape is
    normalised.
    """

    def __init__(self, client: CompletionClient):
        """Initialize the Router Agent."""
        super().__init__(
            name="router",
            description="Chooses the tool, arguments and format for a user message",
            client=client,
            temperature=0.0,
        )

    async def route(self, user_message: str) -> ToolDecision:
        """
        Decide which tool answers a user message.

        Args:
            user_message: The user's message text

        Returns:
            The normalised tool decision

        Raises:
            InvalidInputError: Message is empty or not a string
            ConfigurationError: No completion backend is configured
            UpstreamError: The completion call failed
        """
        if not isinstance(user_message, str) or not user_message.strip():
            raise InvalidInputError("Message must be a non-empty string")

        self.log(f"Routing message: '{user_message}'")
        raw = await self.call_llm(SYSTEM_PROMPT_FOR_TOOL, user_message, json_mode=True)
        decision = parse_decision(raw)

        self.log(
            f"Decision: tool={decision.tool} format={decision.requested_format.value} "
            f"parsed={decision.parse_outcome}"
        )
        return decision
