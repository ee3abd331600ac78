"""
Query Agent - translates plain-language Jira requests into JQL.

Stored examples closest to the request are always included in the prompt
as few-shot guidance; the model is called for every request.
"""

import re
from typing import List

from bizdata_mcp.agents.base_agent import BaseAgent
from bizdata_mcp.agents.example_store import Example, ExampleStore
from bizdata_mcp.errors import InvalidInputError, ParseError
from bizdata_mcp.llm.client import CompletionClient
from bizdata_mcp.llm.prompts import SYSTEM_PROMPT_FOR_JQL

FEW_SHOT_LIMIT = 5

FENCED_QUERY = re.compile(r"```(?:jql|sql)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
QUERY_LABEL = re.compile(r"^(?:jql|query)\s*:\s*", re.IGNORECASE)


def build_jql_prompt(project: str, examples: List[Example]) -> str:
    """Assemble the translation system prompt with few-shot examples."""
    prompt = SYSTEM_PROMPT_FOR_JQL.format(project=project)
    if not examples:
        return prompt

    blocks = [f"User: {example.prompt}\nQuery: {example.jql}" for example in examples]
    return prompt + "\nExamples:\n\n" + "\n\n".join(blocks)


def clean_query(raw: str) -> str:
    """Strip code fences and a leading label from a model-produced query."""
    text = (raw or "").strip()
    match = FENCED_QUERY.search(text)
    if match:
        text = match.group(1).strip()
    text = QUERY_LABEL.sub("", text)
    return text.strip().strip("`").strip()


class QueryAgent(BaseAgent):
    """Query Agent for natural-language Jira search."""

    def __init__(
        self,
        client: CompletionClient,
        store: ExampleStore,
        default_project: str = "SCRUM",
    ):
        """
        Initialize the Query Agent.

        Args:
            client: Completion client
            store: Few-shot example store, also fed by successful searches
            default_project: Project key assumed when the user names none
        """
        super().__init__(
            name="query",
            description="Translates plain-language Jira requests into JQL",
            client=client,
            temperature=0.0,
        )
        self.store = store
        self.default_project = default_project

    async def translate(self, user_message: str) -> str:
        """
        Translate a request into a JQL query.

        Args:
            user_message: The request in plain words

        Returns:
            The JQL query text (syntax is not validated)

        Raises:
            InvalidInputError: The request is empty
            ParseError: The model returned nothing usable
        """
        if not isinstance(user_message, str) or not user_message.strip():
            raise InvalidInputError("Search query must be a non-empty string")

        examples = self.store.get_similar_examples(user_message, limit=FEW_SHOT_LIMIT)
        self.log(f"Translating '{user_message}' with {len(examples)} examples")

        raw = await self.call_llm(build_jql_prompt(self.default_project, examples), user_message)
        jql = clean_query(raw)
        if not jql:
            raise ParseError("The model returned an empty query", details=raw)

        self.log(f"JQL: {jql}")
        return jql

    def remember(self, user_message: str, jql: str) -> bool:
        """Save a translation that produced a successful search."""
        return self.store.add_example(user_message, jql)
