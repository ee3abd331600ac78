"""LLM-backed agents: tool routing and Jira query translation."""

from bizdata_mcp.agents.base_agent import BaseAgent
from bizdata_mcp.agents.example_store import Example, ExampleStore, similarity
from bizdata_mcp.agents.query_agent import QueryAgent
from bizdata_mcp.agents.router_agent import RouterAgent, ToolDecision, parse_decision

__all__ = [
    "BaseAgent",
    "Example",
    "ExampleStore",
    "QueryAgent",
    "RouterAgent",
    "ToolDecision",
    "parse_decision",
    "similarity",
]
