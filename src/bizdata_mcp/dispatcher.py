"""
Dispatcher - applies a tool decision to the matching collaborator.

Every outcome, including failures, ends up as content on the response
channel; nothing raised below ``handle_message`` reaches the HTTP layer.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from bizdata_mcp.agents.query_agent import QueryAgent
from bizdata_mcp.agents.router_agent import RouterAgent, ToolDecision
from bizdata_mcp.data.applications import get_application_status
from bizdata_mcp.data.jira import JiraClient, flatten_issue, flatten_issues
from bizdata_mcp.data.repositories import require_text
from bizdata_mcp.data.results import Found, LookupResult, NotFound
from bizdata_mcp.errors import BizDataError, InvalidInputError
from bizdata_mcp.llm.prompts import (
    SYSTEM_PROMPT_FOR_ARRAY,
    SYSTEM_PROMPT_FOR_OBJECT,
    SYSTEM_PROMPT_FOR_TEXT,
)
from bizdata_mcp.rendering.channel import ResponseChannel
from bizdata_mcp.rendering.formats import DataFormat, RenderRequest
from bizdata_mcp.rendering.renderer import Renderer

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = (
    "I am trained to give info in requested format, but your request I could not process."
)

LIST = "list"
FETCH = "fetch"
SEARCH = "search"

ENTITIES = (
    ("vendors", "vendor"),
    ("users", "user"),
    ("roles", "role"),
    ("commodities", "commodity"),
    ("currencies", "currency"),
    ("products", "product"),
)


def _entity_tools() -> Dict[str, Tuple[str, str]]:
    """Map each entity tool name to its data source and lookup kind."""
    tools = {}
    for source, singular in ENTITIES:
        tools[f"get-{source}"] = (source, LIST)
        tools[f"get-{singular}-by-id"] = (source, FETCH)
        tools[f"search-{source}"] = (source, SEARCH)
    return tools


ENTITY_TOOLS = _entity_tools()

JIRA_FETCH = "get-jira-issue-by-id"
JIRA_SEARCH = "search-jira-issues"
JIRA_CREATE = "create-jira-issue"
APP_STATUS = "get-application-status"


def _param(parameters: Dict[str, Any], *names: str) -> Any:
    for name in names:
        if parameters.get(name) is not None:
            return parameters[name]
    return None


class Dispatcher:
    """Runs tool decisions and hands the results to the renderer."""

    def __init__(
        self,
        router: RouterAgent,
        renderer: Renderer,
        sources: Dict[str, Any],
        jira: JiraClient,
        query_agent: QueryAgent,
    ):
        """
        Initialize the dispatcher.

        Args:
            router: Tool router for free-form messages
            renderer: Renderer writing into the response channel
            sources: Entity name -> object with ``list``/``get_by_id``/``search``
            jira: Jira REST client
            query_agent: Natural-language to JQL translator
        """
        self.router = router
        self.renderer = renderer
        self.sources = sources
        self.jira = jira
        self.query_agent = query_agent

    async def handle_message(self, message: str, channel: ResponseChannel) -> None:
        """Route a free-form message and answer it on the channel."""
        try:
            decision = await self.router.route(message)
        except InvalidInputError as exc:
            await self.renderer.stream_text(exc.message, channel)
            return
        except Exception as exc:
            logger.exception("Routing failed for message '%s'", message)
            await self._explain_error(message, exc, channel)
            return

        await self.dispatch(decision, message, channel)

    async def dispatch(self, decision: ToolDecision, message: str, channel: ResponseChannel) -> None:
        """Apply a tool decision and answer on the channel."""
        logger.info(
            "Dispatching tool=%s params=%s format=%s",
            decision.tool, decision.parameters, decision.requested_format.value,
        )
        try:
            await self._dispatch(decision, message, channel)
        except InvalidInputError as exc:
            logger.info("Rejected parameters for %s: %s", decision.tool, exc)
            if channel.headers_sent:
                await channel.end()
            else:
                await self.renderer.stream_text(f"Invalid request: {exc}", channel)
        except Exception as exc:
            logger.exception("Tool %s failed", decision.tool)
            await self._explain_error(message, exc, channel)

    async def _dispatch(self, decision: ToolDecision, message: str, channel: ResponseChannel) -> None:
        tool = decision.tool
        params = decision.parameters

        if tool is None:
            await self.renderer.stream_text(decision.response_text or FALLBACK_MESSAGE, channel)
            return

        if tool in ENTITY_TOOLS:
            source_name, kind = ENTITY_TOOLS[tool]
            result = await self._lookup(source_name, kind, params)
            await self._render_result(result, decision, message, channel)
        elif tool == JIRA_FETCH:
            await self._jira_fetch(decision, message, channel)
        elif tool == JIRA_SEARCH:
            await self._jira_search(decision, message, channel)
        elif tool == JIRA_CREATE:
            await self._jira_create(decision, message, channel)
        elif tool == APP_STATUS:
            result = get_application_status(
                _param(params, "appName", "app_name", "app"),
                _param(params, "env", "environment"),
            )
            await self._render_result(result, decision, message, channel)
        else:
            logger.warning("Unknown tool '%s'", tool)
            await self.renderer.stream_text(FALLBACK_MESSAGE, channel)

    async def _lookup(self, source_name: str, kind: str, params: Dict[str, Any]) -> LookupResult:
        source = self.sources[source_name]
        if kind == FETCH:
            return await source.get_by_id(params.get("id"))
        if kind == SEARCH:
            return await source.search(_param(params, "query", "q"))

        skip, limit = params.get("skip"), params.get("limit")
        if source_name == "users":
            return await source.list(
                skip, limit,
                department=params.get("department"),
                role=params.get("role"),
            )
        return await source.list(skip, limit)

    async def _render_result(
        self,
        result: LookupResult,
        decision: ToolDecision,
        message: str,
        channel: ResponseChannel,
        prefix: Optional[str] = None,
    ) -> None:
        if isinstance(result, Found):
            system_prompt = SYSTEM_PROMPT_FOR_ARRAY if isinstance(result.value, list) else SYSTEM_PROMPT_FOR_OBJECT
            await self.renderer.render(
                RenderRequest(
                    input_json=result.value,
                    user_prompt=message,
                    system_prompt=system_prompt,
                    data_format=decision.requested_format,
                    prefix_message=prefix,
                ),
                channel,
            )
        elif isinstance(result, NotFound):
            await self.renderer.stream_text(f"Sorry, no results found. {result.message}.", channel)
        else:
            await self._explain_failure(result, message, channel)

    async def _jira_fetch(self, decision: ToolDecision, message: str, channel: ResponseChannel) -> None:
        key = require_text(_param(decision.parameters, "id", "key"), "id")
        result = await self.jira.get_issue(key)
        prefix = None
        if isinstance(result, Found):
            issue = result.value
            result = Found(flatten_issue(issue))
            issue_key = issue.get("key", key)
            prefix = f"[{issue_key}]({self.jira.browse_url(issue_key)})"
        await self._render_result(result, decision, message, channel, prefix=prefix)

    async def _jira_search(self, decision: ToolDecision, message: str, channel: ResponseChannel) -> None:
        request = require_text(_param(decision.parameters, "query", "q") or message, "query")
        jql = await self.query_agent.translate(request)
        result = await self.jira.search(jql)

        prefix = f"**JQL:** `{jql}`"
        if isinstance(result, Found):
            self.query_agent.remember(request, jql)
            result = Found(flatten_issues(result.value))
            prefix += f"\n\n[Open search in Jira]({self.jira.search_url(jql)})"
        await self._render_result(result, decision, message, channel, prefix=prefix)

    async def _jira_create(self, decision: ToolDecision, message: str, channel: ResponseChannel) -> None:
        params = decision.parameters
        summary = require_text(params.get("summary"), "summary")
        result = await self.jira.create_issue(
            summary,
            project=params.get("project") or self.jira.default_project,
            issuetype=params.get("issuetype") or "Task",
            description=params.get("description") or "",
        )
        if isinstance(result, Found):
            created = result.value
            text = (
                f"Created issue [{created.get('key')}]({created.get('url')}) "
                f"with summary: {summary}"
            )
            await self.renderer.stream_text(text, channel)
        else:
            await self._explain_failure(result, message, channel)

    async def _explain_failure(self, result: LookupResult, message: str, channel: ResponseChannel) -> None:
        if isinstance(result, NotFound):
            payload = {"error": result.message}
        else:
            payload = {"error": result.message, "kind": result.kind}
        await self._render_explanation(payload, message, channel)

    async def _explain_error(self, message: str, exc: Exception, channel: ResponseChannel) -> None:
        if channel.headers_sent:
            await channel.end()
            return
        if isinstance(exc, BizDataError):
            payload = exc.to_dict()
        else:
            payload = {"type": "error", "message": str(exc) or exc.__class__.__name__}
        await self._render_explanation(payload, message, channel)

    async def _render_explanation(self, payload: Dict[str, Any], message: str, channel: ResponseChannel) -> None:
        await self.renderer.render(
            RenderRequest(
                input_json=payload,
                user_prompt=message or "",
                system_prompt=SYSTEM_PROMPT_FOR_TEXT,
                data_format=DataFormat.MARKDOWN_TEXT,
            ),
            channel,
        )
