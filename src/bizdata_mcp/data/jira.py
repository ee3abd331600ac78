"""
Jira REST client: fetch, search and create issues.

Search results are flattened into one summary row per issue so they can be
rendered as a table.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from bizdata_mcp.config import REQUEST_TIMEOUT_SECONDS, Settings
from bizdata_mcp.data.repositories import require_text
from bizdata_mcp.data.results import Failed, Found, LookupResult, NotFound

logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 50

# Jira Cloud custom fields used by the board
SPRINT_FIELD = "customfield_10020"
FLAGGED_FIELD = "customfield_10021"
STORY_POINTS_FIELD = "customfield_10016"


def flatten_issue(issue: Dict[str, Any]) -> Dict[str, Any]:
    """Reduce a Jira issue to the columns shown in search results."""
    fields = issue.get("fields") or {}

    sprints = fields.get(SPRINT_FIELD) or []
    sprint = ""
    if isinstance(sprints, list) and sprints and isinstance(sprints[0], dict):
        sprint = f"{sprints[0].get('name', '')} - {sprints[0].get('state') or '-'}"

    parent = fields.get("parent") or {}
    parent_type = ((parent.get("fields") or {}).get("issuetype") or {}).get("name", "")
    flagged = fields.get(FLAGGED_FIELD) or []

    subtasks = fields.get("subtasks")
    return {
        "key": issue.get("key"),
        "fixVersions": [v.get("name") for v in fields.get("fixVersions") or []],
        "type": (fields.get("issuetype") or {}).get("name", ""),
        "sprint": sprint,
        "assignee": (fields.get("assignee") or {}).get("displayName", ""),
        "status": (fields.get("status") or {}).get("name", ""),
        "storyPoints": fields.get(STORY_POINTS_FIELD) or "-",
        "created": fields.get("created"),
        "updated": fields.get("updated"),
        "summary": fields.get("summary") or "",
        "parent": f"{parent.get('key', '')} {parent_type}".strip(),
        "flagged": flagged[0].get("value", "") if isinstance(flagged, list) and flagged and isinstance(flagged[0], dict) else "",
        "subtasks": len(subtasks) if subtasks is not None else None,
    }


def flatten_issues(response: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not response:
        return []
    return [flatten_issue(issue) for issue in response.get("issues") or []]


class JiraClient:
    """Thin async client over the Jira REST API."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.api_url = (settings.jira_api_url or "").rstrip("/")
        self.browse_base = (settings.jira_base_url or "").rstrip("/")
        self.default_project = settings.jira_default_project
        self._auth = None
        if settings.jira_username and settings.jira_api_token:
            self._auth = httpx.BasicAuth(settings.jira_username, settings.jira_api_token)
        elif self.api_url:
            logger.warning("JIRA_USERNAME/JIRA_API_TOKEN not set; Jira calls are unauthenticated")
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def configured(self) -> bool:
        return bool(self.api_url)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS)
        return self._client

    def browse_url(self, key: str) -> str:
        return f"{self.browse_base}/browse/{key}"

    def search_url(self, jql: str) -> str:
        return f"{self.browse_base}/issues/?jql={quote(jql)}"

    async def get_issue(self, key: str) -> LookupResult:
        """Fetch one issue by key (``SCRUM-12``) or numeric id."""
        key = require_text(key, "id")
        if not self.configured:
            return self._not_configured()
        try:
            response = await self.client.get(f"{self.api_url}/issue/{key}", auth=self._auth)
        except httpx.HTTPError as exc:
            return self._failed("fetching issue", exc)

        if response.status_code == 404:
            return NotFound(f"No Jira issue found with ID {key}")
        if response.status_code >= 400:
            return self._http_failed("fetching issue", response)
        return Found(response.json())

    async def search(self, jql: str, max_results: int = MAX_SEARCH_RESULTS) -> LookupResult:
        """Run a JQL query and return the raw search response."""
        if not self.configured:
            return self._not_configured()
        try:
            response = await self.client.get(
                f"{self.api_url}/search",
                params={"jql": jql, "maxResults": max_results},
                auth=self._auth,
            )
        except httpx.HTTPError as exc:
            return self._failed("searching issues", exc)

        if response.status_code >= 400:
            return self._http_failed("searching issues", response)
        return Found(response.json())

    async def create_issue(
        self,
        summary: str,
        project: Optional[str] = None,
        issuetype: str = "Task",
        description: str = "",
    ) -> LookupResult:
        """
        Create an issue.

        Returns:
            Found with ``{"id", "key", "self", "url"}`` on success
        """
        summary = require_text(summary, "summary")
        if not self.configured:
            return self._not_configured()

        fields: Dict[str, Any] = {
            "project": {"key": project or self.default_project},
            "summary": summary,
            "issuetype": {"name": issuetype or "Task"},
        }
        if description:
            fields["description"] = self._description(description)

        try:
            response = await self.client.post(
                f"{self.api_url}/issue", json={"fields": fields}, auth=self._auth
            )
        except httpx.HTTPError as exc:
            return self._failed("creating issue", exc)

        if response.status_code >= 400:
            return self._http_failed("creating issue", response)

        created = response.json()
        created["url"] = self.browse_url(created.get("key", ""))
        logger.info("Created Jira issue %s", created.get("key"))
        return Found(created)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _description(self, text: str) -> Any:
        # REST v3 only accepts Atlassian Document Format
        if "/api/3" in self.api_url:
            return {
                "type": "doc",
                "version": 1,
                "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}],
            }
        return text

    def _not_configured(self) -> Failed:
        return Failed("configuration", "Jira is not configured. Set JIRA_API_URL in your .env file.")

    def _failed(self, action: str, exc: Exception) -> Failed:
        logger.error("Jira request failed while %s: %s", action, exc)
        return Failed("upstream", f"Error {action} in Jira: {exc}")

    def _http_failed(self, action: str, response: httpx.Response) -> Failed:
        logger.error("Jira returned HTTP %s while %s: %s", response.status_code, action, response.text[:500])
        return Failed("upstream", f"Error {action} in Jira: HTTP {response.status_code}")
