"""
MCP server exposing the business data tools (FastMCP).

One typed tool per operation: vendors, users, roles, commodities,
currencies, products, Jira issues and application status. Tool results use
the ``{"success": bool, "data" | "error": ...}`` shape.

The same server runs over stdio (``run_server``) and, session by session,
behind the SSE transport of the HTTP app.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Dict, Optional

from mcp.server.fastmcp import FastMCP

from bizdata_mcp.config import SERVICE_NAME
from bizdata_mcp.context import AppContext, get_app_context
from bizdata_mcp.data.applications import get_application_status as lookup_application_status
from bizdata_mcp.data.jira import flatten_issues
from bizdata_mcp.data.results import Found, LookupResult, to_tool_result
from bizdata_mcp.data.repositories import require_text

logger = logging.getLogger(__name__)


def current_context() -> AppContext:
    """The context of the session serving this tool call, else the process-wide one."""
    try:
        context = mcp.get_context().request_context.lifespan_context
    except ValueError:
        return get_app_context()
    return context if isinstance(context, AppContext) else get_app_context()


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Manage application lifecycle with the shared application context."""
    context = get_app_context()
    async with context.session():
        yield context


mcp = FastMCP(
    SERVICE_NAME,
    lifespan=app_lifespan,
    instructions="""
    Business data MCP server providing tools for:
    - Vendor, user, role, commodity and currency lookup and search
    - Product catalog lookup and search
    - Jira issue lookup, natural-language search and creation
    - Application deployment status per environment
    """,
)


async def _respond(lookup: Awaitable[LookupResult]) -> Dict[str, Any]:
    try:
        return to_tool_result(await lookup)
    except Exception as e:
        logger.warning("Tool call failed: %s", e)
        return {"success": False, "error": str(e)}


# Vendors

@mcp.tool(name="get-vendors")
async def get_vendors(skip: int = 0, limit: int = 10) -> Dict[str, Any]:
    """
    List vendors.

    Args:
        skip: Number of vendors to skip (default: 0)
        limit: Maximum number of results, 1 to 100 (default: 10)
    """
    return await _respond(current_context().repositories.vendors.list(skip, limit))


@mcp.tool(name="get-vendor-by-id")
async def get_vendor_by_id(id: int) -> Dict[str, Any]:
    """
    Get vendor information by ID.

    Args:
        id: The vendor's unique identifier
    """
    return await _respond(current_context().repositories.vendors.get_by_id(id))


@mcp.tool(name="search-vendors")
async def search_vendors(query: str) -> Dict[str, Any]:
    """
    Search vendors by name, address, contact number, email, type or bank code.

    Args:
        query: Text to search for
    """
    return await _respond(current_context().repositories.vendors.search(query))


# Users

@mcp.tool(name="get-users")
async def get_users(
    department: Optional[str] = None,
    role: Optional[str] = None,
    skip: int = 0,
    limit: int = 10,
) -> Dict[str, Any]:
    """
    List users with optional department and role filters.

    Args:
        department: Department name (optional)
        role: Role name such as 'Manager' (optional)
        skip: Number of users to skip (default: 0)
        limit: Maximum number of results, 1 to 100 (default: 10)
    """
    return await _respond(
        current_context().repositories.users.list(skip, limit, department=department, role=role)
    )


@mcp.tool(name="get-user-by-id")
async def get_user_by_id(id: int) -> Dict[str, Any]:
    """Get a user, with role name, by ID."""
    return await _respond(current_context().repositories.users.get_by_id(id))


@mcp.tool(name="search-users")
async def search_users(query: str) -> Dict[str, Any]:
    """Search users by name, email or username."""
    return await _respond(current_context().repositories.users.search(query))


# Roles

@mcp.tool(name="get-roles")
async def get_roles(skip: int = 0, limit: int = 10) -> Dict[str, Any]:
    """List roles."""
    return await _respond(current_context().repositories.roles.list(skip, limit))


@mcp.tool(name="get-role-by-id")
async def get_role_by_id(id: int) -> Dict[str, Any]:
    """Get a role by ID."""
    return await _respond(current_context().repositories.roles.get_by_id(id))


@mcp.tool(name="search-roles")
async def search_roles(query: str) -> Dict[str, Any]:
    """Search roles by name."""
    return await _respond(current_context().repositories.roles.search(query))


# Commodities

@mcp.tool(name="get-commodities")
async def get_commodities(skip: int = 0, limit: int = 10) -> Dict[str, Any]:
    """List commodities."""
    return await _respond(current_context().repositories.commodities.list(skip, limit))


@mcp.tool(name="get-commodity-by-id")
async def get_commodity_by_id(id: int) -> Dict[str, Any]:
    """Get a commodity by ID."""
    return await _respond(current_context().repositories.commodities.get_by_id(id))


@mcp.tool(name="search-commodities")
async def search_commodities(query: str) -> Dict[str, Any]:
    """Search commodities by name, code, short name or bank code."""
    return await _respond(current_context().repositories.commodities.search(query))


# Currencies

@mcp.tool(name="get-currencies")
async def get_currencies(skip: int = 0, limit: int = 10) -> Dict[str, Any]:
    """List currencies."""
    return await _respond(current_context().repositories.currencies.list(skip, limit))


@mcp.tool(name="get-currency-by-id")
async def get_currency_by_id(id: int) -> Dict[str, Any]:
    """Get a currency by ID."""
    return await _respond(current_context().repositories.currencies.get_by_id(id))


@mcp.tool(name="search-currencies")
async def search_currencies(query: str) -> Dict[str, Any]:
    """Search currencies by name or short name (e.g. 'USD')."""
    return await _respond(current_context().repositories.currencies.search(query))


# Products

@mcp.tool(name="get-products")
async def get_products(skip: int = 0, limit: int = 10) -> Dict[str, Any]:
    """List products from the catalog."""
    return await _respond(current_context().products.list(skip, limit))


@mcp.tool(name="get-product-by-id")
async def get_product_by_id(id: int) -> Dict[str, Any]:
    """Get a catalog product by ID."""
    return await _respond(current_context().products.get_by_id(id))


@mcp.tool(name="search-products")
async def search_products(query: str) -> Dict[str, Any]:
    """Search the product catalog."""
    return await _respond(current_context().products.search(query))


# Jira

@mcp.tool(name="get-jira-issue-by-id")
async def get_jira_issue_by_id(id: str) -> Dict[str, Any]:
    """
    Get detailed information about a specific Jira issue.

    Args:
        id: Issue key such as 'SCRUM-12', or the numeric issue id
    """
    return await _respond(current_context().jira.get_issue(id))


@mcp.tool(name="search-jira-issues")
async def search_jira_issues(query: str) -> Dict[str, Any]:
    """
    Search Jira issues with a request in plain words.

    The request is translated to JQL; the query used is returned as 'jql'.

    Args:
        query: What to look for, e.g. 'open bugs assigned to me'
    """
    context = current_context()
    try:
        request = require_text(query)
        jql = await context.query_agent.translate(request)
        result = await context.jira.search(jql)
    except Exception as e:
        logger.warning("Jira search failed: %s", e)
        return {"success": False, "error": str(e)}

    if not isinstance(result, Found):
        return {**to_tool_result(result), "jql": jql}

    context.query_agent.remember(request, jql)
    issues = flatten_issues(result.value)
    return {"success": True, "jql": jql, "count": len(issues), "data": issues}


@mcp.tool(name="create-jira-issue")
async def create_jira_issue(
    summary: str,
    project: Optional[str] = None,
    issuetype: str = "Task",
    description: str = "",
) -> Dict[str, Any]:
    """
    Create a Jira issue.

    Args:
        summary: One-line summary (required)
        project: Project key (default: the configured default project)
        issuetype: Issue type name (default: 'Task')
        description: Longer description (optional)
    """
    jira = current_context().jira
    return await _respond(
        jira.create_issue(
            summary,
            project=project or jira.default_project,
            issuetype=issuetype or "Task",
            description=description or "",
        )
    )


# Applications

@mcp.tool(name="get-application-status")
async def get_application_status(appName: str, env: str) -> Dict[str, Any]:
    """
    Get the deployment status of an application.

    Args:
        appName: Application name: boss-service, transformation-service or boss-ui
        env: Environment: dev, test or prod
    """
    try:
        return to_tool_result(lookup_application_status(appName, env))
    except Exception as e:
        return {"success": False, "error": str(e)}


def run_server():
    """Run the MCP server with stdio transport (default for MCP)."""
    mcp.run(transport="stdio")
