"""Data-access collaborators: SQL repositories, Jira, products, application status."""

from bizdata_mcp.data.applications import get_application_status
from bizdata_mcp.data.database import Database
from bizdata_mcp.data.jira import JiraClient
from bizdata_mcp.data.products import ProductCatalog
from bizdata_mcp.data.repositories import Repositories
from bizdata_mcp.data.results import Failed, Found, LookupResult, NotFound, to_tool_result

__all__ = [
    "Database",
    "Failed",
    "Found",
    "JiraClient",
    "LookupResult",
    "NotFound",
    "ProductCatalog",
    "Repositories",
    "get_application_status",
    "to_tool_result",
]
