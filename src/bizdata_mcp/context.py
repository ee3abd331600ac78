"""
Process-wide application context.

Builds every collaborator once from ``Settings`` and owns their network and
database resources. Transports enter ``session()`` while they use the
context; resources are released when the last user leaves, and reopen
lazily if the context is used again.
"""

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional

from bizdata_mcp.agents.example_store import ExampleStore
from bizdata_mcp.agents.query_agent import QueryAgent
from bizdata_mcp.agents.router_agent import RouterAgent
from bizdata_mcp.config import Settings, get_settings
from bizdata_mcp.data.database import Database
from bizdata_mcp.data.jira import JiraClient
from bizdata_mcp.data.products import ProductCatalog
from bizdata_mcp.data.repositories import Repositories
from bizdata_mcp.dispatcher import Dispatcher
from bizdata_mcp.llm.client import CompletionClient
from bizdata_mcp.llm.factory import create_completion_client
from bizdata_mcp.rendering.renderer import Renderer

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Application context shared by the stdio server and the HTTP app."""

    settings: Settings
    db: Database
    repositories: Repositories
    products: ProductCatalog
    jira: JiraClient
    client: CompletionClient
    example_store: ExampleStore
    router: RouterAgent
    query_agent: QueryAgent
    renderer: Renderer
    dispatcher: Dispatcher
    started_at: float = field(default_factory=time.time)
    _users: int = 0

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        client: Optional[CompletionClient] = None,
        db: Optional[Database] = None,
        jira: Optional[JiraClient] = None,
        products: Optional[ProductCatalog] = None,
    ) -> "AppContext":
        """
        Wire all collaborators together.

        Args:
            settings: Runtime settings (default: from the environment)
            client: Completion client (default: chosen by the factory)
            db: Database handle (default: ``settings.database_path``)
            jira: Jira client (default: from settings)
            products: Product catalog (default: ``settings.product_api_url``)
        """
        settings = settings or get_settings()
        client = client or create_completion_client(settings)
        db = db or Database(settings.database_path)
        jira = jira or JiraClient(settings)
        products = products or ProductCatalog(settings.product_api_url)

        repositories = Repositories(db)
        example_store = ExampleStore(settings.examples_path)
        router = RouterAgent(client)
        query_agent = QueryAgent(client, example_store, settings.jira_default_project)
        renderer = Renderer(client, text_chunk_delay=settings.text_chunk_delay)

        sources: Dict[str, Any] = {
            "vendors": repositories.vendors,
            "users": repositories.users,
            "roles": repositories.roles,
            "commodities": repositories.commodities,
            "currencies": repositories.currencies,
            "products": products,
        }
        dispatcher = Dispatcher(router, renderer, sources, jira, query_agent)

        return cls(
            settings=settings,
            db=db,
            repositories=repositories,
            products=products,
            jira=jira,
            client=client,
            example_store=example_store,
            router=router,
            query_agent=query_agent,
            renderer=renderer,
            dispatcher=dispatcher,
        )

    @property
    def uptime(self) -> float:
        return time.time() - self.started_at

    @asynccontextmanager
    async def session(self) -> AsyncIterator["AppContext"]:
        """Use the context; the last user to leave releases its resources."""
        self._users += 1
        try:
            yield self
        finally:
            self._users -= 1
            if self._users == 0:
                await self.aclose()

    async def aclose(self) -> None:
        """Close the database and every HTTP client."""
        await self.db.close()
        await self.jira.aclose()
        await self.products.aclose()
        await self.client.aclose()
        logger.info("Application resources released")


_app_context: Optional[AppContext] = None


def get_app_context() -> AppContext:
    """Get or create the process-wide application context."""
    global _app_context
    if _app_context is None:
        _app_context = AppContext.create()
    return _app_context


def set_app_context(context: Optional[AppContext]) -> None:
    """Replace the process-wide context (used by tests and the CLI)."""
    global _app_context
    _app_context = context
