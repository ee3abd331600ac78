"""
Environment-driven configuration.

Values come from the process environment, optionally populated from a
``.env`` file in the working directory. Retry count and backoff are fixed in
code and intentionally not read from the environment.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

SERVICE_NAME = "bizdata-mcp"
SERVICE_VERSION = "1.0.0"

MAX_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 30.0

DEFAULT_OLLAMA_URL = "http://localhost:11434/api/chat"


def _derive_browse_url(api_url: Optional[str]) -> Optional[str]:
    """Turn ``https://x.atlassian.net/rest/api/3/`` into ``https://x.atlassian.net``."""
    if not api_url:
        return None
    base = api_url.split("/rest/", 1)[0]
    return base.rstrip("/")


@dataclass
class Settings:
    """Runtime settings for the server, the LLM backends and the collaborators."""

    llm_provider: Optional[str] = None
    llm_api_key: Optional[str] = None
    llm_model: str = "gpt-4o-mini"
    ollama_api_url: str = DEFAULT_OLLAMA_URL
    local_model: str = "mistral"

    database_path: str = os.path.join("data", "bizdata.db")
    examples_path: str = os.path.join("data", "jql-examples.json")

    jira_api_url: Optional[str] = None
    jira_username: Optional[str] = None
    jira_api_token: Optional[str] = None
    jira_base_url: Optional[str] = None
    jira_default_project: str = "SCRUM"

    product_api_url: str = "https://dummyjson.com"

    environment: str = "development"
    log_level: str = "INFO"

    # Pacing between free-text chunks; tests set this to 0.
    text_chunk_delay: float = 0.1

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``os.environ`` after loading ``.env``."""
        load_dotenv()
        env = os.environ
        jira_api_url = env.get("JIRA_API_URL")
        return cls(
            llm_provider=(env.get("LLM_PROVIDER") or "").strip().lower() or None,
            llm_api_key=env.get("LLM_API_KEY") or env.get("OPENAI_API_KEY"),
            llm_model=env.get("LLM_MODEL", "gpt-4o-mini"),
            ollama_api_url=env.get("OLLAMA_API_URL", DEFAULT_OLLAMA_URL),
            local_model=env.get("LOCAL_MODEL", "mistral"),
            database_path=env.get("DATABASE_PATH", os.path.join("data", "bizdata.db")),
            examples_path=env.get("EXAMPLES_PATH", os.path.join("data", "jql-examples.json")),
            jira_api_url=jira_api_url,
            jira_username=env.get("JIRA_USERNAME"),
            jira_api_token=env.get("JIRA_API_TOKEN"),
            jira_base_url=env.get("JIRA_BASE_URL") or _derive_browse_url(jira_api_url),
            jira_default_project=env.get("JIRA_DEFAULT_PROJECT", "SCRUM"),
            product_api_url=env.get("PRODUCT_API_URL", "https://dummyjson.com"),
            environment=env.get("APP_ENV", "development"),
            log_level=env.get("LOG_LEVEL", "INFO"),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the process-wide settings."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
