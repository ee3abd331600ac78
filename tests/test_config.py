"""Tests for settings, the error types and the CLI environment checks."""

import pytest

from bizdata_mcp.config import Settings
from bizdata_mcp.errors import InvalidInputError, UpstreamError
from bizdata_mcp.main import check_database, check_environment


ENV_VARS = (
    "LLM_PROVIDER", "LLM_API_KEY", "OPENAI_API_KEY", "LLM_MODEL", "OLLAMA_API_URL",
    "LOCAL_MODEL", "DATABASE_PATH", "EXAMPLES_PATH", "JIRA_API_URL", "JIRA_BASE_URL",
    "JIRA_USERNAME", "JIRA_API_TOKEN", "JIRA_DEFAULT_PROJECT", "PRODUCT_API_URL",
    "APP_ENV", "LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:

    def test_defaults(self, clean_env):
        settings = Settings.from_env()

        assert settings.llm_provider is None
        assert settings.llm_api_key is None
        assert settings.jira_default_project == "SCRUM"
        assert settings.text_chunk_delay == 0.1

    def test_openai_key_fallback(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-legacy")

        assert Settings.from_env().llm_api_key == "sk-legacy"

    def test_provider_is_normalised(self, clean_env):
        clean_env.setenv("LLM_PROVIDER", " Ollama ")

        assert Settings.from_env().llm_provider == "ollama"

    def test_browse_url_derived_from_api_url(self, clean_env):
        clean_env.setenv("JIRA_API_URL", "https://acme.atlassian.net/rest/api/3/")

        assert Settings.from_env().jira_base_url == "https://acme.atlassian.net"

    def test_explicit_browse_url(self, clean_env):
        clean_env.setenv("JIRA_API_URL", "https://acme.atlassian.net/rest/api/3/")
        clean_env.setenv("JIRA_BASE_URL", "https://jira.acme.com")

        assert Settings.from_env().jira_base_url == "https://jira.acme.com"


class TestErrors:

    def test_to_dict(self):
        error = UpstreamError("Model unavailable", details="HTTP 503")

        assert error.to_dict() == {
            "type": "error",
            "kind": "upstream",
            "message": "Model unavailable",
            "details": "HTTP 503",
        }
        assert str(error) == "Model unavailable - HTTP 503"

    def test_message_only(self):
        assert str(InvalidInputError("bad id")) == "bad id"


class TestEnvironmentChecks:

    def test_openai_without_key_fails(self):
        assert check_environment(Settings(llm_provider="openai", llm_api_key=None)) is False

    def test_key_present(self):
        assert check_environment(Settings(llm_provider="openai", llm_api_key="sk-test")) is True

    def test_local_backend_needs_no_key(self):
        assert check_environment(Settings(llm_provider="ollama")) is True
        assert check_environment(Settings(llm_provider=None)) is True

    def test_database_is_created(self, tmp_path):
        path = str(tmp_path / "new.db")

        assert check_database(Settings(database_path=path)) is True
        assert check_database(Settings(database_path=path)) is True
