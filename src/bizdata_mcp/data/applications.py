"""Deployment status of the known applications, per environment."""

from typing import Any, Dict

from bizdata_mcp.data.repositories import require_text
from bizdata_mcp.data.results import Found, LookupResult, NotFound

ENV_ALIASES = {
    "development": "dev",
    "staging": "test",
    "stage": "test",
    "production": "prod",
}

APPLICATIONS: Dict[str, Dict[str, Dict[str, Any]]] = {
    "boss-service": {
        "dev": {
            "name": "Boss Service",
            "description": "Development environment for the Boss Service application.",
            "url": "https://dev.boss-service.example.com",
            "status": "up",
            "version": "1.0.2",
            "build": "1.0.2+develop:478jk609.90",
        },
        "test": {
            "name": "Boss Service",
            "description": "Staging environment for the Boss Service application.",
            "url": "https://staging.boss-service.example.com",
            "status": "up",
            "version": "1.0.2",
            "build": "1.0.2+release:478jk609.90",
        },
        "prod": {
            "name": "Boss Service",
            "description": "Production environment for the Boss Service application.",
            "url": "https://boss-service.example.com",
            "status": "up",
            "version": "1.0.2",
            "build": "1.0.2+release:478jk609.90",
        },
    },
    "transformation-service": {
        "dev": {
            "name": "Transformation Service",
            "description": "Development environment for the Transformation Service application.",
            "url": "https://dev.transformation-service.example.com",
            "status": "up",
            "version": "1.0.2",
            "build": "1.0.2+develop:478jk609.90",
        },
        "test": {
            "name": "Transformation Service",
            "description": "Staging environment for the Transformation Service application.",
            "url": "https://staging.transformation-service.example.com",
            "status": "up",
            "version": "1.0.2",
            "build": "1.0.2+release:478jk609.90",
        },
        "prod": {
            "name": "Transformation Service",
            "description": "Production environment for the Transformation Service application.",
            "url": "https://transformation-service.example.com",
            "status": "up",
            "version": "1.0.2",
            "build": "1.0.2+release:478jk609.90",
        },
    },
    "boss-ui": {
        "dev": {
            "name": "Boss UI",
            "error": "Failed to fetch Boss UI application details. Please try again later.",
        },
    },
}


def get_application_status(app_name: Any, env: Any) -> LookupResult:
    """
    Look up the deployment status of an application.

    Args:
        app_name: Application name such as ``boss-service``
        env: Environment: dev, test or prod (common long names are accepted)

    Returns:
        Found with the status record, or NotFound
    """
    app = require_text(app_name, "appName").lower().replace(" ", "-")
    environment = require_text(env, "env").lower()
    environment = ENV_ALIASES.get(environment, environment)

    record = APPLICATIONS.get(app, {}).get(environment)
    if record is None:
        return NotFound(f"No status found for application '{app}' in environment '{environment}'")
    return Found(dict(record))
