"""
BizData MCP - natural-language access to business data.

Exposes SQL-backed business entities, Jira issues, a product catalog and
application status as MCP tools, and routes free-form messages to those tools
through an LLM.
"""

__version__ = "1.0.0"
