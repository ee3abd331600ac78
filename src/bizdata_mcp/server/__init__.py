"""Transports: the FastMCP server (stdio) and the FastAPI HTTP/SSE app."""
