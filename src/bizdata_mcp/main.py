"""
Command-line entry point.

Commands:
- stdio    run the MCP server over stdin/stdout (for MCP clients)
- http     run the HTTP/SSE transport with uvicorn
- init-db  create the SQLite database with sample data
- chat     ask questions in the terminal through the router pipeline

Everything except ``chat`` output goes to stderr: in stdio mode stdout
carries the MCP protocol.
"""

import argparse
import asyncio
import json
import os
import sys
from contextlib import redirect_stdout
from typing import Any

from bizdata_mcp.config import Settings, get_settings
from bizdata_mcp.data.database_setup import setup_database
from bizdata_mcp.logging_config import setup_logging
from bizdata_mcp.rendering.channel import ResponseChannel


def _say(message: str = "") -> None:
    print(message, file=sys.stderr)


def check_environment(settings: Settings) -> bool:
    """Check that the selected completion backend is configured."""
    provider = (settings.llm_provider or "").lower()
    if settings.llm_api_key or provider in ("ollama", "local"):
        return True

    if provider in ("openai", "remote"):
        _say("=" * 60)
        _say("ERROR: LLM_PROVIDER is openai but no API key is set.")
        _say("=" * 60)
        _say("\nTo fix this:")
        _say("1. Copy .env.example to .env")
        _say("2. Add your OpenAI API key to the .env file")
        _say("\nExample:")
        _say("  LLM_API_KEY=sk-your-api-key-here")
        _say("=" * 60)
        return False

    _say(f"No LLM API key set; using the local model server at {settings.ollama_api_url}")
    return True


def check_database(settings: Settings) -> bool:
    """Check that the database exists, create it if not."""
    if os.path.exists(settings.database_path):
        _say(f"Database found: {settings.database_path}")
        return True

    _say("Database not found. Initializing...")
    with redirect_stdout(sys.stderr):
        return setup_database(settings.database_path)


class TerminalChannel(ResponseChannel):
    """Response channel that prints to the terminal."""

    def __init__(self):
        self._started = False

    @property
    def headers_sent(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return False

    async def start_stream(self) -> None:
        self._started = True

    async def write(self, chunk: str) -> bool:
        self._started = True
        print(chunk, end="", flush=True)
        return True

    async def send_json(self, payload: Any, status: int = 200) -> None:
        self._started = True
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                print(payload)
                return
        print(json.dumps(payload, indent=2, default=str))

    async def send_text(self, text: str, status: int = 200) -> None:
        self._started = True
        print(text)

    async def end(self) -> None:
        print()


async def run_chat() -> None:
    """Run the system in interactive terminal mode."""
    from bizdata_mcp.context import get_app_context

    context = get_app_context()
    print("=" * 60)
    print("  BizData Assistant - Terminal Mode")
    print("=" * 60)
    print("\nCommands:")
    print("  'quit' or 'exit' - Stop the application")
    print("-" * 60)

    async with context.session():
        while True:
            try:
                query = (await asyncio.to_thread(input, "\n[You]: ")).strip()
            except (EOFError, KeyboardInterrupt):
                print("\nGoodbye!")
                break

            if not query:
                continue
            if query.lower() in ("quit", "exit"):
                print("\nGoodbye!")
                break

            print("\n[Assistant]: ", end="")
            await context.dispatcher.handle_message(query, TerminalChannel())


def main():
    """Main entry point with CLI argument parsing."""
    parser = argparse.ArgumentParser(
        description="MCP server for business data: vendors, users, Jira, products and more",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run MCP server with stdio (for MCP clients)
  bizdata-mcp stdio

  # Run the HTTP/SSE transport
  bizdata-mcp http --port 8080

  # Create the sample database
  bizdata-mcp init-db

  # Ask questions in the terminal
  bizdata-mcp chat
""",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    subparsers.add_parser("stdio", help="Run the MCP server over stdio")

    http_parser = subparsers.add_parser("http", help="Run the HTTP/SSE transport")
    http_parser.add_argument("--host", default="0.0.0.0", help="Host to bind")
    http_parser.add_argument("--port", type=int, default=8080, help="Port to bind")

    init_parser = subparsers.add_parser("init-db", help="Create the sample SQLite database")
    init_parser.add_argument("--path", default=None, help="Database file (default: DATABASE_PATH)")

    subparsers.add_parser("chat", help="Ask questions in the terminal")

    args = parser.parse_args()
    settings = get_settings()
    setup_logging(args.log_level or settings.log_level)

    if args.command == "init-db":
        with redirect_stdout(sys.stderr):
            ok = setup_database(args.path or settings.database_path)
        sys.exit(0 if ok else 1)

    if args.command not in ("stdio", "http", "chat"):
        parser.print_help()
        _say("\nNo command specified. Use one of: stdio, http, init-db, chat")
        sys.exit(1)

    if not check_environment(settings):
        sys.exit(1)
    if not check_database(settings):
        sys.exit(1)

    try:
        if args.command == "stdio":
            from bizdata_mcp.server.mcp_server import run_server

            _say("Starting MCP server with stdio transport...")
            run_server()
        elif args.command == "http":
            from bizdata_mcp.server.http_app import run_http_server

            _say(f"Starting HTTP transport at http://{args.host}:{args.port}")
            run_http_server(host=args.host, port=args.port, log_level=settings.log_level.lower())
        else:
            asyncio.run(run_chat())
    except KeyboardInterrupt:
        _say("\nShutting down...")
    except Exception as e:
        _say(f"Server failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
