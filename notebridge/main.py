"""
Main entry point for notebridge MCP Server.

This module provides the main() function and server initialization.
"""

import asyncio
import sys

from mcp.server.stdio import stdio_server
from pydantic import ValidationError

from .config import load_settings
from .logging import configure_logging, get_logger
from .tools import NoteBridgeServer


def main():
    """Main entry point."""
    configure_logging()
    logger = get_logger(__name__)

    try:
        settings = load_settings()
    except ValidationError as e:
        logger.error("settings_invalid", error=str(e), hint="Set OBSIDIAN_VAULT_PATH to an existing vault directory")
        sys.exit(1)

    configure_logging(settings.server.log_level)
    app = NoteBridgeServer(settings)
    logger.info(
        "server_starting",
        vault=str(settings.vault.vault_path),
        jira=app.jira is not None,
        confluence=app.confluence is not None,
        cache=app.cache.enabled,
    )

    async def run():
        try:
            async with stdio_server() as (read_stream, write_stream):
                await app.server.run(read_stream, write_stream, app.server.create_initialization_options())
        finally:
            await app.aclose()

    asyncio.run(run())


if __name__ == "__main__":
    main()
