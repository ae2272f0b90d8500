#!/usr/bin/env python3
"""Cakemail MCP Server.

Exposes Cakemail account operations as MCP tools over stdio or HTTP.
"""

import argparse
import asyncio
import atexit
import logging
import signal

from dotenv import load_dotenv
from fastmcp import FastMCP

from ..client import reset_cakemail_client
from ..config.settings import Settings, get_settings
from ..utils.http import http_client_manager
from ..utils.security import setup_secure_logging
from .builtin_tools import register_all_builtin_tools

logger = logging.getLogger(__name__)


def create_cakemail_server(settings: Settings) -> FastMCP:
    """Create and configure the Cakemail MCP server.

    The API client is created lazily on the first tool call, so the server
    starts even when credentials are missing.

    :param settings: Application settings
    :return: Configured FastMCP server instance
    """
    server = FastMCP(settings.mcp_server_name)
    register_all_builtin_tools(server)
    if not settings.has_credentials:
        logger.warning(
            "CAKEMAIL_USERNAME/CAKEMAIL_PASSWORD are not set; tool calls will fail"
        )
    logger.info("MCP server setup complete")
    return server


_cleanup_done = False


async def cleanup_resources_async() -> None:
    """Close shared HTTP clients once."""
    global _cleanup_done
    if _cleanup_done:
        return

    logger.info("Shutting down server...")
    await http_client_manager.close_all()
    reset_cakemail_client()
    _cleanup_done = True


def cleanup_sync() -> None:
    """Clean up from atexit or a signal handler.

    Inside a running loop the cleanup is scheduled on it; otherwise a
    short-lived loop runs it to completion.
    """
    if _cleanup_done:
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        asyncio.run(cleanup_resources_async())
        return
    loop.create_task(cleanup_resources_async())


def main() -> None:
    """Run the Cakemail MCP server.

    Examples
    --------
    .. code-block:: bash

        cakemail-mcp --transport stdio
        cakemail-mcp --transport http --port 9080
    """
    load_dotenv()
    settings = get_settings()
    setup_secure_logging(level="DEBUG" if settings.cakemail_debug else settings.log_level)
    logger.debug("Environment variables loaded")

    parser = argparse.ArgumentParser(description="Cakemail MCP Server")
    parser.add_argument(
        "--transport",
        choices=["stdio", "http", "streamable-http"],
        default="stdio",
    )
    parser.add_argument("--host", default=settings.mcp_server_host)
    parser.add_argument("--port", type=int, default=settings.mcp_server_port)
    args = parser.parse_args()

    atexit.register(cleanup_sync)
    signal.signal(signal.SIGTERM, lambda *_: cleanup_sync())

    mcp = create_cakemail_server(settings)

    try:
        if args.transport in ("http", "streamable-http"):
            logger.info(
                "Starting %s server on %s:%d", args.transport, args.host, args.port
            )
            mcp.run(transport=args.transport, host=args.host, port=args.port)
        else:
            logger.info("Running in stdio mode")
            mcp.run()
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    finally:
        cleanup_sync()


if __name__ == "__main__":
    main()
