"""Shared utilities for the Cakemail MCP server."""
