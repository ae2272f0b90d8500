"""MCP server for the Cakemail API."""
