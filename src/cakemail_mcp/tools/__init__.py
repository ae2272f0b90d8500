"""Cakemail resource operations exposed as MCP tools."""
