"""Cakemail MCP server and resilient API client."""

from .client import CakemailClient
from .models import ClientConfig

__version__ = "0.1.0"

__all__ = ["CakemailClient", "ClientConfig", "__version__"]
