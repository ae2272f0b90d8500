"""Health and diagnostics tools."""

from typing import Any, Dict

from ..client import CakemailClient


async def health_check(client: CakemailClient) -> Dict[str, Any]:
    """Authenticate, call the account endpoint and report component status."""
    return await client.health_check()


async def get_diagnostics(client: CakemailClient) -> Dict[str, Any]:
    diagnostics = client.get_diagnostics()
    diagnostics["account_id"] = await client.get_current_account_id()
    return diagnostics
