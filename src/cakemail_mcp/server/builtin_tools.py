"""Register built-in tools for the MCP server.

Every tool obtains the shared client, runs one operation and returns the
parsed API data. Client errors are returned as their ``to_dict()`` form so
the calling model sees the code, status and endpoint instead of a trace.

Examples
--------
.. code-block:: python

   from fastmcp import FastMCP
   from cakemail_mcp.server.builtin_tools import register_all_builtin_tools

   server = FastMCP("cakemail-api")
   register_all_builtin_tools(server)
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from fastmcp import FastMCP

from ..client import CakemailClient, get_cakemail_client
from ..exceptions import CakemailError
from ..tools import campaigns, diagnostics, senders

logger = logging.getLogger(__name__)


async def run_tool(operation: Callable[[CakemailClient], Awaitable[Any]]) -> Any:
    """Run ``operation`` against the shared client, mapping client errors.

    :param operation: Coroutine function taking the client
    :return: Operation result or the error's dictionary form
    """
    client = await get_cakemail_client()
    try:
        return await operation(client)
    except CakemailError as e:
        logger.error("Tool call failed: %s", e.message)
        return e.to_dict()


def register_diagnostic_tools(server: FastMCP) -> None:
    """Register health and diagnostics tools.

    :param server: FastMCP server instance.
    """

    @server.tool(
        name="cakemail_health_check",
        description="Check Cakemail API connectivity, authentication and client health",
    )
    async def health_check_tool():
        return await run_tool(diagnostics.health_check)

    @server.tool(
        name="cakemail_get_diagnostics",
        description="Show retry policy, circuit breaker, queue, metrics and token status",
    )
    async def get_diagnostics_tool():
        return await run_tool(diagnostics.get_diagnostics)


def register_sender_tools(server: FastMCP) -> None:
    """Register sender tools.

    :param server: FastMCP server instance.
    """

    @server.tool(
        name="cakemail_list_senders",
        description="List all senders of the current Cakemail account",
    )
    async def list_senders_tool(max_results: Optional[int] = None):
        return await run_tool(
            lambda client: senders.list_senders(client, max_results=max_results)
        )


def register_campaign_tools(server: FastMCP) -> None:
    """Register campaign tools.

    :param server: FastMCP server instance.
    """

    @server.tool(
        name="cakemail_list_campaigns",
        description="List campaigns with optional status/name filters, newest first",
    )
    async def list_campaigns_tool(
        page: int = 1,
        per_page: Optional[int] = None,
        status: Optional[str] = None,
        name: Optional[str] = None,
        sort: Optional[str] = None,
        order: str = "desc",
    ):
        return await run_tool(
            lambda client: campaigns.list_campaigns(
                client,
                page=page,
                per_page=per_page,
                status=status,
                name=name,
                sort=sort,
                order=order,
            )
        )

    @server.tool(name="cakemail_get_campaign", description="Get a campaign by id")
    async def get_campaign_tool(campaign_id: int):
        return await run_tool(
            lambda client: campaigns.get_campaign(client, campaign_id)
        )

    @server.tool(
        name="cakemail_delete_campaign",
        description="Permanently delete a campaign",
    )
    async def delete_campaign_tool(campaign_id: int):
        return await run_tool(
            lambda client: campaigns.delete_campaign(client, campaign_id)
        )

    @server.tool(
        name="cakemail_list_campaign_logs",
        description="Get one page of a campaign's delivery logs; pass next_cursor to continue",
    )
    async def list_campaign_logs_tool(
        campaign_id: int,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
        log_type: Optional[str] = None,
    ):
        return await run_tool(
            lambda client: campaigns.list_campaign_logs(
                client, campaign_id, cursor=cursor, limit=limit, log_type=log_type
            )
        )


def register_all_builtin_tools(server: FastMCP) -> None:
    """Register all built-in tools.

    :param server: FastMCP server instance.
    """
    register_diagnostic_tools(server)
    register_sender_tools(server)
    register_campaign_tools(server)
    logger.info("Registered built-in Cakemail tools")
