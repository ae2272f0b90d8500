"""Campaign tools for the Cakemail MCP server.

Listing uses the API's filter syntax: ``sort`` is ``[-|+]term`` and
``filter`` joins ``term==value`` clauses with ``;``.
"""

import logging
from typing import Any, Dict, Optional

from ..client import CakemailClient

logger = logging.getLogger(__name__)

CAMPAIGNS_PATH = "/campaigns"
CAMPAIGN_LOGS_PATH = "/logs/campaigns/{campaign_id}"


def build_campaign_filters(
    status: Optional[str] = None,
    name: Optional[str] = None,
    sort: Optional[str] = None,
    order: str = "desc",
) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    direction = "+" if order == "asc" else "-"
    params["sort"] = f"{direction}{sort}" if sort else "-created_on"

    clauses = []
    if status:
        clauses.append(f"status=={status}")
    if name:
        clauses.append(f"name=={name}")
    if clauses:
        params["filter"] = ";".join(clauses)
    return params


async def list_campaigns(
    client: CakemailClient,
    page: int = 1,
    per_page: Optional[int] = None,
    status: Optional[str] = None,
    name: Optional[str] = None,
    sort: Optional[str] = None,
    order: str = "desc",
) -> Dict[str, Any]:
    """Fetch one page of campaigns, newest first by default.

    :return: ``{"data": [...], "page", "has_more", "total_count"}``
    """
    params = build_campaign_filters(status, name, sort, order)
    account_id = await client.get_current_account_id()
    if account_id:
        params["account_id"] = account_id

    result = await client.fetch_paginated(
        CAMPAIGNS_PATH,
        "campaigns",
        options={"page": page, "per_page": per_page},
        params=params,
    )
    return {
        "data": result.items,
        "page": page,
        "has_more": result.has_more,
        "total_count": result.total_count,
    }


async def get_campaign(client: CakemailClient, campaign_id: int) -> Any:
    return await client.get(f"{CAMPAIGNS_PATH}/{campaign_id}")


async def delete_campaign(client: CakemailClient, campaign_id: int) -> Any:
    logger.info("Deleting campaign %s", campaign_id)
    return await client.execute("DELETE", f"{CAMPAIGNS_PATH}/{campaign_id}")


async def list_campaign_logs(
    client: CakemailClient,
    campaign_id: int,
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
    log_type: Optional[str] = None,
) -> Dict[str, Any]:
    """Fetch one cursor-addressed page of a campaign's delivery logs.

    :return: ``{"data": [...], "next_cursor", "has_more"}``; pass
             ``next_cursor`` back to continue
    """
    params = {"type": log_type} if log_type else None
    result = await client.fetch_paginated(
        CAMPAIGN_LOGS_PATH.format(campaign_id=campaign_id),
        "campaign_logs",
        options={"cursor": cursor, "limit": limit},
        params=params,
    )
    next_cursor = getattr(result.next_cursor, "cursor", None)
    return {
        "data": result.items,
        "next_cursor": next_cursor,
        "has_more": result.has_more,
    }
