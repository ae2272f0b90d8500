"""Sender tools for the Cakemail MCP server."""

import logging
from typing import Any, Dict, Optional

from ..client import CakemailClient
from ..pagination import IteratorOptions

logger = logging.getLogger(__name__)

SENDERS_PATH = "/brands/default/senders"


async def list_senders(
    client: CakemailClient,
    max_results: Optional[int] = None,
) -> Dict[str, Any]:
    """List the senders of the current account, following every page.

    :param client: Cakemail client
    :param max_results: Optional cap on the number of senders returned
    :return: ``{"data": [...], "count": n}``
    """
    account_id = await client.get_current_account_id()
    params = {"account_id": account_id} if account_id else None
    senders = await client.get_all_items(
        SENDERS_PATH,
        "senders",
        IteratorOptions(max_results=max_results),
        params=params,
    )
    logger.debug("Fetched %d sender(s)", len(senders))
    return {"data": senders, "count": len(senders)}
