"""Tests for MCP tool registration."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from cakemail_mcp.exceptions import NotFoundError
from cakemail_mcp.server import builtin_tools


class DummyServer:
    """Records tools registered through ``server.tool(...)``."""

    def __init__(self):
        self.tools = {}

    def tool(self, name, description):
        def decorator(fn):
            self.tools[name] = fn
            return fn

        return decorator


@pytest.fixture
def server():
    srv = DummyServer()
    builtin_tools.register_all_builtin_tools(srv)
    return srv


@pytest.fixture
def client(monkeypatch):
    fake = MagicMock()
    monkeypatch.setattr(
        builtin_tools, "get_cakemail_client", AsyncMock(return_value=fake)
    )
    return fake


def test_all_tools_registered(server):
    assert set(server.tools) == {
        "cakemail_health_check",
        "cakemail_get_diagnostics",
        "cakemail_list_senders",
        "cakemail_list_campaigns",
        "cakemail_get_campaign",
        "cakemail_delete_campaign",
        "cakemail_list_campaign_logs",
    }


@pytest.mark.asyncio
async def test_tool_returns_api_data(server, client):
    client.get = AsyncMock(return_value={"data": {"id": 3}})

    result = await server.tools["cakemail_get_campaign"](campaign_id=3)

    assert result == {"data": {"id": 3}}
    client.get.assert_awaited_once_with("/campaigns/3")


@pytest.mark.asyncio
async def test_tool_returns_error_dict(server, client):
    client.get = AsyncMock(
        side_effect=NotFoundError("missing", status_code=404, endpoint="GET /campaigns/3")
    )

    result = await server.tools["cakemail_get_campaign"](campaign_id=3)

    assert result["error"] == "NOT_FOUND"
    assert result["details"]["status_code"] == 404
