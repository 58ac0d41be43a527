from __future__ import annotations

import pytest
from mcp.server.fastmcp.exceptions import ToolError

from mcp_drive_search.mcp_server import create_mcp_server


async def test_tools_are_registered(service) -> None:
    mcp = create_mcp_server(service)
    names = {tool.name for tool in await mcp.list_tools()}
    assert names == {
        "drive_search",
        "drive_list_folder",
        "drive_resolve_path",
        "drive_get_file",
        "drive_folder_info",
        "drive_export_target",
        "drive_invalidate_caches",
    }


async def test_engine_errors_become_tool_errors(service) -> None:
    mcp = create_mcp_server(service)
    with pytest.raises(ToolError, match=r"\[400\]"):
        await mcp.call_tool("drive_export_target", {"file_id": "A"})
    with pytest.raises(ToolError, match=r"\[404\]"):
        await mcp.call_tool("drive_get_file", {"file_id": "ghost"})
