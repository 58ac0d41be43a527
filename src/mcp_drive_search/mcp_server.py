"""FastMCP server definition (tools + resources)."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from .credentials import StaticCredentialProvider
from .drive_client import DriveClient, RetryPolicy
from .errors import DriveError, http_status_for
from .models import ExportTarget, Node, SearchOutcome
from .service import DriveSearchService
from .settings import Settings


@contextmanager
def _engine_errors() -> Iterator[None]:
    try:
        yield
    except DriveError as exc:
        raise ToolError(f"[{http_status_for(exc)}] {exc}") from exc


def create_drive_client(settings: Settings, **overrides: Any) -> DriveClient:
    return DriveClient(
        base_url=str(settings.drive_api_base_url),
        credentials=StaticCredentialProvider(settings.drive_access_token or ""),
        timeout_seconds=settings.http_timeout_seconds,
        page_size=settings.page_size,
        max_in_flight=settings.max_in_flight,
        retry=RetryPolicy(
            max_retries=settings.max_retries,
            backoff_base=settings.backoff_base_seconds,
            backoff_max=settings.backoff_max_seconds,
            reauth_attempts=settings.reauth_attempts,
        ),
        **overrides,
    )


def _format_listing(nodes: list[Node]) -> str:
    lines = []
    for node in nodes:
        marker = "[dir]" if node.is_folder else "[file]"
        lines.append(f"{marker} {node.name} ({node.id})")
    return "\n".join(lines)


def create_mcp_server(service: DriveSearchService) -> FastMCP:
    mcp = FastMCP(
        "Drive Search",
        instructions=(
            "Read-only search over a Google Drive folder tree. "
            "Use drive_search to find files by name anywhere under the configured root, "
            "drive_list_folder to browse, and drive_resolve_path to display folder locations."
        ),
        stateless_http=True,
        json_response=True,
    )

    @mcp.resource("drive-folder://{folder_id}")
    async def read_folder_resource(folder_id: str) -> str:
        """List a folder's direct children as text."""
        with _engine_errors():
            nodes = await service.list_folder(folder_id)
        return _format_listing(nodes)

    @mcp.tool()
    async def drive_search(
        query: str,
        folder_id: str | None = None,
        max_depth: int | None = None,
    ) -> SearchOutcome:
        """Find files and folders whose name contains `query` under a folder (default: root)."""
        with _engine_errors():
            return await service.search(query, folder_id, max_depth=max_depth)

    @mcp.tool()
    async def drive_list_folder(folder_id: str | None = None) -> list[Node]:
        """List the direct children of a folder (default: root)."""
        with _engine_errors():
            return await service.list_folder(folder_id)

    @mcp.tool()
    async def drive_resolve_path(folder_id: str) -> dict[str, Any]:
        """Display path of a folder relative to the root."""
        with _engine_errors():
            path = await service.resolve_path(folder_id)
        return {"folder_id": folder_id, "path": path}

    @mcp.tool()
    async def drive_get_file(file_id: str) -> Node:
        """Metadata for a single file or folder."""
        with _engine_errors():
            return await service.get_node(file_id)

    @mcp.tool()
    async def drive_folder_info(folder_id: str | None = None) -> Node:
        """Metadata for a folder (default: root)."""
        with _engine_errors():
            return await service.folder_info(folder_id)

    @mcp.tool()
    async def drive_export_target(file_id: str) -> ExportTarget:
        """How to fetch a file's content: raw download or export to another type."""
        with _engine_errors():
            return await service.export_target(file_id)

    @mcp.tool()
    async def drive_invalidate_caches() -> dict[str, Any]:
        """Forget the folder index, paths and ancestry learned so far."""
        service.invalidate_caches()
        return {"invalidated": True, "generation": service.caches.generation}

    return mcp
