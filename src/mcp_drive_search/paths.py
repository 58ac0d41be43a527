"""Folder id -> slash-joined display path, memoized per root."""

from __future__ import annotations

import structlog

from .drive_client import DriveClient
from .errors import DriveError, ReauthExhaustedError
from .session import SessionCaches

logger = structlog.get_logger(__name__)

ROOT_PATH = "/"
UNKNOWN_PATH = "/unknown"


def join_path(parent_path: str, name: str) -> str:
    if parent_path == ROOT_PATH:
        return f"/{name}"
    return f"{parent_path}/{name}"


class PathResolver:
    """Resolves display paths relative to a root folder.

    Paths are display data only. Any lookup failure on the way up yields
    ``/unknown`` and nothing is cached for that walk.
    """

    def __init__(self, client: DriveClient, caches: SessionCaches, *, max_hops: int = 64) -> None:
        self._client = client
        self._caches = caches
        self._max_hops = max_hops

    async def resolve_path(self, folder_id: str | None, root_id: str) -> str:
        if not folder_id or folder_id == root_id:
            return ROOT_PATH
        generation = self._caches.generation
        table = self._caches.paths_for(root_id)
        if folder_id in table:
            return table[folder_id]

        pending: list[tuple[str, str]] = []
        current = folder_id
        base = ROOT_PATH
        while True:
            if current == root_id:
                break
            cached = table.get(current)
            if cached is not None:
                base = cached
                break
            if len(pending) >= self._max_hops or any(fid == current for fid, _ in pending):
                logger.warning("path_walk_aborted", folder_id=folder_id, at=current)
                return UNKNOWN_PATH
            try:
                node = await self._client.get_node(current)
            except ReauthExhaustedError:
                raise
            except DriveError as exc:
                logger.warning("path_lookup_failed", folder_id=folder_id, at=current, error=str(exc))
                return UNKNOWN_PATH
            pending.append((current, node.name))
            if node.primary_parent_id is None:
                # Topped out outside the root: anchor at the topmost ancestor.
                break
            current = node.primary_parent_id

        path = base
        for fid, name in reversed(pending):
            path = self._caches.remember_path(
                root_id, fid, join_path(path, name), generation=generation
            )
        return path
