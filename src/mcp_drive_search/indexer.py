"""Breadth-first discovery of the folder sub-tree under a root."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass

import structlog

from .batching import gather_settled
from .drive_client import DriveClient
from .models import FolderIndex, FolderIndexEntry, Node, NodeKind
from .paths import ROOT_PATH, join_path
from .session import SessionCaches

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class _Frontier:
    folder_id: str
    depth: int
    path: str


class StructureIndexer:
    """Builds a :class:`FolderIndex` and seeds the session path cache.

    A folder sitting at ``max_depth`` is indexed but never listed, so the walk
    stays finite no matter how deep the store goes.
    """

    def __init__(self, client: DriveClient, caches: SessionCaches, *, batch_size: int = 15) -> None:
        self._client = client
        self._caches = caches
        self._batch_size = batch_size

    async def ensure_index(self, root_id: str, max_depth: int) -> FolderIndex:
        """Return the session's index for ``root_id``, building it at most once."""
        existing = self._caches.indexes.get(root_id)
        if existing is not None and existing.max_depth >= max_depth:
            return existing
        async with self._caches.index_lock(root_id):
            existing = self._caches.indexes.get(root_id)
            if existing is not None and existing.max_depth >= max_depth:
                return existing
            generation = self._caches.generation
            index = await self.build_index(root_id, max_depth, generation=generation)
            if root_id in index.failed_folder_ids:
                # Not worth keeping: the next search should try the root again.
                return index
            return self._caches.publish_index(index, generation=generation)

    async def build_index(
        self, root_id: str, max_depth: int, *, generation: int | None = None
    ) -> FolderIndex:
        """BFS over folders. Cache writes stop if the caches are invalidated meanwhile."""
        if generation is None:
            generation = self._caches.generation
        started = time.perf_counter()
        index = FolderIndex(root_id=root_id, max_depth=max_depth)
        index.entries[root_id] = FolderIndexEntry(folder_id=root_id, resolved_path=ROOT_PATH, depth=0)
        self._caches.remember_path(root_id, root_id, ROOT_PATH, generation=generation)

        frontier: deque[_Frontier] = deque()
        if max_depth > 0:
            frontier.append(_Frontier(root_id, 0, ROOT_PATH))
        else:
            index.depth_limited = True

        batches = 0
        while frontier:
            batch = [frontier.popleft() for _ in range(min(self._batch_size, len(frontier)))]
            batches += 1
            settled = await gather_settled(batch, self._child_folders)
            for item, outcome in settled:
                if isinstance(outcome, Exception):
                    logger.warning(
                        "index_folder_failed",
                        root_id=root_id,
                        folder_id=item.folder_id,
                        error=str(outcome),
                    )
                    index.failed_folder_ids.add(item.folder_id)
                    continue
                self._record_children(index, item, outcome, frontier, generation)

        logger.info(
            "index_built",
            root_id=root_id,
            max_depth=max_depth,
            folders=len(index.entries),
            failed=len(index.failed_folder_ids),
            batches=batches,
            elapsed_ms=round((time.perf_counter() - started) * 1000),
        )
        return index

    async def _child_folders(self, item: _Frontier) -> list[Node]:
        return await self._client.collect_children(item.folder_id, kind_filter=NodeKind.FOLDER)

    def _record_children(
        self,
        index: FolderIndex,
        parent: _Frontier,
        children: list[Node],
        frontier: deque[_Frontier],
        generation: int,
    ) -> None:
        parent_entry = index.entries[parent.folder_id]
        child_depth = parent.depth + 1
        for child in children:
            parent_entry.child_folder_ids.add(child.id)
            if child.id in index.entries:
                continue
            path = join_path(parent.path, child.name)
            index.entries[child.id] = FolderIndexEntry(
                folder_id=child.id, resolved_path=path, depth=child_depth
            )
            self._caches.remember_path(index.root_id, child.id, path, generation=generation)
            if child_depth < index.max_depth:
                frontier.append(_Frontier(child.id, child_depth, path))
            else:
                index.depth_limited = True
