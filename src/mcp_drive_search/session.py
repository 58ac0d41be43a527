"""Session-scoped caches shared by the resolvers, the indexer and the coordinator."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog

from .models import FolderIndex

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class SessionCaches:
    """Append-only memo tables for one process session.

    Writers use ``setdefault`` so that the first value stored for a key wins;
    later writers for the same key are discarded. A writer that passes the
    ``generation`` it started under is ignored once :meth:`invalidate` has run.
    """

    ancestry: dict[tuple[str, str], bool] = field(default_factory=dict)
    # root id -> folder id -> display path
    paths: dict[str, dict[str, str]] = field(default_factory=dict)
    indexes: dict[str, FolderIndex] = field(default_factory=dict)
    _index_locks: dict[str, asyncio.Lock] = field(default_factory=dict)
    generation: int = 0

    def _stale(self, generation: int | None) -> bool:
        return generation is not None and generation != self.generation

    def remember_ancestry(
        self, node_id: str, root_id: str, value: bool, *, generation: int | None = None
    ) -> bool:
        if self._stale(generation):
            return value
        return self.ancestry.setdefault((node_id, root_id), value)

    def known_ancestry(self, node_id: str, root_id: str) -> bool | None:
        return self.ancestry.get((node_id, root_id))

    def paths_for(self, root_id: str) -> dict[str, str]:
        table = self.paths.setdefault(root_id, {})
        table.setdefault(root_id, "/")
        return table

    def remember_path(
        self, root_id: str, folder_id: str, path: str, *, generation: int | None = None
    ) -> str:
        if self._stale(generation):
            return path
        return self.paths_for(root_id).setdefault(folder_id, path)

    def index_lock(self, root_id: str) -> asyncio.Lock:
        return self._index_locks.setdefault(root_id, asyncio.Lock())

    def publish_index(self, index: FolderIndex, *, generation: int | None = None) -> FolderIndex:
        if self._stale(generation):
            logger.info("stale_index_dropped", root_id=index.root_id, generation=generation)
            return index
        current = self.indexes.get(index.root_id)
        if current is None or current.max_depth < index.max_depth:
            self.indexes[index.root_id] = index
            return index
        return current

    def invalidate(self) -> None:
        """Drop everything, e.g. after a known structural change to the tree."""
        self.ancestry.clear()
        self.paths.clear()
        self.indexes.clear()
        self._index_locks.clear()
        self.generation += 1
        logger.info("session_caches_invalidated", generation=self.generation)
