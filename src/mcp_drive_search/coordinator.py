"""Search orchestration: global query, indexed per-folder query, naive recursion."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import structlog

from .ancestry import AncestryResolver
from .batching import batched, gather_settled, run_in_batches
from .drive_client import DriveClient
from .errors import (
    HARD_FAILURES,
    DriveError,
    SearchFailedError,
    StrategyUnavailableError,
)
from .indexer import StructureIndexer
from .models import FolderIndex, Node, NodeKind, SearchOutcome, SearchRequest, Strategy
from .paths import ROOT_PATH, PathResolver, join_path
from .session import SessionCaches
from .shaper import ResultShaper

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class _Collected:
    pairs: list[tuple[Node, str]] = field(default_factory=list)
    failed_folders: set[str] = field(default_factory=set)
    depth_limited: bool = False
    unplaced: int = 0
    notes: list[str] = field(default_factory=list)


@dataclass(slots=True)
class _NaiveRun:
    query: str
    root_id: str
    max_depth: int
    generation: int
    visited: set[str] = field(default_factory=set)
    collected: _Collected = field(default_factory=_Collected)


class SearchCoordinator:
    """Tries each strategy in turn and falls through only when one raises.

    An empty but successful answer is final unless ``global_empty_fallback``
    is set, in which case an empty global answer is re-checked by the
    indexed strategy.
    """

    def __init__(
        self,
        client: DriveClient,
        caches: SessionCaches,
        *,
        ancestry: AncestryResolver,
        paths: PathResolver,
        indexer: StructureIndexer,
        shaper: ResultShaper,
        naive_max_depth: int = 8,
        naive_batch_size: int = 3,
        global_empty_fallback: bool = False,
        global_candidate_limit: int = 1000,
    ) -> None:
        self._client = client
        self._caches = caches
        self._ancestry = ancestry
        self._paths = paths
        self._indexer = indexer
        self._shaper = shaper
        self._naive_max_depth = naive_max_depth
        self._naive_batch_size = naive_batch_size
        self._global_empty_fallback = global_empty_fallback
        self._global_candidate_limit = global_candidate_limit

    def _strategies(self) -> list[tuple[Strategy, Callable[[SearchRequest], Awaitable[_Collected]]]]:
        return [
            (Strategy.GLOBAL, self.global_attempt),
            (Strategy.INDEXED, self.indexed_attempt),
            (Strategy.NAIVE, self.naive_attempt),
        ]

    async def search(self, request: SearchRequest) -> SearchOutcome:
        started = time.perf_counter()
        diagnostics: list[str] = []
        attempted: list[str] = []

        for strategy, attempt in self._strategies():
            attempted.append(strategy.value)
            try:
                collected = await attempt(request)
            except HARD_FAILURES:
                raise
            except DriveError as exc:
                logger.warning(
                    "search_strategy_failed",
                    strategy=strategy.value,
                    root_id=request.root_id,
                    error=str(exc),
                )
                diagnostics.append(f"{strategy.value} search failed: {exc}")
                continue

            if (
                strategy is Strategy.GLOBAL
                and not collected.pairs
                and self._global_empty_fallback
            ):
                diagnostics.append("global search found nothing; re-checking folder by folder")
                continue

            hits = self._shaper.shape_many(collected.pairs)
            hits.sort(key=lambda hit: (hit.resolved_path, hit.node.id))
            fully_explored = not (
                collected.failed_folders or collected.depth_limited or collected.unplaced
            )
            diagnostics.extend(collected.notes)
            if collected.failed_folders:
                diagnostics.append(f"{len(collected.failed_folders)} folder(s) could not be searched")
            if collected.depth_limited:
                diagnostics.append("folders below the depth limit were not explored")

            logger.info(
                "search_completed",
                strategy=strategy.value,
                root_id=request.root_id,
                hits=len(hits),
                fully_explored=fully_explored,
                elapsed_ms=round((time.perf_counter() - started) * 1000),
            )
            return SearchOutcome(
                query=request.query,
                root_id=request.root_id,
                strategy=strategy,
                hits=hits,
                fully_explored=fully_explored,
                diagnostics=diagnostics,
            )

        raise SearchFailedError(
            f"all search strategies failed for root {request.root_id}",
            attempted=tuple(attempted),
        )

    # Global ------------------------------------------------------------------

    async def global_attempt(self, request: SearchRequest) -> _Collected:
        candidates: list[Node] = []
        async for node in self._client.search_by_name(request.query):
            if node.id == request.root_id:
                continue
            candidates.append(node)
            if len(candidates) > self._global_candidate_limit:
                raise StrategyUnavailableError(
                    f"more than {self._global_candidate_limit} candidates for {request.query!r}",
                    strategy=Strategy.GLOBAL.value,
                )
        logger.debug("global_candidates", root_id=request.root_id, candidates=len(candidates))

        async def place(node: Node) -> tuple[bool | None, str | None]:
            inside = await self._ancestry.is_node_descendant(node, request.root_id)
            if not inside:
                return inside, None
            return True, await self._paths.resolve_path(node.primary_parent_id, request.root_id)

        collected = _Collected()
        for node, outcome in await run_in_batches(candidates, request.concurrency_limit, place):
            if isinstance(outcome, Exception):
                logger.warning("global_hit_unplaced", node_id=node.id, error=str(outcome))
                collected.unplaced += 1
                continue
            inside, folder_path = outcome
            if inside is None:
                logger.warning("global_hit_unplaced", node_id=node.id, error="ancestry unknown")
                collected.unplaced += 1
            elif inside and folder_path is not None:
                collected.pairs.append((node, folder_path))
        if collected.unplaced:
            collected.notes.append(
                f"{collected.unplaced} match(es) could not be checked against the root"
            )
        return collected

    # Indexed -----------------------------------------------------------------

    async def indexed_attempt(self, request: SearchRequest) -> _Collected:
        index = await self._indexer.ensure_index(request.root_id, request.max_depth)
        folder_ids = [
            fid for fid, entry in index.entries.items() if entry.depth <= request.max_depth
        ]

        async def query_folder(folder_id: str) -> list[Node]:
            return await self._client.collect_children(folder_id, name_contains=request.query)

        collected = _Collected(depth_limited=_depth_limited(index, request.max_depth))
        collected.failed_folders.update(index.failed_folder_ids)
        failures = 0
        for folder_id, outcome in await run_in_batches(
            folder_ids, request.concurrency_limit, query_folder
        ):
            if isinstance(outcome, Exception):
                failures += 1
                collected.failed_folders.add(folder_id)
                logger.warning(
                    "indexed_folder_failed",
                    root_id=request.root_id,
                    folder_id=folder_id,
                    error=str(outcome),
                )
                continue
            folder_path = index.path_of(folder_id) or ROOT_PATH
            collected.pairs.extend((node, folder_path) for node in outcome)

        if folder_ids and failures == len(folder_ids):
            raise StrategyUnavailableError(
                f"every folder query failed ({failures})", strategy=Strategy.INDEXED.value
            )
        return collected

    # Naive -------------------------------------------------------------------

    async def naive_attempt(self, request: SearchRequest) -> _Collected:
        run = _NaiveRun(
            query=request.query,
            root_id=request.root_id,
            max_depth=self._naive_max_depth,
            generation=self._caches.generation,
        )
        await self._naive_visit(run, request.root_id, ROOT_PATH, 0)
        return run.collected

    async def _naive_visit(self, run: _NaiveRun, folder_id: str, path: str, depth: int) -> None:
        if folder_id in run.visited:
            return
        run.visited.add(folder_id)

        queries: list[tuple[NodeKind, str | None]] = [
            (NodeKind.LEAF, run.query),
            (NodeKind.FOLDER, run.query),
        ]
        explore = depth < run.max_depth
        if explore:
            queries.append((NodeKind.FOLDER, None))
        else:
            run.collected.depth_limited = True

        async def list_kind(spec: tuple[NodeKind, str | None]) -> list[Node]:
            kind, name_contains = spec
            return await self._client.collect_children(
                folder_id, kind_filter=kind, name_contains=name_contains
            )

        settled = await gather_settled(queries, list_kind)
        errors = [outcome for _, outcome in settled if isinstance(outcome, Exception)]
        if errors:
            run.collected.failed_folders.add(folder_id)
            logger.warning(
                "naive_folder_failed",
                root_id=run.root_id,
                folder_id=folder_id,
                depth=depth,
                error=str(errors[0]),
            )
            matched_any = any(not isinstance(o, Exception) for _, o in settled[:2])
            if folder_id == run.root_id and not matched_any:
                raise StrategyUnavailableError(
                    f"root folder could not be queried: {errors[0]}",
                    strategy=Strategy.NAIVE.value,
                )

        for (_, name_contains), outcome in settled:
            if isinstance(outcome, Exception):
                continue
            if name_contains is not None:
                run.collected.pairs.extend((node, path) for node in outcome)

        if not explore:
            return
        children_outcome = settled[2][1]
        if isinstance(children_outcome, Exception):
            return

        async def visit_child(child: Node) -> None:
            child_path = self._caches.remember_path(
                run.root_id, child.id, join_path(path, child.name), generation=run.generation
            )
            await self._naive_visit(run, child.id, child_path, depth + 1)

        for batch in batched(children_outcome, self._naive_batch_size):
            for child, outcome in await gather_settled(batch, visit_child):
                if isinstance(outcome, Exception):
                    run.collected.failed_folders.add(child.id)
                    logger.warning("naive_branch_failed", folder_id=child.id, error=str(outcome))


def _depth_limited(index: FolderIndex, max_depth: int) -> bool:
    if index.max_depth == max_depth:
        return index.depth_limited
    # A deeper index knows whether folders at the requested depth have children.
    return any(
        entry.depth == max_depth and entry.child_folder_ids for entry in index.entries.values()
    )
