from __future__ import annotations

import asyncio

from mcp_drive_search.indexer import StructureIndexer
from mcp_drive_search.session import SessionCaches


async def test_index_covers_the_whole_tree(drive, client) -> None:
    caches = SessionCaches()
    index = await StructureIndexer(client, caches).build_index("R", 6)

    assert set(index.folder_ids()) == {"R", "A", "B", "B1"}
    assert index.path_of("R") == "/"
    assert index.path_of("B1") == "/B/Archive"
    assert index.entries["B1"].depth == 2
    assert index.entries["B"].child_folder_ids == {"B1"}
    assert index.complete
    # C lives beside the root and is never reached.
    assert "C" not in index.entries
    assert caches.paths_for("R")["B1"] == "/B/Archive"


async def test_folders_at_max_depth_are_not_listed(drive, client) -> None:
    index = await StructureIndexer(client, SessionCaches()).build_index("R", 1)

    assert set(index.folder_ids()) == {"R", "A", "B"}
    assert index.depth_limited
    assert drive.list_calls(parent="A") == []
    assert drive.list_calls(parent="B") == []


async def test_zero_depth_index_holds_only_the_root(drive, client) -> None:
    index = await StructureIndexer(client, SessionCaches()).build_index("R", 0)
    assert index.folder_ids() == ["R"]
    assert index.depth_limited
    assert drive.list_calls() == []


async def test_batches_respect_batch_size(drive, client) -> None:
    for n in range(5):
        drive.add_folder(f"A{n}", f"sub {n}", "A")
    index = await StructureIndexer(client, SessionCaches(), batch_size=2).build_index("R", 6)
    assert len(index.entries) == 9


async def test_one_failing_folder_does_not_abort_the_walk(drive, client) -> None:
    drive.fail_when(lambda c: c.parent == "A", 500)
    index = await StructureIndexer(client, SessionCaches()).build_index("R", 6)

    assert index.failed_folder_ids == {"A"}
    assert "B1" in index.entries
    assert not index.complete


async def test_ensure_index_reuses_a_deep_enough_index(drive, client) -> None:
    caches = SessionCaches()
    indexer = StructureIndexer(client, caches)
    first = await indexer.ensure_index("R", 6)
    calls = len(drive.calls)

    assert await indexer.ensure_index("R", 3) is first
    assert len(drive.calls) == calls
    assert caches.indexes["R"] is first


async def test_ensure_index_rebuilds_for_a_deeper_request(drive, client) -> None:
    caches = SessionCaches()
    indexer = StructureIndexer(client, caches)
    shallow = await indexer.ensure_index("R", 1)
    deep = await indexer.ensure_index("R", 6)

    assert deep is not shallow
    assert "B1" in deep.entries
    assert caches.indexes["R"] is deep


async def test_concurrent_ensure_index_builds_once(drive, client) -> None:
    drive.delay = 0.01
    indexer = StructureIndexer(client, SessionCaches())
    first, second = await asyncio.gather(
        indexer.ensure_index("R", 6), indexer.ensure_index("R", 6)
    )
    assert first is second
    assert len(drive.list_calls(parent="R")) == 1


async def test_root_listing_failure_is_not_published(drive, client) -> None:
    caches = SessionCaches()
    indexer = StructureIndexer(client, caches)
    drive.fail_when(lambda c: c.parent == "R", 503, times=2)

    index = await indexer.ensure_index("R", 6)
    assert index.failed_folder_ids == {"R"}
    assert "R" not in caches.indexes

    index = await indexer.ensure_index("R", 6)
    assert "B1" in index.entries
    assert caches.indexes["R"] is index


async def test_tree_shallower_than_the_bound_is_complete(client) -> None:
    index = await StructureIndexer(client, SessionCaches()).build_index("R", 3)
    assert not index.depth_limited
    assert index.complete


async def test_build_overtaken_by_invalidation_is_discarded(drive, client) -> None:
    drive.delay = 0.02
    caches = SessionCaches()
    indexer = StructureIndexer(client, caches)
    build = asyncio.create_task(indexer.ensure_index("R", 6))
    await asyncio.sleep(0.03)
    caches.invalidate()

    stale = await build
    assert "B1" in stale.entries
    assert caches.indexes == {}
    assert caches.paths == {}

    fresh = await indexer.ensure_index("R", 6)
    assert fresh is not stale
    assert caches.indexes["R"] is fresh
    assert caches.paths_for("R")["B1"] == "/B/Archive"
