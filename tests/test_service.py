from __future__ import annotations

import pytest

from mcp_drive_search.errors import ConfigurationError, NotFoundError
from mcp_drive_search.service import DriveSearchService
from mcp_drive_search.settings import Settings


async def test_list_folder_puts_folders_first(drive, service) -> None:
    drive.add_file("r-a", "aaa.pdf", "R")
    nodes = await service.list_folder()
    assert [n.id for n in nodes] == ["A", "B", "r-a"]


async def test_list_folder_by_id(service) -> None:
    nodes = await service.list_folder("B")
    assert [n.name for n in nodes] == ["Archive", "report-x.pdf"]


async def test_folder_info_defaults_to_root(service) -> None:
    node = await service.folder_info()
    assert node.id == "R"
    assert node.name == "Curriculum"
    assert node.is_folder


async def test_get_node_missing(service) -> None:
    with pytest.raises(NotFoundError):
        await service.get_node("ghost")


async def test_resolve_path_relative_to_configured_root(service) -> None:
    assert await service.resolve_path("B1") == "/B/Archive"
    assert await service.resolve_path("B1", root_id="B") == "/Archive"


async def test_export_target_for_a_file(drive, service) -> None:
    drive.add_file("doc", "Syllabus", "A", mime="application/vnd.google-apps.document", size=None)
    target = await service.export_target("doc")
    assert target.export
    assert target.name == "Syllabus.pdf"


async def test_export_target_rejects_folders(service) -> None:
    with pytest.raises(ConfigurationError):
        await service.export_target("A")


async def test_invalidate_caches_drops_session_state(service) -> None:
    await service.search("x")
    assert service.caches.ancestry
    generation = service.caches.generation

    service.invalidate_caches()

    assert service.caches.ancestry == {}
    assert service.caches.paths == {}
    assert service.caches.indexes == {}
    assert service.caches.generation == generation + 1


async def test_root_is_verified_once_per_session(drive, service) -> None:
    await service.search("x")
    await service.search("report")
    assert [c.node_id for c in drive.calls if c.kind == "get"].count("R") == 1


def test_is_configured(client) -> None:
    assert DriveSearchService(client, root_folder_id="R").is_configured
    assert not DriveSearchService(client, root_folder_id=None).is_configured


def test_from_settings(monkeypatch, client) -> None:
    monkeypatch.setenv("MCP_API_KEY", "k")
    monkeypatch.setenv("GOOGLE_DRIVE_FOLDER_ID", "R")
    monkeypatch.setenv("NAIVE_MAX_DEPTH", "2")
    monkeypatch.setenv("GLOBAL_EMPTY_FALLBACK", "true")
    service = DriveSearchService.from_settings(Settings(_env_file=None), client)
    assert service.root_folder_id == "R"
    assert service.coordinator()._naive_max_depth == 2
    assert service.coordinator()._global_empty_fallback is True
