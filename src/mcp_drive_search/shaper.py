"""Turns raw Drive nodes into search records."""

from __future__ import annotations

from collections.abc import Iterable

from .models import DEFAULT_EXPORT_MIME_TYPE, ExportTarget, Node, SearchHit
from .paths import join_path

_SIZE_UNITS = ("B", "KB", "MB", "GB")


def format_size(size: int | None) -> str:
    if size is None:
        return "Unknown size"
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{value:.1f} {_SIZE_UNITS[unit]}"


class ResultShaper:
    def shape(self, node: Node, folder_path: str) -> SearchHit:
        """``folder_path`` is the display path of the folder holding ``node``."""
        return SearchHit(
            node=node,
            is_folder=node.is_folder,
            resolved_path=join_path(folder_path, node.name),
            folder_path=folder_path,
            display_size=format_size(node.size),
        )

    def shape_many(self, pairs: Iterable[tuple[Node, str]]) -> list[SearchHit]:
        seen: set[str] = set()
        hits: list[SearchHit] = []
        for node, folder_path in pairs:
            if node.id in seen:
                continue
            seen.add(node.id)
            hits.append(self.shape(node, folder_path))
        return hits

    def export_target(self, node: Node) -> ExportTarget:
        """What the streaming side should ask the store for when ``node`` is opened."""
        if node.exportable_as:
            name = node.name
            if node.exportable_as == DEFAULT_EXPORT_MIME_TYPE and not name.lower().endswith(".pdf"):
                name = f"{name}.pdf"
            return ExportTarget(
                node_id=node.id,
                name=name,
                source_mime_type=node.mime_type,
                mime_type=node.exportable_as,
                export=True,
            )
        return ExportTarget(
            node_id=node.id,
            name=node.name,
            source_mime_type=node.mime_type,
            mime_type=node.mime_type or "application/octet-stream",
            export=False,
        )
