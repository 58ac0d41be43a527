"""Structured models for Drive nodes, the folder index and search results."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
NATIVE_MIME_PREFIX = "application/vnd.google-apps."
DEFAULT_EXPORT_MIME_TYPE = "application/pdf"

# Fields requested for every node listing / lookup.
NODE_FIELDS = "id,name,mimeType,parents,size,modifiedTime,webViewLink,thumbnailLink"


class NodeKind(str, Enum):
    FOLDER = "folder"
    LEAF = "leaf"


def export_mime_for(mime_type: str | None) -> str | None:
    """Native documents have no bytes of their own and must be exported."""
    if not mime_type or mime_type == FOLDER_MIME_TYPE:
        return None
    if mime_type.startswith(NATIVE_MIME_PREFIX):
        return DEFAULT_EXPORT_MIME_TYPE
    return None


class Node(BaseModel):
    """A file or folder as returned by the Drive files API."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: str = ""
    mime_type: str | None = Field(default=None, alias="mimeType")
    kind: NodeKind = NodeKind.LEAF
    parent_ids: tuple[str, ...] = Field(default=(), alias="parents")
    size: int | None = None
    modified_at: datetime | None = Field(default=None, alias="modifiedTime")
    web_view_link: str | None = Field(default=None, alias="webViewLink")
    thumbnail_link: str | None = Field(default=None, alias="thumbnailLink")
    exportable_as: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _derive_kind(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        mime = data.get("mimeType", data.get("mime_type"))
        if mime is not None:
            data = dict(data)
            if "kind" not in data:
                data["kind"] = NodeKind.FOLDER if mime == FOLDER_MIME_TYPE else NodeKind.LEAF
            if "exportable_as" not in data:
                data["exportable_as"] = export_mime_for(mime)
        return data

    @property
    def is_folder(self) -> bool:
        return self.kind is NodeKind.FOLDER

    @property
    def primary_parent_id(self) -> str | None:
        return self.parent_ids[0] if self.parent_ids else None


class FolderIndexEntry(BaseModel):
    folder_id: str
    child_folder_ids: set[str] = Field(default_factory=set)
    resolved_path: str
    depth: int = Field(ge=0)


class FolderIndex(BaseModel):
    """Folder topology under one root, as discovered by a single BFS pass."""

    root_id: str
    max_depth: int = Field(ge=0)
    entries: dict[str, FolderIndexEntry] = Field(default_factory=dict)
    failed_folder_ids: set[str] = Field(default_factory=set)
    # True when at least one folder sat at max_depth and was left unexplored.
    depth_limited: bool = False

    def folder_ids(self) -> list[str]:
        return list(self.entries)

    def path_of(self, folder_id: str) -> str | None:
        entry = self.entries.get(folder_id)
        return entry.resolved_path if entry else None

    @property
    def complete(self) -> bool:
        return not self.failed_folder_ids and not self.depth_limited


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    root_id: str = Field(min_length=1)
    max_depth: int = Field(default=6, ge=0)
    concurrency_limit: int = Field(default=10, ge=1)

    @field_validator("query")
    @classmethod
    def _strip_query(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("query must not be blank")
        return value


class SearchHit(BaseModel):
    node: Node
    is_folder: bool
    resolved_path: str
    folder_path: str
    display_size: str


class Strategy(str, Enum):
    GLOBAL = "global"
    INDEXED = "indexed"
    NAIVE = "naive"


class SearchOutcome(BaseModel):
    query: str
    root_id: str
    strategy: Strategy
    hits: list[SearchHit] = Field(default_factory=list)
    fully_explored: bool = True
    diagnostics: list[str] = Field(default_factory=list)

    def node_ids(self) -> set[str]:
        return {hit.node.id for hit in self.hits}


class ExportTarget(BaseModel):
    node_id: str
    name: str
    source_mime_type: str | None = None
    mime_type: str
    export: bool
