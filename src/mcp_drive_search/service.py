"""Engine facade: the operations a front end calls."""

from __future__ import annotations

import structlog
from pydantic import ValidationError

from .ancestry import AncestryResolver
from .coordinator import SearchCoordinator
from .credentials import CredentialProvider
from .drive_client import DriveClient
from .errors import ConfigurationError, NotFoundError, TransientError
from .indexer import StructureIndexer
from .models import ExportTarget, Node, SearchOutcome, SearchRequest
from .paths import PathResolver
from .session import SessionCaches
from .settings import Settings
from .shaper import ResultShaper

logger = structlog.get_logger(__name__)


class DriveSearchService:
    def __init__(
        self,
        client: DriveClient,
        *,
        root_folder_id: str | None,
        caches: SessionCaches | None = None,
        index_max_depth: int = 6,
        index_batch_size: int = 15,
        search_concurrency: int = 10,
        naive_max_depth: int = 8,
        naive_batch_size: int = 3,
        global_empty_fallback: bool = False,
        global_candidate_limit: int = 1000,
    ) -> None:
        self._client = client
        self._root_folder_id = root_folder_id
        self.caches = caches or SessionCaches()
        self._index_max_depth = index_max_depth
        self._index_batch_size = index_batch_size
        self._search_concurrency = search_concurrency
        self._naive_max_depth = naive_max_depth
        self._naive_batch_size = naive_batch_size
        self._global_empty_fallback = global_empty_fallback
        self._global_candidate_limit = global_candidate_limit
        self._shaper = ResultShaper()
        self._verified_roots: set[str] = set()

    @classmethod
    def from_settings(cls, settings: Settings, client: DriveClient) -> DriveSearchService:
        return cls(
            client,
            root_folder_id=settings.drive_root_folder_id,
            index_max_depth=settings.index_max_depth,
            index_batch_size=settings.index_batch_size,
            search_concurrency=settings.search_concurrency,
            naive_max_depth=settings.naive_max_depth,
            naive_batch_size=settings.naive_batch_size,
            global_empty_fallback=settings.global_empty_fallback,
            global_candidate_limit=settings.global_candidate_limit,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._root_folder_id)

    @property
    def root_folder_id(self) -> str | None:
        return self._root_folder_id

    def _root(self, root_id: str | None) -> str:
        target = root_id or self._root_folder_id
        if not target:
            raise ConfigurationError("No folder ID provided and GOOGLE_DRIVE_FOLDER_ID is not set")
        return target

    def _client_for(self, credentials: CredentialProvider | None) -> DriveClient:
        return self._client if credentials is None else self._client.with_credentials(credentials)

    def coordinator(self, client: DriveClient | None = None) -> SearchCoordinator:
        client = client or self._client
        return SearchCoordinator(
            client,
            self.caches,
            ancestry=AncestryResolver(client, self.caches),
            paths=PathResolver(client, self.caches),
            indexer=StructureIndexer(client, self.caches, batch_size=self._index_batch_size),
            shaper=self._shaper,
            naive_max_depth=self._naive_max_depth,
            naive_batch_size=self._naive_batch_size,
            global_empty_fallback=self._global_empty_fallback,
            global_candidate_limit=self._global_candidate_limit,
        )

    async def _verify_root(self, client: DriveClient, root_id: str) -> None:
        if root_id in self._verified_roots:
            return
        try:
            node = await client.get_node(root_id)
        except NotFoundError as exc:
            raise ConfigurationError(f"root folder {root_id} is not accessible") from exc
        except TransientError as exc:
            # Let the strategies find out; they degrade per folder.
            logger.warning("root_check_skipped", root_id=root_id, error=str(exc))
            return
        if not node.is_folder:
            raise ConfigurationError(f"root {root_id} is not a folder")
        self._verified_roots.add(root_id)

    async def search(
        self,
        query: str,
        root_id: str | None = None,
        *,
        max_depth: int | None = None,
        concurrency_limit: int | None = None,
        credentials: CredentialProvider | None = None,
    ) -> SearchOutcome:
        try:
            request = SearchRequest(
                query=query,
                root_id=self._root(root_id),
                max_depth=self._index_max_depth if max_depth is None else max_depth,
                concurrency_limit=(
                    self._search_concurrency if concurrency_limit is None else concurrency_limit
                ),
            )
        except ValidationError as exc:
            raise ConfigurationError(f"invalid search request: {exc.errors()[0]['msg']}") from exc

        client = self._client_for(credentials)
        await self._verify_root(client, request.root_id)
        logger.info("search_started", query=request.query, root_id=request.root_id)
        return await self.coordinator(client).search(request)

    async def list_folder(
        self,
        folder_id: str | None = None,
        *,
        credentials: CredentialProvider | None = None,
    ) -> list[Node]:
        """Direct children of a folder, folders first then by name."""
        target = self._root(folder_id)
        nodes = await self._client_for(credentials).collect_children(target)
        logger.info("folder_listed", folder_id=target, items=len(nodes))
        return nodes

    async def resolve_path(
        self,
        folder_id: str,
        root_id: str | None = None,
        *,
        credentials: CredentialProvider | None = None,
    ) -> str:
        client = self._client_for(credentials)
        return await PathResolver(client, self.caches).resolve_path(folder_id, self._root(root_id))

    async def get_node(
        self,
        node_id: str,
        *,
        credentials: CredentialProvider | None = None,
    ) -> Node:
        return await self._client_for(credentials).get_node(node_id)

    async def folder_info(
        self,
        folder_id: str | None = None,
        *,
        credentials: CredentialProvider | None = None,
    ) -> Node:
        return await self.get_node(self._root(folder_id), credentials=credentials)

    async def export_target(
        self,
        node_id: str,
        *,
        credentials: CredentialProvider | None = None,
    ) -> ExportTarget:
        node = await self.get_node(node_id, credentials=credentials)
        if node.is_folder:
            raise ConfigurationError(f"{node_id} is a folder and has no content")
        return self._shaper.export_target(node)

    def invalidate_caches(self) -> None:
        self._verified_roots.clear()
        self.caches.invalidate()
