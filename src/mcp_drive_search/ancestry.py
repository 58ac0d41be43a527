"""Descendant checks via memoized parent-chain walks."""

from __future__ import annotations

import structlog

from .drive_client import DriveClient
from .errors import DriveError, NotFoundError, ReauthExhaustedError
from .models import Node
from .session import SessionCaches

logger = structlog.get_logger(__name__)


class AncestryResolver:
    """Answers "is X somewhere under root R?" by following primary parents upward.

    Only confirmed answers are memoized: reaching the root, reaching a node
    with no parent, a vanished node, or a parent cycle. A chain cut short by a
    transient fetch failure (or the hop cap) is left uncached and answers
    ``None``, meaning "unknown" rather than "unrelated".
    """

    def __init__(self, client: DriveClient, caches: SessionCaches, *, max_hops: int = 64) -> None:
        self._client = client
        self._caches = caches
        self._max_hops = max_hops

    async def is_descendant(self, node_id: str, root_id: str) -> bool | None:
        return await self._walk(node_id, root_id, first_parent=None, parent_known=False)

    async def is_node_descendant(self, node: Node, root_id: str) -> bool | None:
        """Same as ``is_descendant`` but skips the lookup of ``node`` itself."""
        return await self._walk(
            node.id, root_id, first_parent=node.primary_parent_id, parent_known=True
        )

    async def _walk(
        self,
        node_id: str,
        root_id: str,
        *,
        first_parent: str | None,
        parent_known: bool,
    ) -> bool | None:
        generation = self._caches.generation
        chain: list[str] = []
        current = node_id
        answer = False
        confirmed = True

        while True:
            if current == root_id:
                answer = True
                break
            cached = self._caches.known_ancestry(current, root_id)
            if cached is not None:
                answer = cached
                break
            if current in chain:
                logger.warning("ancestry_cycle", node_id=node_id, at=current)
                break
            if len(chain) >= self._max_hops:
                confirmed = False
                break
            chain.append(current)

            if parent_known and len(chain) == 1:
                parent = first_parent
            else:
                try:
                    parent = (await self._client.get_node(current)).primary_parent_id
                except ReauthExhaustedError:
                    raise
                except NotFoundError:
                    break
                except DriveError as exc:
                    logger.warning(
                        "ancestry_lookup_failed", node_id=current, root_id=root_id, error=str(exc)
                    )
                    confirmed = False
                    break

            if parent is None:
                break
            current = parent

        if not confirmed:
            return None
        for visited in chain:
            self._caches.remember_ancestry(visited, root_id, answer, generation=generation)
        known = self._caches.known_ancestry(node_id, root_id)
        return answer if known is None else known
