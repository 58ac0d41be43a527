"""Async, read-only client for the Drive v3 files API."""

from __future__ import annotations

import asyncio
import copy
import random
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from .credentials import CredentialProvider
from .errors import (
    ConfigurationError,
    DriveApiError,
    NotFoundError,
    RateLimitedError,
    ReauthExhaustedError,
    TransientError,
    UnauthorizedError,
)
from .models import FOLDER_MIME_TYPE, NODE_FIELDS, Node, NodeKind

logger = structlog.get_logger(__name__)

_RATE_LIMIT_REASONS = frozenset({"rateLimitExceeded", "userRateLimitExceeded"})


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Backoff discipline applied to every remote call."""

    max_retries: int = 5
    backoff_base: float = 1.0
    backoff_max: float = 60.0
    reauth_attempts: int = 1
    jitter: float = 0.3

    def delay(self, attempt: int) -> float:
        base = min(self.backoff_base * (2**attempt), self.backoff_max)
        return max(0.0, base + base * self.jitter * (2 * random.random() - 1))


def quote(value: str) -> str:
    """Quote a literal for the Drive query language."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def build_query(
    *,
    parent_id: str | None = None,
    name_contains: str | None = None,
    kind: NodeKind | None = None,
) -> str:
    clauses: list[str] = []
    if name_contains is not None:
        clauses.append(f"name contains {quote(name_contains)}")
    if parent_id is not None:
        clauses.append(f"{quote(parent_id)} in parents")
    clauses.append("trashed = false")
    if kind is NodeKind.FOLDER:
        clauses.append(f"mimeType = '{FOLDER_MIME_TYPE}'")
    elif kind is NodeKind.LEAF:
        clauses.append(f"mimeType != '{FOLDER_MIME_TYPE}'")
    return " and ".join(clauses)


def _error_details(resp: httpx.Response) -> tuple[str, str | None]:
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or "").strip() or f"HTTP {resp.status_code}", None
    err = body.get("error") if isinstance(body, dict) else None
    if not isinstance(err, dict):
        return str(err or f"HTTP {resp.status_code}"), None
    reason = None
    errors = err.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        reason = errors[0].get("reason")
    return str(err.get("message") or f"HTTP {resp.status_code}"), reason


def _retry_after(resp: httpx.Response) -> float | None:
    value = resp.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class DriveClient:
    """Thin wrapper around the Drive files API.

    Every call goes through one retry loop: rate limits back off and are
    reclassified as transient after ``max_retries``; transient failures are
    retried with the same budget; a rejected credential is refreshed through
    the provider and only the failed call is replayed.
    """

    def __init__(
        self,
        *,
        base_url: str,
        credentials: CredentialProvider,
        timeout_seconds: float = 15.0,
        page_size: int = 1000,
        max_in_flight: int = 8,
        retry: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._credentials = credentials
        self._page_size = page_size
        self._retry = retry or RetryPolicy()
        self._semaphore = asyncio.Semaphore(max_in_flight)
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )
        self._owns_client = True

    def with_credentials(self, credentials: CredentialProvider) -> DriveClient:
        """A view bound to another credential, sharing transport and fan-out budget."""
        view = copy.copy(self)
        view._credentials = credentials
        view._owns_client = False
        return view

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        method = method.upper()
        url_path = path if path.startswith("/") else f"/{path}"
        attempt = 0
        reauths = 0
        while True:
            token = self._credentials.token
            try:
                return await self._send(method, url_path, params, token)
            except UnauthorizedError as exc:
                if reauths >= self._retry.reauth_attempts:
                    raise ReauthExhaustedError(
                        f"credential rejected after {reauths} refresh attempt(s)"
                    ) from exc
                reauths += 1
                logger.info("drive_unauthorized", path=url_path, refresh_attempt=reauths)
                await self._credentials.refresh(token)
            except RateLimitedError as exc:
                if attempt >= self._retry.max_retries:
                    raise TransientError(
                        f"rate limited after {attempt} retries",
                        status_code=exc.status_code,
                        method=method,
                        url=exc.url,
                        reason=exc.reason,
                    ) from exc
                delay = (
                    min(exc.retry_after, self._retry.backoff_max)
                    if exc.retry_after is not None
                    else self._retry.delay(attempt)
                )
                attempt += 1
                logger.warning(
                    "drive_rate_limited",
                    path=url_path,
                    attempt=attempt,
                    delay_seconds=round(delay, 2),
                )
                await asyncio.sleep(delay)
            except TransientError as exc:
                if attempt >= self._retry.max_retries:
                    raise
                delay = self._retry.delay(attempt)
                attempt += 1
                logger.debug(
                    "drive_transient_retry",
                    path=url_path,
                    attempt=attempt,
                    error=exc.message,
                )
                await asyncio.sleep(delay)

    async def _send(
        self,
        method: str,
        url_path: str,
        params: dict[str, Any] | None,
        token: str,
    ) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        async with self._semaphore:
            try:
                resp = await self._client.request(method, url_path, params=params, headers=headers)
            except httpx.TimeoutException as exc:
                raise TransientError(f"timeout: {exc}", method=method, url=url_path) from exc
            except httpx.TransportError as exc:
                raise TransientError(f"network error: {exc}", method=method, url=url_path) from exc

        if resp.status_code >= 400:
            self._raise_for_status(resp, method)

        try:
            data = resp.json()
        except ValueError as exc:
            raise TransientError(
                "invalid JSON from Drive API",
                status_code=resp.status_code,
                method=method,
                url=str(resp.request.url),
            ) from exc
        if not isinstance(data, dict):
            raise TransientError(
                f"Unexpected JSON type: {type(data).__name__}",
                status_code=resp.status_code,
                method=method,
                url=str(resp.request.url),
            )
        return data

    @staticmethod
    def _raise_for_status(resp: httpx.Response, method: str) -> None:
        message, reason = _error_details(resp)
        status = resp.status_code
        url = str(resp.request.url)
        if status == 401:
            raise UnauthorizedError(message, status_code=status, method=method, url=url, reason=reason)
        if status == 429 or (status == 403 and reason in _RATE_LIMIT_REASONS):
            raise RateLimitedError(
                message,
                status_code=status,
                method=method,
                url=url,
                reason=reason,
                retry_after=_retry_after(resp),
            )
        if status in (403, 404):
            raise NotFoundError(message, status_code=status, method=method, url=url, reason=reason)
        if status == 400:
            raise ConfigurationError(f"Drive rejected the request: {message}")
        if status == 408 or status >= 500:
            raise TransientError(message, status_code=status, method=method, url=url, reason=reason)
        raise DriveApiError(message, status_code=status, method=method, url=url, reason=reason)

    async def iter_files(self, q: str, *, order_by: str | None = None) -> AsyncIterator[Node]:
        """Walk every page of a ``files.list`` query."""
        page_token: str | None = None
        while True:
            params: dict[str, Any] = {
                "q": q,
                "fields": f"nextPageToken,files({NODE_FIELDS})",
                "pageSize": self._page_size,
                "supportsAllDrives": "true",
                "includeItemsFromAllDrives": "true",
            }
            if order_by:
                params["orderBy"] = order_by
            if page_token:
                params["pageToken"] = page_token
            raw = await self.request_json("GET", "/files", params=params)
            for item in raw.get("files") or []:
                yield Node.model_validate(item)
            page_token = raw.get("nextPageToken")
            if not page_token:
                return

    def list_children(
        self,
        parent_id: str,
        *,
        kind_filter: NodeKind | None = None,
        name_contains: str | None = None,
    ) -> AsyncIterator[Node]:
        q = build_query(parent_id=parent_id, name_contains=name_contains, kind=kind_filter)
        return self.iter_files(q, order_by="folder,name")

    def search_by_name(
        self,
        name_contains: str,
        *,
        kind_filter: NodeKind | None = None,
    ) -> AsyncIterator[Node]:
        """Store-wide name query, no parent restriction."""
        q = build_query(name_contains=name_contains, kind=kind_filter)
        return self.iter_files(q, order_by="name")

    async def collect_children(
        self,
        parent_id: str,
        *,
        kind_filter: NodeKind | None = None,
        name_contains: str | None = None,
    ) -> list[Node]:
        return [
            node
            async for node in self.list_children(
                parent_id, kind_filter=kind_filter, name_contains=name_contains
            )
        ]

    async def get_node(self, node_id: str) -> Node:
        raw = await self.request_json(
            "GET",
            f"/files/{node_id}",
            params={"fields": NODE_FIELDS, "supportsAllDrives": "true"},
        )
        return Node.model_validate(raw)
