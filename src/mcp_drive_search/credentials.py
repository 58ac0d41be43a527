"""Credential providers.

Issuing and refreshing credentials happens elsewhere; the engine only needs
the current bearer token and a hook to ask for a replacement after the store
answered 401.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Protocol

import structlog

from .errors import ReauthExhaustedError

logger = structlog.get_logger(__name__)

RefreshHook = Callable[[str], Awaitable[str]]


class CredentialProvider(Protocol):
    @property
    def token(self) -> str: ...

    async def refresh(self, stale_token: str) -> str:
        """Return a credential that differs from ``stale_token``."""
        ...


class StaticCredentialProvider:
    """A fixed token, e.g. from DRIVE_ACCESS_TOKEN. It cannot be refreshed."""

    def __init__(self, token: str) -> None:
        self._token = token

    @property
    def token(self) -> str:
        return self._token

    async def refresh(self, stale_token: str) -> str:
        raise ReauthExhaustedError("static credential was rejected and cannot be refreshed")


class CallbackCredentialProvider:
    """Delegates refresh to an async hook supplied by the credential owner.

    Call chains that fail with the same stale token share one refresh; a chain
    whose token was already replaced just picks up the new one.
    """

    def __init__(self, token: str, hook: RefreshHook) -> None:
        self._token = token
        self._hook = hook
        self._lock = asyncio.Lock()

    @property
    def token(self) -> str:
        return self._token

    def push(self, token: str) -> None:
        """Accept a replacement the owner produced on its own schedule."""
        self._token = token

    async def refresh(self, stale_token: str) -> str:
        async with self._lock:
            if self._token != stale_token:
                return self._token
            logger.info("credential_refresh_requested")
            try:
                fresh = await self._hook(stale_token)
            except ReauthExhaustedError:
                raise
            except Exception as exc:
                raise ReauthExhaustedError(f"credential refresh failed: {exc}") from exc
            if not fresh or fresh == stale_token:
                raise ReauthExhaustedError("credential provider returned no new credential")
            self._token = fresh
            return fresh
