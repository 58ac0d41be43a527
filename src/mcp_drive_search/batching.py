"""Bounded concurrent fan-out over remote calls."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Iterator, Sequence
from typing import TypeVar

from .errors import HARD_FAILURES

T = TypeVar("T")
R = TypeVar("R")


def batched(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


async def gather_settled(
    items: Iterable[T],
    fn: Callable[[T], Awaitable[R]],
) -> list[tuple[T, R | Exception]]:
    """Run ``fn`` over ``items`` concurrently and pair each item with its outcome.

    Ordinary exceptions are returned in place of results so that one failing
    folder cannot sink its batch. Hard failures and cancellation propagate.
    """
    pending = list(items)
    results = await asyncio.gather(*(fn(item) for item in pending), return_exceptions=True)
    settled: list[tuple[T, R | Exception]] = []
    for item, result in zip(pending, results):
        if isinstance(result, HARD_FAILURES):
            raise result
        if isinstance(result, BaseException) and not isinstance(result, Exception):
            raise result
        settled.append((item, result))
    return settled


async def run_in_batches(
    items: Sequence[T],
    size: int,
    fn: Callable[[T], Awaitable[R]],
) -> list[tuple[T, R | Exception]]:
    """``gather_settled`` over consecutive slices of at most ``size`` items."""
    settled: list[tuple[T, R | Exception]] = []
    for batch in batched(items, size):
        settled.extend(await gather_settled(batch, fn))
    return settled
