"""Bounded-concurrency runner with per-item retry and linear backoff."""
from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from typing import Awaitable, Callable, Dict, Hashable, Optional, Sequence, TypeVar

from rulebooks.errors import ItemUploadFailed

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

ProgressCallback = Callable[[int, int], Optional[Awaitable[None]]]


class ScheduleMode(str, enum.Enum):
    """How queued items are admitted once the concurrency limit is reached.

    ``WINDOWED`` runs consecutive windows of ``concurrency`` items and waits for
    the whole window to settle before starting the next one; progress is
    reported once per window. ``POOLED`` refills a slot as soon as any item
    finishes and reports progress per item.
    """

    WINDOWED = "windowed"
    POOLED = "pooled"

    @classmethod
    def parse(cls, value: "str | ScheduleMode") -> "ScheduleMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            LOGGER.warning("Unknown schedule mode %r; using windowed", value)
            return cls.WINDOWED


async def _notify(callback: ProgressCallback | None, completed: int, total: int) -> None:
    if callback is None:
        return
    result = callback(completed, total)
    if inspect.isawaitable(result):
        await result


async def run_with_retry(
    item: T,
    operation: Callable[[T], Awaitable[R]],
    *,
    key: int,
    max_attempts: int = 3,
    backoff_base: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> R:
    """Run ``operation(item)`` up to ``max_attempts`` times.

    ``operation`` is called afresh for every attempt, so anything it builds
    (request bodies, byte streams) is never reused after a failed send. The
    delay before attempt ``n + 1`` is ``backoff_base * n``.
    """

    attempts = max(1, max_attempts)
    attempt = 1
    while True:
        try:
            return await operation(item)
        except Exception as exc:
            if attempt >= attempts:
                LOGGER.error("Page %s failed after %s attempts: %s", key, attempts, exc)
                raise ItemUploadFailed(key, exc) from exc
            delay = backoff_base * attempt
            LOGGER.warning(
                "Attempt %s/%s for page %s failed (%s); retrying in %.2fs",
                attempt,
                attempts,
                key,
                exc,
                delay,
            )
            await sleep(delay)
            attempt += 1


async def run_bounded(
    items: Sequence[T],
    operation: Callable[[T], Awaitable[R]],
    *,
    label: Callable[[T], int],
    concurrency: int = 5,
    max_attempts: int = 3,
    backoff_base: float = 1.0,
    mode: ScheduleMode | str = ScheduleMode.WINDOWED,
    on_progress: ProgressCallback | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Dict[int, R]:
    """Run ``operation`` over ``items`` with at most ``concurrency`` in flight.

    Results are keyed by ``label(item)`` (the page number), never by position,
    and the returned mapping iterates in input order. When any item exhausts
    its attempts the call raises :class:`ItemUploadFailed` once the items
    already in flight have settled; there is no partial result.
    """

    items = list(items)
    keys = [label(item) for item in items]
    if len(set(keys)) != len(keys):
        raise ValueError("Item labels must be unique")

    limit = max(1, concurrency)
    total = len(items)
    schedule = ScheduleMode.parse(mode)

    async def _one(item: T, key: int) -> R:
        return await run_with_retry(
            item,
            operation,
            key=key,
            max_attempts=max_attempts,
            backoff_base=backoff_base,
            sleep=sleep,
        )

    outcomes: list[object] = []
    if schedule is ScheduleMode.WINDOWED:
        for start in range(0, total, limit):
            window = items[start : start + limit]
            window_keys = keys[start : start + limit]
            settled = await asyncio.gather(
                *(_one(item, key) for item, key in zip(window, window_keys)),
                return_exceptions=True,
            )
            _raise_first_failure(settled)
            outcomes.extend(settled)
            await _notify(on_progress, start + len(window), total)
    else:
        semaphore = asyncio.Semaphore(limit)
        completed = 0
        failed = False

        async def _pooled(item: T, key: int) -> R:
            nonlocal completed, failed
            async with semaphore:
                # Queued items are not started once any item has failed.
                if failed:
                    raise _NotStarted(key)
                try:
                    value = await _one(item, key)
                except Exception:
                    failed = True
                    raise
            completed += 1
            await _notify(on_progress, completed, total)
            return value

        settled = await asyncio.gather(
            *(_pooled(item, key) for item, key in zip(items, keys)),
            return_exceptions=True,
        )
        _raise_first_failure(settled)
        outcomes.extend(settled)

    return {key: value for key, value in zip(keys, outcomes)}  # type: ignore[misc]


class _NotStarted(Exception):
    """A queued item skipped because an earlier item failed."""


def _raise_first_failure(settled: Sequence[object]) -> None:
    failures = [outcome for outcome in settled if isinstance(outcome, BaseException)]
    if not failures:
        return
    for failure in failures:
        if isinstance(failure, ItemUploadFailed):
            raise failure
    raise failures[0]  # type: ignore[misc]
