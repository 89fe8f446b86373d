"""Privacy delay scheduling"""

import asyncio
import time
from typing import Awaitable, Callable

from .config import MAX_DELAY_MS
from .types import MAX_CHUNKS, MIN_CHUNKS


def schedule(
    chunk_count: int,
    max_delay_ms: int = MAX_DELAY_MS,
    min_chunks: int = MIN_CHUNKS,
    max_chunks: int = MAX_CHUNKS,
) -> int:
    """
    Nominal privacy delay for a privacy level

    Linear from 0 at ``min_chunks`` to ``max_delay_ms`` at ``max_chunks``.

    Args:
        chunk_count: Privacy level

    Returns:
        Delay in milliseconds
    """
    if chunk_count <= min_chunks or max_chunks <= min_chunks:
        return 0
    if chunk_count >= max_chunks:
        return max_delay_ms
    return (chunk_count - min_chunks) * max_delay_ms // (max_chunks - min_chunks)


def leg_delay(
    chunk_count: int,
    max_delay_ms: int = MAX_DELAY_MS,
    min_chunks: int = MIN_CHUNKS,
    max_chunks: int = MAX_CHUNKS,
) -> int:
    """Delay for one of the two waiting steps (half the nominal delay)"""
    return schedule(chunk_count, max_delay_ms, min_chunks, max_chunks) // 2


def estimated_total_delay(chunk_count: int, max_delay_ms: int = MAX_DELAY_MS) -> int:
    """Both waiting steps together"""
    return 2 * leg_delay(chunk_count, max_delay_ms)


def format_duration(ms: float) -> str:
    """
    Format milliseconds as human-readable time

    Examples: ``instant``, ``42s``, ``5min``, ``2h``, ``2h 5min``
    """
    if ms < 1000:
        return "instant"
    seconds = int(ms // 1000)
    if seconds < 60:
        return f"{seconds}s"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}min"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}min" if minutes else f"{hours}h"


async def sleep_with_countdown(
    ms: int,
    on_tick: Callable[[str], None],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
    interval: float = 1.0,
) -> None:
    """
    Sleep for ``ms`` milliseconds, reporting the time left before each tick

    Args:
        ms: Total wait
        on_tick: Receives the formatted remaining time
        sleep: Awaitable sleep function
        clock: Monotonic clock in seconds
        interval: Seconds between ticks
    """
    if ms <= 0:
        return

    deadline = clock() + ms / 1000
    while True:
        remaining = deadline - clock()
        if remaining <= 0:
            break
        on_tick(format_duration(remaining * 1000))
        await sleep(min(interval, remaining))
