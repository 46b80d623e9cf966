"""Bounded waits at the data-store and blob-store boundaries."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from medilocker.errors import TransientError

logger = logging.getLogger("medilocker.timeouts")

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], seconds: float, operation: str) -> T:
    """Await ``awaitable`` for at most ``seconds``; raise TransientError on expiry."""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except TimeoutError:
        logger.warning("%s timed out after %.1fs", operation, seconds)
        raise TransientError(f"{operation} timed out, please retry") from None
