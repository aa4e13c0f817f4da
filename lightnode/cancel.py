"""Cancelling awaitables when a shutdown is triggered."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Awaitable, TypeVar, Union

from lightnode.shutdown import Controller, Signal

R = TypeVar("R")


class ShutdownCancelled(Exception):
    """Raised when a shutdown is triggered before a wrapped awaitable finishes."""

    def __init__(self, reason: Any) -> None:
        super().__init__(f"cancelled by shutdown: {reason!r}")
        self.reason = reason


async def _await_signal(signal: Signal) -> Any:
    return await signal


async def with_cancel(source: Union[Controller, Signal], awaitable: Awaitable[R]) -> R:
    """Await ``awaitable`` unless a shutdown is triggered first.

    ``source`` is a :class:`Controller` or a :class:`Signal`. If the awaitable
    finishes first, its value is returned; it wins ties with the shutdown.
    Otherwise the awaitable is cancelled and :class:`ShutdownCancelled` is
    raised carrying the shutdown reason.
    """
    signal = source.triggered_shutdown() if isinstance(source, Controller) else source
    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(_await_signal(signal))
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        if work.done():
            return work.result()
        reason = waiter.result()
        work.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await work
        raise ShutdownCancelled(reason)
    finally:
        for task in (work, waiter):
            if not task.done():
                task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await waiter