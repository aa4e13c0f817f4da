"""Graceful shutdown coordination for asyncio code.

A :class:`Controller` records the reason for a shutdown. Awaiting
:meth:`Controller.triggered_shutdown` waits until a shutdown starts, and
awaiting :meth:`Controller.completed_shutdown` waits until every outstanding
:class:`DelayToken` has been released. Triggering and token handling are
thread-safe. Waiters on any event loop are woken through
``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Callable, Generator, Generic, List, Optional, Tuple, TypeVar

T = TypeVar("T")

_Waiter = Tuple[asyncio.AbstractEventLoop, "asyncio.Future[None]"]


class ShutdownHasStarted(Exception, Generic[T]):
    """Raised when a shutdown is triggered a second time."""

    def __init__(self, reason: T, ignored: T) -> None:
        super().__init__("shutdown has already commenced, can not delay any further")
        self.reason = reason
        self.ignored = ignored


class ShutdownHasCompleted(Exception, Generic[T]):
    """Raised when a shutdown that has already completed is delayed."""

    def __init__(self, reason: T) -> None:
        super().__init__("shutdown has been completed, can not delay any further")
        self.reason = reason


def _set_done(future: "asyncio.Future[None]") -> None:
    if not future.done():
        future.set_result(None)


def _wake(waiters: List[_Waiter]) -> None:
    for loop, future in waiters:
        try:
            loop.call_soon_threadsafe(_set_done, future)
        except RuntimeError:
            # The waiter's loop is already closed; nobody is left to wake.
            pass


class _State(Generic[T]):
    """Shared, lock-protected shutdown state."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.triggered = False
        self.reason: Optional[T] = None
        self.delay_tokens = 0
        self.on_trigger: List[_Waiter] = []
        self.on_complete: List[_Waiter] = []

    def increment(self) -> None:
        with self.lock:
            self.delay_tokens += 1

    def decrement(self) -> None:
        to_wake: List[_Waiter] = []
        with self.lock:
            self.delay_tokens = max(0, self.delay_tokens - 1)
            if self.delay_tokens == 0:
                to_wake, self.on_complete = self.on_complete, []
        _wake(to_wake)

    def shutdown(self, reason: T) -> None:
        with self.lock:
            if self.triggered:
                raise ShutdownHasStarted(self.reason, reason)
            self.triggered = True
            self.reason = reason
            to_wake, self.on_trigger = self.on_trigger, []
            if self.delay_tokens == 0:
                complete, self.on_complete = self.on_complete, []
                to_wake.extend(complete)
        _wake(to_wake)

    async def wait(
        self,
        ready: Callable[[], bool],
        waiters: Callable[[], List[_Waiter]],
    ) -> T:
        loop = asyncio.get_running_loop()
        while True:
            with self.lock:
                if ready():
                    return self.reason  # type: ignore[return-value]
                entry: _Waiter = (loop, loop.create_future())
                waiters().append(entry)
            try:
                await entry[1]
            finally:
                with self.lock:
                    pending = waiters()
                    if entry in pending:
                        pending.remove(entry)


class Signal(Generic[T]):
    """Awaitable that resolves to the reason once a shutdown is triggered."""

    def __init__(self, state: _State[T]) -> None:
        self._state = state

    def __await__(self) -> Generator[Any, None, T]:
        state = self._state
        return state.wait(lambda: state.triggered, lambda: state.on_trigger).__await__()


class Completed(Generic[T]):
    """Awaitable that resolves to the reason once the shutdown has completed."""

    def __init__(self, state: _State[T]) -> None:
        self._state = state

    def __await__(self) -> Generator[Any, None, T]:
        state = self._state
        return state.wait(
            lambda: state.triggered and state.delay_tokens == 0,
            lambda: state.on_complete,
        ).__await__()


class DelayToken(Generic[T]):
    """Holds back shutdown completion until released.

    Every clone counts separately and must be released on its own.
    """

    def __init__(self, state: _State[T]) -> None:
        self._state = state
        self._released = False
        self._release_lock = threading.Lock()

    def clone(self) -> "DelayToken[T]":
        """Return a new token that delays the shutdown independently."""
        self._state.increment()
        return DelayToken(self._state)

    def release(self) -> None:
        """Stop delaying the shutdown. Releasing twice has no further effect."""
        with self._release_lock:
            if self._released:
                return
            self._released = True
        self._state.decrement()

    def __enter__(self) -> "DelayToken[T]":
        return self

    def __exit__(self, *args: Any) -> None:
        self.release()


class TriggerToken(Generic[T]):
    """Triggers a shutdown with a stored reason when fired.

    Clones share the reason: firing any one of them starts the shutdown.
    """

    def __init__(self, state: _State[T], reason_cell: List[Any], cell_lock: threading.Lock) -> None:
        self._state = state
        self._cell = reason_cell
        self._cell_lock = cell_lock
        self._armed = True

    def clone(self) -> "TriggerToken[T]":
        """Return a new token sharing this token's reason."""
        return TriggerToken(self._state, self._cell, self._cell_lock)

    def trigger(self) -> None:
        """Start the shutdown, unless the shared reason was already used."""
        if not self._armed:
            return
        self._armed = False
        with self._cell_lock:
            if not self._cell:
                return
            reason = self._cell.pop()
        try:
            self._state.shutdown(reason)
        except ShutdownHasStarted:
            pass

    def forget(self) -> None:
        """Discard this token without triggering a shutdown."""
        self._armed = False

    def __enter__(self) -> "TriggerToken[T]":
        return self

    def __exit__(self, *args: Any) -> None:
        self.trigger()


class Controller(Generic[T]):
    """Coordinates a graceful shutdown across tasks and threads."""

    def __init__(self) -> None:
        self._state: _State[T] = _State()

    def is_shutdown_triggered(self) -> bool:
        """Whether a shutdown has been triggered."""
        with self._state.lock:
            return self._state.triggered

    def is_shutdown_completed(self) -> bool:
        """Whether the shutdown was triggered and no delay tokens remain."""
        with self._state.lock:
            return self._state.triggered and self._state.delay_tokens == 0

    def shutdown_reason(self) -> Optional[T]:
        """The shutdown reason, or None if no shutdown has been triggered."""
        with self._state.lock:
            return self._state.reason if self._state.triggered else None

    def trigger_shutdown(self, reason: T) -> None:
        """Start the shutdown; raise ShutdownHasStarted if it already began."""
        self._state.shutdown(reason)

    def completed_shutdown(self) -> Completed[T]:
        """Awaitable resolving to the reason once the shutdown has completed."""
        return Completed(self._state)

    def triggered_shutdown(self) -> Signal[T]:
        """Awaitable resolving to the reason once the shutdown is triggered."""
        return Signal(self._state)

    def delay_token(self) -> DelayToken[T]:
        """Create a token delaying completion; raise ShutdownHasCompleted if too late."""
        state = self._state
        with state.lock:
            if state.triggered and state.delay_tokens == 0:
                raise ShutdownHasCompleted(state.reason)
            state.delay_tokens += 1
        return DelayToken(state)

    def trigger_token(self, reason: T) -> TriggerToken[T]:
        """Create a token that triggers the shutdown with ``reason`` when fired."""
        return TriggerToken(self._state, [reason], threading.Lock())