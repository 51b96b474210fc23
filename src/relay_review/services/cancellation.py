"""Cooperative cancellation signals.

A ``CancellationSignal`` fires at most once and remembers why. Signals compose
with :meth:`CancellationSignal.any`, so a caller-level signal (request teardown,
navigation away) can be combined with a per-fetch timeout; the composed signal
records whichever source fired first.

In-flight work is abandoned rather than terminated: :func:`run_cancellable`
stops waiting, cancels the wrapped task and discards any late result.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")

REASON_TIMEOUT = "timeout"
REASON_CANCELLED = "cancelled"


class OperationCancelled(RuntimeError):
    """Raised when a signal fires before the guarded operation completes."""

    def __init__(self, reason: str, source: str | None = None) -> None:
        super().__init__(f"Operation cancelled ({reason})" + (f" by {source}" if source else ""))
        self.reason = reason
        self.source = source


class OperationTimedOut(OperationCancelled):
    """Raised when the timeout source of a signal fired first."""

    def __init__(self, source: str | None = None) -> None:
        super().__init__(REASON_TIMEOUT, source)


class CancellationSignal:
    """One-shot cancellation flag with a recorded reason and source."""

    def __init__(self, name: str = "caller") -> None:
        self.name = name
        self.reason: str | None = None
        self.source: str | None = None
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[CancellationSignal], None]] = []
        self._timer: asyncio.TimerHandle | None = None
        # Callbacks this signal registered on the inputs it was composed from.
        self._subscriptions: list[tuple[CancellationSignal, Callable[[CancellationSignal], None]]] = []

    @property
    def cancelled(self) -> bool:
        return self.reason is not None

    @property
    def timed_out(self) -> bool:
        return self.reason == REASON_TIMEOUT

    def cancel(self, reason: str = REASON_CANCELLED, source: str | None = None) -> None:
        """Fire the signal; later calls are ignored."""
        if self.cancelled:
            return
        self.reason = reason
        self.source = source or self.name
        self._event.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)

    def add_callback(self, callback: Callable[[CancellationSignal], None]) -> None:
        """Run ``callback`` when the signal fires (immediately if it already has)."""
        if self.cancelled:
            callback(self)
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[CancellationSignal], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def wait(self) -> str | None:
        await self._event.wait()
        return self.reason

    def error(self) -> OperationCancelled:
        """Build the exception describing why this signal fired."""
        if self.timed_out:
            return OperationTimedOut(self.source)
        return OperationCancelled(self.reason or REASON_CANCELLED, self.source)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise self.error()

    def dispose(self) -> None:
        """Release a pending timer and detach from composed inputs without firing."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        subscriptions, self._subscriptions = self._subscriptions, []
        for source, callback in subscriptions:
            source.remove_callback(callback)

    @classmethod
    def timeout(cls, seconds: float, name: str = "timeout") -> CancellationSignal:
        """Return a signal that fires with reason ``timeout`` after ``seconds``.

        Must be called from within a running event loop.
        """
        signal = cls(name)
        loop = asyncio.get_running_loop()
        signal._timer = loop.call_later(max(0.0, seconds), signal.cancel, REASON_TIMEOUT, name)
        return signal

    @classmethod
    def any(cls, *signals: CancellationSignal | None, name: str = "composed") -> CancellationSignal:
        """Compose signals: the result fires as soon as any input fires.

        The composed signal adopts the reason and source of the first input to fire.
        """
        composed = cls(name)
        for source in signals:
            if source is None:
                continue

            def forward(fired: CancellationSignal) -> None:
                composed.cancel(fired.reason or REASON_CANCELLED, fired.source)

            source.add_callback(forward)
            composed._subscriptions.append((source, forward))
        return composed

    @classmethod
    def with_timeout(
        cls,
        parent: CancellationSignal | None,
        seconds: float,
        name: str,
    ) -> CancellationSignal:
        """Shorthand for ``any(parent, timeout(seconds))`` labelled for diagnostics.

        Disposing the returned signal also releases the timeout timer.
        """
        deadline = cls.timeout(seconds, name=f"{name}-timeout")
        composed = cls.any(parent, deadline, name=name)
        composed._timer = deadline._timer
        return composed


async def run_cancellable(awaitable: Awaitable[T], signal: CancellationSignal | None) -> T:
    """Await ``awaitable`` unless ``signal`` fires first.

    Raises:
        OperationTimedOut: The signal fired because of a timeout.
        OperationCancelled: The signal fired for any other reason.
    """
    if signal is None:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    if signal.cancelled:
        task.cancel()
        raise signal.error()

    waiter = asyncio.ensure_future(signal.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()

    if task.done() and not task.cancelled():
        return task.result()
    raise signal.error()
