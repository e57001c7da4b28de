from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, List, Set

log = logging.getLogger(__name__)


class TimerHandle:
    """Cancellable timer returned by Lifecycle.call_later."""

    def __init__(self, owner: "Lifecycle", delay: float, fn: Callable[..., Any], args: tuple) -> None:
        self._owner = owner
        self._fn = fn
        self._args = args
        self.delay = float(delay)
        self.fired = False
        self.cancelled = False
        self._handle = asyncio.get_running_loop().call_later(max(0.0, self.delay), self._run)

    def _run(self) -> None:
        self.fired = True
        self._owner._timers.discard(self)
        self._fn(*self._args)

    @property
    def pending(self) -> bool:
        return not (self.fired or self.cancelled)

    def cancel(self) -> None:
        if self.pending:
            self.cancelled = True
            self._handle.cancel()
        self._owner._timers.discard(self)


class Lifecycle:
    """Per-viewer disposal scope.

    Tracks every timer and load task it hands out so dispose() can stop them all.
    Loads must check `disposed` after each suspension and drop their results.
    """

    def __init__(self) -> None:
        self.disposed = False
        self._timers: Set[TimerHandle] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._finalizers: List[Callable[[], None]] = []
        self._registry = None

    def bind_registry(self, registry) -> None:
        self._registry = registry

    def add_finalizer(self, fn: Callable[[], None]) -> None:
        self._finalizers.append(fn)

    def call_later(self, delay: float, fn: Callable[..., Any], *args: Any) -> TimerHandle | None:
        if self.disposed:
            return None
        handle = TimerHandle(self, delay, fn, args)
        self._timers.add(handle)
        return handle

    def cancel(self, handle: TimerHandle | None) -> None:
        if handle is not None:
            handle.cancel()

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task | None:
        if self.disposed:
            coro.close()
            return None
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True

        timers = list(self._timers)
        for handle in timers:
            handle.cancel()
        self._timers.clear()

        tasks = [t for t in self._tasks if not t.done()]
        for task in tasks:
            task.cancel()

        if self._registry is not None:
            self._registry.clear_all_in_flight()
            self._registry.remove_all()

        for fn in self._finalizers:
            fn()
        self._finalizers.clear()
        log.info("disposed: cancelled %d timers, %d loads", len(timers), len(tasks))

    async def drain(self) -> None:
        """Wait for cancelled loads to unwind."""
        tasks = list(self._tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
