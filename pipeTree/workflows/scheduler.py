"""Scheduled tasks with explicit cancel handles.

The view controller never touches ambient timers. It asks a :class:`Scheduler`
for one-shot or repeating tasks and keeps the returned :class:`TaskHandle` so
it can cancel them. :class:`VirtualScheduler` runs tasks against a manual clock
for tests; :class:`CanvasScheduler` drives them from matplotlib canvas timers on
the UI thread.
"""
from __future__ import annotations

import heapq
import itertools
import logging
import queue
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class TaskHandle:
    def __init__(self, name: str = "task", on_cancel: Optional[Callback] = None):
        self.name = name
        self._cancelled = False
        self._on_cancel = on_cancel

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()


class Scheduler(ABC):
    @abstractmethod
    def now(self) -> float:
        ...

    @abstractmethod
    def call_later(self, delay: float, callback: Callback, *, name: str = "task") -> TaskHandle:
        ...

    @abstractmethod
    def call_every(self, interval: float, callback: Callback, *, name: str = "task") -> TaskHandle:
        ...

    @abstractmethod
    def call_soon_threadsafe(self, callback: Callback) -> None:
        """Queue ``callback`` to run on the scheduler's own thread."""


def _run(callback: Callback, name: str) -> None:
    try:
        callback()
    except Exception:  # pragma: no cover - task errors must not kill the loop
        logger.exception("Scheduled task '%s' failed", name)


class VirtualScheduler(Scheduler):
    """Deterministic scheduler whose clock only moves when :meth:`advance` is called."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._counter = itertools.count()
        self._queue: List[Tuple[float, int, TaskHandle, Callback, Optional[float]]] = []
        self._pending: "queue.SimpleQueue[Callback]" = queue.SimpleQueue()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callback, *, name: str = "task") -> TaskHandle:
        handle = TaskHandle(name)
        heapq.heappush(self._queue, (self._now + max(0.0, delay), next(self._counter), handle, callback, None))
        return handle

    def call_every(self, interval: float, callback: Callback, *, name: str = "task") -> TaskHandle:
        if interval <= 0:
            raise ValueError("interval must be positive")
        handle = TaskHandle(name)
        heapq.heappush(self._queue, (self._now + interval, next(self._counter), handle, callback, interval))
        return handle

    def call_soon_threadsafe(self, callback: Callback) -> None:
        self._pending.put(callback)

    def run_pending(self) -> int:
        """Run callbacks queued through :meth:`call_soon_threadsafe`."""

        executed = 0
        while True:
            try:
                callback = self._pending.get_nowait()
            except queue.Empty:
                return executed
            _run(callback, "pending")
            executed += 1

    @property
    def scheduled(self) -> int:
        return sum(1 for entry in self._queue if not entry[2].cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, running every task that falls due on the way."""

        target = self._now + max(0.0, seconds)
        executed = self.run_pending()
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback, interval = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = due
            _run(callback, handle.name)
            executed += 1
            if interval is not None and not handle.cancelled:
                heapq.heappush(self._queue, (due + interval, next(self._counter), handle, callback, interval))
            executed += self.run_pending()
        self._now = target
        return executed


class CanvasScheduler(Scheduler):
    """Scheduler backed by matplotlib canvas timers.

    Callbacks posted from worker threads are drained by a short polling timer so
    they always execute on the GUI thread.
    """

    def __init__(self, canvas: Any, *, poll_interval: float = 0.1):
        self.canvas = canvas
        self._pending: "queue.SimpleQueue[Callback]" = queue.SimpleQueue()
        self._timers: List[Any] = []
        self._poller = self._start_timer(poll_interval, self._drain, single_shot=False)

    def now(self) -> float:
        return time.monotonic()

    def _start_timer(self, seconds: float, callback: Callback, *, single_shot: bool) -> Any:
        timer = self.canvas.new_timer(interval=max(1, int(seconds * 1000)))
        timer.single_shot = single_shot
        timer.add_callback(callback)
        timer.start()
        self._timers.append(timer)
        return timer

    def _stop_timer(self, timer: Any) -> None:
        timer.stop()
        if timer in self._timers:
            self._timers.remove(timer)

    def call_later(self, delay: float, callback: Callback, *, name: str = "task") -> TaskHandle:
        holder: List[Any] = []

        def fire() -> None:
            if holder:
                self._stop_timer(holder[0])
            _run(callback, name)

        holder.append(self._start_timer(delay, fire, single_shot=True))
        return TaskHandle(name, on_cancel=lambda: self._stop_timer(holder[0]))

    def call_every(self, interval: float, callback: Callback, *, name: str = "task") -> TaskHandle:
        if interval <= 0:
            raise ValueError("interval must be positive")
        timer = self._start_timer(interval, lambda: _run(callback, name), single_shot=False)
        return TaskHandle(name, on_cancel=lambda: self._stop_timer(timer))

    def call_soon_threadsafe(self, callback: Callback) -> None:
        self._pending.put(callback)

    def _drain(self) -> None:
        while True:
            try:
                callback = self._pending.get_nowait()
            except queue.Empty:
                return
            _run(callback, "pending")

    def close(self) -> None:
        for timer in list(self._timers):
            self._stop_timer(timer)
