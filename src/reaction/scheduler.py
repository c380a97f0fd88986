"""
Clock/timer abstraction and its two implementations.

Scheduler – protocol implemented by:
  ClockScheduler    – real time from psychopy.core.Clock; due tasks fire on poll()
  VirtualScheduler  – virtual time advanced explicitly; for tests and dry runs

Both are single-threaded: callbacks run only inside poll() / advance(), on the
caller's thread.  A cancelled task never fires.
"""
from __future__ import annotations

import abc
import itertools
from dataclasses import dataclass, field
from typing import Callable, Protocol

from psychopy import core


@dataclass(order=True)
class ScheduledTask:
    due: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)


class Scheduler(Protocol):
    """One-shot delayed callbacks plus a timestamp source (seconds)."""

    def now(self) -> float:
        ...

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> ScheduledTask:
        ...

    def cancel(self, task: ScheduledTask | None) -> None:
        ...


class _TaskQueue(abc.ABC):
    """Pending-task bookkeeping shared by both schedulers."""

    def __init__(self) -> None:
        self._tasks: list[ScheduledTask] = []
        self._seq = itertools.count()

    @abc.abstractmethod
    def now(self) -> float:
        ...

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> ScheduledTask:
        task = ScheduledTask(due=self.now() + max(0.0, delay_s), seq=next(self._seq), callback=callback)
        self._tasks.append(task)
        self._tasks.sort()
        return task

    def cancel(self, task: ScheduledTask | None) -> None:
        if task is None:
            return
        task.cancelled = True
        if task in self._tasks:
            self._tasks.remove(task)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def next_due(self) -> float | None:
        return self._tasks[0].due if self._tasks else None

    def _pop_due(self, t: float) -> ScheduledTask | None:
        if self._tasks and self._tasks[0].due <= t:
            return self._tasks.pop(0)
        return None


class ClockScheduler(_TaskQueue):
    """Real-time scheduler.  The caller's loop must call poll() regularly."""

    def __init__(self, clock: core.Clock | None = None) -> None:
        super().__init__()
        self._clock = clock if clock is not None else core.Clock()

    def now(self) -> float:
        return self._clock.getTime()

    def poll(self) -> int:
        """Fire every task that is due; return how many fired."""
        fired = 0
        # Callbacks may schedule new tasks; re-read the clock each time.
        task = self._pop_due(self.now())
        while task is not None:
            task.callback()
            fired += 1
            task = self._pop_due(self.now())
        return fired


class VirtualScheduler(_TaskQueue):
    """Scheduler on a virtual clock that only moves when advance() is called.

    Tasks fire with now() equal to their exact due time, in due order.
    """

    def __init__(self, start: float = 0.0) -> None:
        super().__init__()
        self._t = start

    def now(self) -> float:
        return self._t

    def advance(self, dt: float) -> int:
        """Move virtual time forward by dt seconds, firing due tasks on the way."""
        return self.advance_to(self._t + dt)

    def advance_to(self, target: float) -> int:
        fired = 0
        task = self._pop_due(target)
        while task is not None:
            self._t = max(self._t, task.due)
            task.callback()
            fired += 1
            task = self._pop_due(target)
        self._t = target
        return fired

    def run_pending(self) -> int:
        """Advance exactly to the next due task and fire it (0 if none pending)."""
        due = self.next_due()
        if due is None:
            return 0
        return self.advance_to(max(due, self._t))


def make_scheduler(virtual: bool) -> ClockScheduler | VirtualScheduler:
    """Return VirtualScheduler for dry runs, ClockScheduler otherwise."""
    if virtual:
        return VirtualScheduler()
    return ClockScheduler()
