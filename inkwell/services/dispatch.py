"""
Background dispatch for model service calls.

Gateway calls run on a worker pool so the owning thread never blocks.
Results come back as tagged outcomes and are applied only when the
owning thread drains the dispatcher, which keeps every Manuscript
mutation on a single thread.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError

from inkwell.core.client import GatewayError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Success:
    """A completed call and its payload."""

    value: Any

    ok = True


@dataclass(frozen=True)
class Failure:
    """A call that could not be completed."""

    error: Exception

    ok = False


Outcome = Union[Success, Failure]


@dataclass
class Task:
    """A keyed unit of background work and its write-back."""

    key: str
    future: Future
    on_complete: Callable[[Outcome], None]


def guarded_call(key: str, fn: Callable[[], Any]) -> Outcome:
    """Run ``fn`` and tag its result; gateway and parse failures become ``Failure``."""
    try:
        return Success(fn())
    except (GatewayError, ValidationError, ValueError) as e:
        logger.warning("Task %s failed: %s", key, e)
        return Failure(e)


class Dispatcher:
    """
    Runs gateway calls in the background and applies their results.

    Not thread-safe itself: ``submit``, ``drain`` and ``settle`` must all
    be called from the owning thread. Only the wrapped calls run on
    worker threads.
    """

    def __init__(self, max_workers: int | None = None):
        if max_workers is None:
            max_workers = int(os.getenv("INKWELL_WORKERS", "4"))
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="inkwell",
        )
        self._tasks: list[Task] = []

    def submit(
        self,
        key: str,
        fn: Callable[[], Any],
        on_complete: Callable[[Outcome], None],
    ) -> Task:
        """
        Start ``fn`` in the background.

        Args:
            key: Identifies the work (e.g. ``visualize:c-1a2b3c4d``)
            fn: The blocking call to run on a worker thread
            on_complete: Applied to the outcome on the owning thread

        Returns:
            The in-flight task
        """
        future = self._executor.submit(guarded_call, key, fn)
        task = Task(key=key, future=future, on_complete=on_complete)
        self._tasks.append(task)
        logger.debug("Dispatched %s", key)
        return task

    def in_flight(self, key: Optional[str] = None) -> bool:
        """Whether any task (or any task with ``key``) has not been applied yet."""
        if key is None:
            return bool(self._tasks)
        return any(task.key == key for task in self._tasks)

    def pending_keys(self) -> list[str]:
        return [task.key for task in self._tasks]

    def drain(self) -> int:
        """
        Apply the outcomes of every finished task.

        Returns:
            Number of tasks applied
        """
        finished = [task for task in self._tasks if task.future.done()]
        for task in finished:
            self._tasks.remove(task)
            task.on_complete(task.future.result())
        return len(finished)

    def settle(self, timeout: float | None = None) -> int:
        """
        Wait for in-flight work, then drain.

        Completion callbacks may dispatch follow-up tasks; those are
        waited for as well.
        """
        applied = 0
        while self._tasks:
            wait([task.future for task in self._tasks], timeout=timeout)
            drained = self.drain()
            applied += drained
            if not drained:
                break
        return applied

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
