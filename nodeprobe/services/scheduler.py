"""Bounded-concurrency scheduler for node probing tasks.

Runs a batch of independent coroutine factories with at most ``concurrency``
of them in flight. Workers are asyncio tasks that loop pulling the next
factory from a queue (submission order, no priorities), so a new task starts
as soon as a running one finishes.

Failures are isolated: an exception (or per-task timeout) in one task is
logged and recorded in that task's result slot, and the remaining tasks keep
running. The whole run can be aborted through ``cancel()`` or an externally
supplied ``asyncio.Event``; the caller then gets ``BatchCancelledError``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

from nodeprobe.middleware.error_handler import BatchCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TaskFactory = Callable[[], Awaitable[T]]


class Scheduler:
    """Runs task factories with a fixed concurrency limit.

    Parameters
    ----------
    concurrency:
        Maximum number of tasks running at the same time.
    task_timeout_seconds:
        Optional per-task timeout; a task exceeding it is recorded as a
        ``TimeoutError``.
    cancel_event:
        Optional event; setting it aborts the run.
    """

    def __init__(
        self,
        *,
        concurrency: int = 10,
        task_timeout_seconds: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._concurrency = concurrency
        self._task_timeout = task_timeout_seconds
        self._cancel_event = cancel_event or asyncio.Event()

        self._active = 0
        self._peak_active = 0
        self._completed_count = 0
        self._failed_count = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Abort the current run; in-flight tasks are cancelled."""
        self._cancel_event.set()

    async def run(self, factories: Sequence[TaskFactory[T]]) -> list[T | BaseException]:
        """Run every factory and return results in submission order.

        A slot holds the task's return value, or the exception it raised.

        Raises
        ------
        BatchCancelledError
            If the run was cancelled before every task finished.
        """
        if not factories:
            return []

        self._peak_active = 0
        self._completed_count = 0
        self._failed_count = 0

        queue: asyncio.Queue[tuple[int, TaskFactory[T]]] = asyncio.Queue()
        for index, factory in enumerate(factories):
            queue.put_nowait((index, factory))

        results: list[Any] = [None] * len(factories)
        worker_count = min(self._concurrency, len(factories))
        workers = [
            asyncio.create_task(self._worker_loop(i, queue, results), name=f"probe-worker-{i}")
            for i in range(worker_count)
        ]
        all_done = asyncio.gather(*workers)
        cancelled = asyncio.create_task(self._cancel_event.wait())

        try:
            await asyncio.wait({all_done, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not all_done.done():
                for worker in workers:
                    worker.cancel()
                try:
                    await all_done
                except asyncio.CancelledError:
                    pass
            cancelled.cancel()

        if self._cancel_event.is_set() and self._completed_count + self._failed_count < len(factories):
            raise BatchCancelledError(
                "Batch cancelled before all nodes were probed",
                finished=self._completed_count + self._failed_count,
                total=len(factories),
            )

        logger.debug(
            "Scheduler finished %d tasks (failed=%d, peak_concurrency=%d)",
            len(factories),
            self._failed_count,
            self._peak_active,
        )
        return results

    def get_stats(self) -> dict:
        """Return counters for the most recent run."""
        return {
            "concurrency": self._concurrency,
            "active": self._active,
            "peak_active": self._peak_active,
            "completed_count": self._completed_count,
            "failed_count": self._failed_count,
        }

    # ------------------------------------------------------------------
    # Worker loop
    # ------------------------------------------------------------------

    async def _worker_loop(
        self,
        worker_id: int,
        queue: asyncio.Queue[tuple[int, TaskFactory[T]]],
        results: list[Any],
    ) -> None:
        """Worker coroutine: pulls factories until the queue is empty."""
        while True:
            try:
                index, factory = queue.get_nowait()
            except asyncio.QueueEmpty:
                break

            self._active += 1
            self._peak_active = max(self._peak_active, self._active)
            try:
                if self._task_timeout is not None:
                    results[index] = await asyncio.wait_for(factory(), timeout=self._task_timeout)
                else:
                    results[index] = await factory()
                self._completed_count += 1
            except asyncio.TimeoutError:
                self._failed_count += 1
                results[index] = TimeoutError(f"Task timed out after {self._task_timeout}s")
                logger.error("Worker %d: task %d timed out", worker_id, index)
            except Exception as exc:
                self._failed_count += 1
                results[index] = exc
                logger.error("Worker %d: task %d unexpected error: %s", worker_id, index, exc)
            finally:
                self._active -= 1
