"""Fixed-size worker pool with an explicit FIFO task queue."""

import asyncio
from collections import deque
from functools import partial
from typing import Any, Awaitable, Callable, Deque, Tuple

Job = Callable[[], Awaitable[Any]]


class BoundedPool:
    """
    Run submitted coroutine factories with at most ``limit`` in flight.

    Jobs start in submission order; completion order is whatever the I/O
    makes it. Each finished job admits the next queued one.
    """

    def __init__(self, limit: int = 5):
        if limit < 1:
            raise ValueError(f"Pool limit must be positive, got {limit}")
        self.limit = limit
        self._queue: Deque[Tuple[Job, asyncio.Future]] = deque()
        self._active = 0

    @property
    def active(self) -> int:
        return self._active

    @property
    def pending(self) -> int:
        return len(self._queue)

    def submit(self, job: Job) -> asyncio.Future:
        """
        Queue a job and return a future for its result.

        Args:
            job: Zero-argument callable returning an awaitable

        Returns:
            Future resolved with the job's result or exception
        """
        future = asyncio.get_running_loop().create_future()
        self._queue.append((job, future))
        self._drain()
        return future

    def _drain(self) -> None:
        while self._active < self.limit and self._queue:
            job, future = self._queue.popleft()
            if future.cancelled():
                continue
            self._active += 1
            task = asyncio.ensure_future(job())
            task.add_done_callback(partial(self._finished, future))

    def _finished(self, future: asyncio.Future, task: asyncio.Future) -> None:
        self._active -= 1
        if not future.done():
            if task.cancelled():
                future.cancel()
            elif task.exception() is not None:
                future.set_exception(task.exception())
            else:
                future.set_result(task.result())
        self._drain()
