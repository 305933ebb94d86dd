import asyncio
from asyncio import TaskGroup, Semaphore


class Throttler:
    """Limits how many tasks of a TaskGroup run at the same time.

    ``schedule()`` waits for a free slot before it creates the task, so a
    loop scheduling many coroutines is paced by the slowest running ones.
    """

    def __init__(self, task_group: TaskGroup, concurrency: int):
        """Initialize the throttler.

        Args:
            task_group: The TaskGroup to which tasks will be added
            concurrency: Maximum number of tasks that can run concurrently
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be positive: {concurrency}")
        self._task_group = task_group
        self._semaphore = Semaphore(concurrency)

    async def schedule(self, coro, name=None) -> asyncio.Task:
        """Wait for a free slot, then run ``coro`` as a task of the group.

        The slot is released when the task completes.
        """
        await self._semaphore.acquire()

        async def wrapper():
            try:
                return await coro
            finally:
                self._semaphore.release()

        try:
            return self._task_group.create_task(wrapper(), name=name)
        except BaseException:
            self._semaphore.release()
            coro.close()
            raise
