"""Task tracking service for cluster-mirror.

Short lived tasks (e.g. dispatching a single apply) are tracked so callers can
wait for them, and long running background tasks (watch supervisors and their
consumers) are tracked so they can be cancelled together on teardown.
"""

import asyncio
from abc import ABC, abstractmethod
from functools import partial
import logging
from typing import Any, Coroutine

_LOGGER = logging.getLogger(__name__)

__all__: list[str] = []


class TaskService(ABC):
    """Service for tracking and waiting for asynchronous tasks."""

    @abstractmethod
    def create_task(
        self, coro: Coroutine[None, None, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track a new task.

        Args:
            coro: The coroutine to run as a task
            name: Optional name of the task used for debugging

        Returns:
            The created task
        """

    @abstractmethod
    def create_background_task(
        self, coro: Coroutine[None, None, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Create and track a new long running background task.

        Background tasks are not waited on by `block_till_done` and are
        cancelled by `close`.
        """

    @abstractmethod
    async def block_till_done(self) -> None:
        """Wait for all active non-background tasks to complete."""

    @abstractmethod
    async def close(self) -> None:
        """Cancel all background tasks and wait for them to exit."""

    @abstractmethod
    def get_num_active_tasks(self) -> int:
        """Get the number of active non-background tasks."""

    @abstractmethod
    def get_num_background_tasks(self) -> int:
        """Get the number of running background tasks."""


class TaskServiceImpl(TaskService):
    """Service for tracking and waiting for asynchronous tasks."""

    def __init__(self) -> None:
        """Initialize the task service."""
        self._active_tasks: set[asyncio.Task[Any]] = set()
        self._background_tasks: set[asyncio.Task[Any]] = set()

    def create_task(
        self, coro: Coroutine[None, None, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        return self._track(self._active_tasks, coro, name)

    def create_background_task(
        self, coro: Coroutine[None, None, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        return self._track(self._background_tasks, coro, name)

    def _track(
        self,
        task_set: set[asyncio.Task[Any]],
        coro: Coroutine[None, None, Any],
        name: str | None,
    ) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        task_set.add(task)
        task.add_done_callback(partial(self._task_done, task_set))
        return task

    def _task_done(
        self, task_set: set[asyncio.Task[Any]], task: asyncio.Task[Any]
    ) -> None:
        """Remove a completed task and log its failure, if any."""
        try:
            task.result()
        except asyncio.CancelledError:
            pass
        except Exception as e:
            _LOGGER.error("Task %s failed: %s", task.get_name(), e)
        finally:
            task_set.discard(task)

    async def block_till_done(self) -> None:
        """Wait for the tasks active at the time of the call to complete."""
        if not (tasks := list(self._active_tasks)):
            await asyncio.sleep(0)
            return
        _LOGGER.debug("Waiting for %d tasks", len(tasks))
        await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        """Cancel all background tasks and wait for them to exit."""
        tasks = list(self._background_tasks)
        if not tasks:
            return
        _LOGGER.debug("Cancelling %d background tasks", len(tasks))
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._background_tasks.difference_update(tasks)

    def get_num_active_tasks(self) -> int:
        return len(self._active_tasks)

    def get_num_background_tasks(self) -> int:
        return len(self._background_tasks)
