"""Supervised long-lived watch of a single collection.

Each supervisor runs two background tasks connected by a queue. The producer
lists the collection, enqueues the list as an authoritative snapshot, and then
enqueues every event of a watch started at the list's resource version. When
the stream fails (or simply ends) the producer waits a fixed delay and starts
over with a fresh list. The consumer drains the queue and applies each update
to its `StreamConsumer` one at a time, so updates for one collection are
handled in delivery order while different collections proceed independently.

Retries never stop on their own; only `stop()` ends the loop.
"""

import asyncio
from contextlib import aclosing
import logging

from cluster_mirror.cluster.api import ClusterApi, EventType, WatchEvent
from cluster_mirror.exceptions import WatchError
from cluster_mirror.manifest import BucketKey
from cluster_mirror.task import TaskService

from .bucket import Snapshot, StreamConsumer

__all__ = [
    "WatchSupervisor",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY = 5.0


class WatchSupervisor:
    """Keeps one watch alive, feeding its updates to a consumer."""

    def __init__(
        self,
        name: str,
        api: ClusterApi,
        source: BucketKey,
        consumer: StreamConsumer,
        task_service: TaskService,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        self._name = name
        self._api = api
        self._source = source
        self._consumer = consumer
        self._task_service = task_service
        self._retry_delay = retry_delay
        self._queue: asyncio.Queue[Snapshot | WatchEvent] = asyncio.Queue()
        self._tasks: list[asyncio.Task[None]] = []
        self._connects = 0
        self._failures = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def source(self) -> BucketKey:
        return self._source

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def connect_count(self) -> int:
        """Number of successful list handshakes so far."""
        return self._connects

    @property
    def failure_count(self) -> int:
        """Number of failed or ended streams so far."""
        return self._failures

    def start(self) -> None:
        """Start the watch. Calling start on a running supervisor does nothing."""
        if self._tasks:
            return
        _LOGGER.info("Starting watch for %s", self._name)
        self._tasks = [
            self._task_service.create_background_task(
                self._run(), name=f"watch-{self._name}"
            ),
            self._task_service.create_background_task(
                self._dispatch(), name=f"dispatch-{self._name}"
            ),
        ]

    async def stop(self) -> None:
        """Cancel the watch and wait for its tasks to exit."""
        if not self._tasks:
            return
        _LOGGER.info("Stopping watch for %s", self._name)
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def drain(self) -> None:
        """Wait until every update enqueued so far has been applied."""
        await self._queue.join()

    async def _watch_once(self) -> None:
        result = await self._api.list_objects(self._source)
        self._connects += 1
        _LOGGER.debug(
            "Listed %d objects for %s at version %s",
            len(result.items),
            self._name,
            result.resource_version,
        )
        await self._queue.put(
            Snapshot(result.items, result.kind, result.api_version)
        )
        stream = self._api.watch_objects(self._source, result.resource_version)
        async with aclosing(stream):
            async for event in stream:
                if event.type == EventType.ERROR:
                    raise WatchError(
                        f"Watch for {self._name} failed: {event.message}"
                    )
                await self._queue.put(event)

    async def _run(self) -> None:
        while True:
            try:
                await self._watch_once()
                _LOGGER.info(
                    "Watch for %s ended, restarting in %ss",
                    self._name,
                    self._retry_delay,
                )
            except Exception as err:
                _LOGGER.warning(
                    "Watch for %s failed, retrying in %ss: %s",
                    self._name,
                    self._retry_delay,
                    err,
                )
            self._failures += 1
            await asyncio.sleep(self._retry_delay)

    async def _dispatch(self) -> None:
        while True:
            update = await self._queue.get()
            try:
                self._consumer.apply(update)
            except Exception:
                _LOGGER.exception("Failed to apply update for %s", self._name)
            finally:
                self._queue.task_done()
