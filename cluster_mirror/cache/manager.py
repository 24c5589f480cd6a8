"""Instance Cache Manager.

The manager owns one supervised watch and one `InstanceCacheBucket` per type
key. Watches are started lazily by `ensure_watching`, normally on behalf of the
type catalog when a new type is discovered:

```python
manager = InstanceCacheManager(api, task_service)
manager.ensure_watching(BucketKey("example.com", "v1", "widgets"))
await manager.wait_ready(BucketKey("example.com", "v1", "widgets"))
for instance in manager.get_instances("example.com", "v1", "widgets"):
    print(instance.name, instance.version_token)
```

Reads never wait for network activity. Before the first list of a key has
completed they return an empty list; callers that need a complete view must
wait for the key's readiness signal.
"""

import asyncio
from dataclasses import dataclass
import logging

from cluster_mirror.cluster.api import ClusterApi
from cluster_mirror.config import WatchConfig
from cluster_mirror.exceptions import InputException
from cluster_mirror.manifest import BucketKey, ResourceInstance
from cluster_mirror.task import TaskService

from .bucket import InstanceCacheBucket
from .notify import ChangeNotifier
from .supervisor import WatchSupervisor

__all__ = [
    "InstanceCacheManager",
]

_LOGGER = logging.getLogger(__name__)


@dataclass
class _WatchedKey:
    bucket: InstanceCacheBucket
    supervisor: WatchSupervisor


class InstanceCacheManager:
    """Registry of supervised instance watches keyed by type."""

    def __init__(
        self,
        api: ClusterApi,
        task_service: TaskService,
        watch_config: WatchConfig | None = None,
        notifier: ChangeNotifier | None = None,
    ) -> None:
        self._api = api
        self._task_service = task_service
        self._watch_config = watch_config or WatchConfig()
        self._notifier = notifier
        self._watched: dict[BucketKey, _WatchedKey] = {}
        self._closed = False

    def ensure_watching(self, key: BucketKey) -> bool:
        """Start watching instances of the key.

        Returns True when a new watch was started and False when the key is
        already watched.
        """
        if key in self._watched:
            return False
        if self._closed:
            _LOGGER.debug("Ignoring watch request for %s after close", key)
            return False
        _LOGGER.info("Watching instances of %s", key)
        bucket = InstanceCacheBucket(
            key, on_change=self._notifier.notify if self._notifier else None
        )
        supervisor = WatchSupervisor(
            str(key),
            self._api,
            key,
            bucket,
            self._task_service,
            retry_delay=self._watch_config.retry_delay,
        )
        self._watched[key] = _WatchedKey(bucket, supervisor)
        supervisor.start()
        return True

    def is_watching(self, key: BucketKey) -> bool:
        return key in self._watched

    def keys(self) -> list[BucketKey]:
        """Return the keys of every watched type."""
        return list(self._watched)

    def bucket(self, key: BucketKey) -> InstanceCacheBucket | None:
        if (watched := self._watched.get(key)) is None:
            return None
        return watched.bucket

    def supervisor(self, key: BucketKey) -> WatchSupervisor | None:
        if (watched := self._watched.get(key)) is None:
            return None
        return watched.supervisor

    def get_instances(
        self,
        group: str,
        version: str,
        plural: str,
        namespace: str | None = None,
    ) -> list[ResourceInstance]:
        """Return the cached instances of a type, optionally for one namespace.

        Namespace scoped reads filter the cluster-wide bucket. Unwatched or
        not yet listed keys return an empty list.
        """
        if (bucket := self.bucket(BucketKey(group, version, plural))) is None:
            return []
        return bucket.instances(namespace)

    def is_ready(self, key: BucketKey) -> bool:
        """Return True once the first full list for the key has been applied."""
        return (bucket := self.bucket(key)) is not None and bucket.ready

    async def wait_ready(self, key: BucketKey) -> None:
        """Wait for the first full list of a watched key."""
        if (bucket := self.bucket(key)) is None:
            raise InputException(f"Instances of {key} are not being watched")
        await bucket.wait_ready()

    async def close(self) -> None:
        """Stop every watch."""
        self._closed = True
        watched = list(self._watched.values())
        if not watched:
            return
        _LOGGER.debug("Stopping %d instance watches", len(watched))
        await asyncio.gather(*(w.supervisor.stop() for w in watched))
