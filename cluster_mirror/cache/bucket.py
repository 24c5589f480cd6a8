"""In-memory mirror of one watched collection.

A bucket holds every instance of one (group, version, plural) key, keyed by
the stable identity of each object. It is mutated only by its own watch
supervisor, which delivers updates one at a time in arrival order, and all
reads return copies.
"""

from abc import ABC, abstractmethod
import asyncio
from collections.abc import Callable
import copy
from dataclasses import dataclass, field, replace
import logging
from typing import Any

from cluster_mirror.cluster.api import EventType, WatchEvent
from cluster_mirror.exceptions import InputException
from cluster_mirror.manifest import BucketKey, ResourceInstance

__all__ = [
    "Snapshot",
    "StreamConsumer",
    "InstanceCacheBucket",
]

_LOGGER = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """An authoritative list of a collection, replacing all prior content."""

    items: list[dict[str, Any]] = field(default_factory=list)
    kind: str | None = None
    api_version: str | None = None


class StreamConsumer(ABC):
    """Receives the updates of a single supervised watch in order."""

    def apply(self, update: Snapshot | WatchEvent) -> None:
        """Dispatch an update to the handler for its type."""
        if isinstance(update, Snapshot):
            self.on_snapshot(update)
        elif update.type == EventType.ADDED:
            self.on_added(update.object)
        elif update.type == EventType.MODIFIED:
            self.on_modified(update.object)
        elif update.type == EventType.DELETED:
            self.on_deleted(update.object)
        else:
            _LOGGER.debug("Ignoring %s event", update.type)

    @abstractmethod
    def on_snapshot(self, snapshot: Snapshot) -> None:
        """Replace all content with a fresh list."""

    @abstractmethod
    def on_added(self, obj: dict[str, Any]) -> None:
        """Handle an added object."""

    @abstractmethod
    def on_modified(self, obj: dict[str, Any]) -> None:
        """Handle a modified object."""

    @abstractmethod
    def on_deleted(self, obj: dict[str, Any]) -> None:
        """Handle a deleted object."""


class InstanceCacheBucket(StreamConsumer):
    """Identity keyed map of the instances of one watched type."""

    def __init__(
        self,
        key: BucketKey,
        on_change: Callable[[BucketKey], None] | None = None,
    ) -> None:
        self._key = key
        self._on_change = on_change
        self._items: dict[str, ResourceInstance] = {}
        self._kind: str | None = None
        self._ready = asyncio.Event()

    @property
    def key(self) -> BucketKey:
        return self._key

    @property
    def ready(self) -> bool:
        """True once the first full list has been applied."""
        return self._ready.is_set()

    async def wait_ready(self) -> None:
        """Wait until the first full list has been applied."""
        await self._ready.wait()

    def __len__(self) -> int:
        return len(self._items)

    def _parse(self, obj: dict[str, Any]) -> ResourceInstance | None:
        try:
            return ResourceInstance.parse_doc(
                obj, kind=self._kind, api_version=self._key.api_version
            )
        except InputException as err:
            _LOGGER.warning("Skipping object in %s: %s", self._key, err)
            return None

    def _changed(self) -> None:
        if self._on_change:
            self._on_change(self._key)

    def on_snapshot(self, snapshot: Snapshot) -> None:
        if snapshot.kind:
            self._kind = snapshot.kind
        items: dict[str, ResourceInstance] = {}
        for obj in snapshot.items:
            if (instance := self._parse(obj)) is not None:
                items[instance.identity] = instance
        removed = self._items.keys() - items.keys()
        _LOGGER.debug(
            "Replacing %s with %d instances (%d removed)",
            self._key,
            len(items),
            len(removed),
        )
        self._items = items
        self._ready.set()
        self._changed()

    def _upsert(self, obj: dict[str, Any]) -> None:
        if (instance := self._parse(obj)) is None:
            return
        if self._kind is None:
            self._kind = instance.kind
        self._items[instance.identity] = instance
        self._changed()

    def on_added(self, obj: dict[str, Any]) -> None:
        _LOGGER.debug(
            "Added to %s: %s", self._key, obj.get("metadata", {}).get("name")
        )
        self._upsert(obj)

    def on_modified(self, obj: dict[str, Any]) -> None:
        _LOGGER.debug(
            "Modified in %s: %s", self._key, obj.get("metadata", {}).get("name")
        )
        self._upsert(obj)

    def on_deleted(self, obj: dict[str, Any]) -> None:
        identity = (obj.get("metadata") or {}).get("uid")
        if identity is None or self._items.pop(identity, None) is None:
            _LOGGER.debug("Delete of unknown object in %s ignored", self._key)
            return
        _LOGGER.debug("Deleted from %s: %s", self._key, identity)
        self._changed()

    def get(self, identity: str) -> ResourceInstance | None:
        """Return a copy of the instance with the given identity, if cached."""
        if (instance := self._items.get(identity)) is None:
            return None
        return replace(instance, payload=copy.deepcopy(instance.payload))

    def instances(self, namespace: str | None = None) -> list[ResourceInstance]:
        """Return copies of the cached instances, optionally for one namespace."""
        return [
            replace(instance, payload=copy.deepcopy(instance.payload))
            for instance in self._items.values()
            if namespace is None or instance.namespace == namespace
        ]
