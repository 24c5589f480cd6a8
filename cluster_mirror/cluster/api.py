"""Interface to the remote cluster API consumed by the mirror.

Every watchable collection (type definitions, namespaces and instances of a
custom type) is addressed by a BucketKey and follows the same list-then-watch
protocol: `list_objects` returns an authoritative snapshot along with the
resource version it was taken at, and `watch_objects` streams the changes
after that version. A stream terminates after emitting an ERROR event.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, TYPE_CHECKING

from cluster_mirror.manifest import (
    BucketKey,
    DeclarativeTransaction,
    NAMESPACES_SOURCE,
    TYPES_SOURCE,
)

__all__ = [
    "ClusterApi",
    "EventType",
    "WatchEvent",
    "ListResult",
]


class EventType(StrEnum):
    """Types of events emitted on a watch stream."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class WatchEvent:
    """A single change notification from a watch stream."""

    type: EventType
    object: dict[str, Any] = field(default_factory=dict)
    """The changed object, or the error status for ERROR events."""

    @property
    def message(self) -> str:
        """Return a description of an ERROR event."""
        return str(self.object.get("message") or self.object or "unknown error")


@dataclass
class ListResult:
    """An authoritative snapshot of a collection."""

    items: list[dict[str, Any]]
    resource_version: str | None = None
    kind: str | None = None
    """The kind of the items, when reported by the collection."""

    api_version: str | None = None


class ClusterApi(ABC):
    """Abstract client for the remote cluster."""

    @abstractmethod
    async def list_objects(self, source: BucketKey) -> ListResult:
        """List every object in the collection across all namespaces."""

    @abstractmethod
    async def watch_objects(
        self, source: BucketKey, resource_version: str | None
    ) -> AsyncGenerator[WatchEvent, None]:
        """Stream changes to the collection after the given resource version."""
        if TYPE_CHECKING:
            yield WatchEvent(EventType.ERROR)

    @abstractmethod
    async def get_object(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        api_version: str | None = None,
    ) -> str:
        """Fetch the current object from the server as YAML text."""

    @abstractmethod
    async def replace_object(
        self,
        obj: dict[str, Any],
        *,
        dry_run: bool = False,
        version_token: str | None = None,
    ) -> dict[str, Any]:
        """Replace an existing object, returning the object stored by the server.

        Raises ConflictError when the version token does not match the object.
        """

    @abstractmethod
    async def create_object(
        self, obj: dict[str, Any], *, dry_run: bool = False
    ) -> dict[str, Any]:
        """Create a new object, returning the object stored by the server."""

    @abstractmethod
    async def submit_transaction(self, tx: DeclarativeTransaction) -> str:
        """Submit a declarative transaction, returning its id."""

    async def list_types(self) -> ListResult:
        return await self.list_objects(TYPES_SOURCE)

    def watch_types(
        self, resource_version: str | None
    ) -> AsyncGenerator[WatchEvent, None]:
        return self.watch_objects(TYPES_SOURCE, resource_version)

    async def list_namespaces(self) -> ListResult:
        return await self.list_objects(NAMESPACES_SOURCE)

    def watch_namespaces(
        self, resource_version: str | None
    ) -> AsyncGenerator[WatchEvent, None]:
        return self.watch_objects(NAMESPACES_SOURCE, resource_version)

    async def list_instances(self, key: BucketKey) -> ListResult:
        return await self.list_objects(key)

    def watch_instances(
        self, key: BucketKey, resource_version: str | None
    ) -> AsyncGenerator[WatchEvent, None]:
        return self.watch_objects(key, resource_version)
