"""Catalogs of the types and namespaces available on the cluster.

Both catalogs consume a supervised watch like an instance bucket does. The
type catalog additionally asks the instance cache manager to watch every
newly discovered type, except types in the excluded infrastructure group
family. A deleted type is removed from the catalog but its instance watch is
left running, since a type that is deleted is frequently defined again right
away.
"""

import asyncio
from collections.abc import Callable
import logging
from typing import Any

from cluster_mirror.exceptions import InputException
from cluster_mirror.manifest import (
    NAMESPACES_SOURCE,
    TYPES_SOURCE,
    BucketKey,
    NamespaceRecord,
    TypeDefinition,
)

from .bucket import Snapshot, StreamConsumer
from .manager import InstanceCacheManager

__all__ = [
    "TypeCatalog",
    "NamespaceCatalog",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_EXCLUDED_GROUP_SUFFIX = "k8s.io"


class _Catalog(StreamConsumer):
    """Shared readiness and change notification for catalogs."""

    source: BucketKey

    def __init__(self, on_change: Callable[[BucketKey], None] | None) -> None:
        self._on_change = on_change
        self._ready = asyncio.Event()

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    async def wait_ready(self) -> None:
        await self._ready.wait()

    def _changed(self) -> None:
        if self._on_change:
            self._on_change(self.source)


class TypeCatalog(_Catalog):
    """The live set of type definitions, keyed by (group, kind)."""

    source = TYPES_SOURCE

    def __init__(
        self,
        manager: InstanceCacheManager,
        excluded_group_suffix: str = DEFAULT_EXCLUDED_GROUP_SUFFIX,
        on_change: Callable[[BucketKey], None] | None = None,
    ) -> None:
        super().__init__(on_change)
        self._manager = manager
        self._excluded_group_suffix = excluded_group_suffix
        self._definitions: dict[tuple[str, str], TypeDefinition] = {}

    def is_excluded(self, group: str) -> bool:
        """Return True if instances of types in the group are never watched."""
        return bool(self._excluded_group_suffix) and group.endswith(
            self._excluded_group_suffix
        )

    def _parse(self, obj: dict[str, Any]) -> TypeDefinition | None:
        try:
            return TypeDefinition.parse_doc(obj)
        except InputException as err:
            _LOGGER.warning("Skipping type definition: %s", err)
            return None

    def _observe(self, definition: TypeDefinition) -> None:
        previous = self._definitions.get(definition.type_key)
        self._definitions[definition.type_key] = definition
        if previous is not None and previous.bucket_key == definition.bucket_key:
            return
        if self.is_excluded(definition.group):
            _LOGGER.debug("Not watching excluded type %s", definition.name)
            return
        if previous is None:
            _LOGGER.info(
                "Discovered type %s (%s)", definition.kind, definition.bucket_key
            )
        else:
            _LOGGER.info(
                "Type %s changed from %s to %s",
                definition.kind,
                previous.bucket_key,
                definition.bucket_key,
            )
        self._manager.ensure_watching(definition.bucket_key)

    def on_snapshot(self, snapshot: Snapshot) -> None:
        seen: set[tuple[str, str]] = set()
        for obj in snapshot.items:
            if (definition := self._parse(obj)) is not None:
                self._observe(definition)
                seen.add(definition.type_key)
        for type_key in self._definitions.keys() - seen:
            _LOGGER.debug("Type %s no longer listed", type_key)
            del self._definitions[type_key]
        self._ready.set()
        self._changed()

    def on_added(self, obj: dict[str, Any]) -> None:
        if (definition := self._parse(obj)) is not None:
            self._observe(definition)
            self._changed()

    def on_modified(self, obj: dict[str, Any]) -> None:
        self.on_added(obj)

    def on_deleted(self, obj: dict[str, Any]) -> None:
        if (definition := self._parse(obj)) is None:
            return
        if self._definitions.pop(definition.type_key, None) is not None:
            _LOGGER.info("Type %s deleted", definition.name)
            self._changed()

    def definitions(self) -> list[TypeDefinition]:
        """Return every known type definition."""
        return list(self._definitions.values())

    def get(self, group: str, kind: str) -> TypeDefinition | None:
        return self._definitions.get((group, kind))

    def find_by_kind(self, kind: str) -> list[TypeDefinition]:
        """Return the definitions with the given kind across all groups."""
        return [d for d in self._definitions.values() if d.kind == kind]


class NamespaceCatalog(_Catalog):
    """The live set of namespace names.

    Instance watches are cluster wide, so the namespace catalog only informs
    presentation and never gates what is watched.
    """

    source = NAMESPACES_SOURCE

    def __init__(self, on_change: Callable[[BucketKey], None] | None = None) -> None:
        super().__init__(on_change)
        self._names: set[str] = set()

    def _parse(self, obj: dict[str, Any]) -> str | None:
        try:
            return NamespaceRecord.parse_doc(obj).name
        except InputException as err:
            _LOGGER.warning("Skipping namespace: %s", err)
            return None

    def on_snapshot(self, snapshot: Snapshot) -> None:
        self._names = {
            name for obj in snapshot.items if (name := self._parse(obj)) is not None
        }
        self._ready.set()
        self._changed()

    def on_added(self, obj: dict[str, Any]) -> None:
        if (name := self._parse(obj)) is not None and name not in self._names:
            self._names.add(name)
            self._changed()

    def on_modified(self, obj: dict[str, Any]) -> None:
        self.on_added(obj)

    def on_deleted(self, obj: dict[str, Any]) -> None:
        if (name := self._parse(obj)) is not None and name in self._names:
            self._names.discard(name)
            self._changed()

    def names(self) -> list[str]:
        """Return the namespace names in sorted order."""
        return sorted(self._names)
