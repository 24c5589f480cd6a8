"""The cluster mirror context object.

A `ClusterMirror` is constructed explicitly with a cluster api and owns every
component of the mirror: the type and namespace catalogs, the instance cache,
the edit session registry and the apply coordinator. Presentation code talks
only to this object.

```python
from cluster_mirror.cluster.kubectl import KubectlClusterApi
from cluster_mirror.mirror import ClusterMirror

async with ClusterMirror(KubectlClusterApi()) as mirror:
    await mirror.wait_for_types()
    handle = await mirror.begin_edit("default", "Widget", "w1")
    proposed = mirror.get_original_snapshot(handle)
    proposed["spec"]["size"] = 3
    result = await mirror.validate_and_apply(handle, proposed, skip_prompts=True)
```
"""

from collections.abc import Callable
import logging
from typing import Any

from .cache import (
    ChangeNotifier,
    InstanceCacheManager,
    NamespaceCatalog,
    TypeCatalog,
    WatchSupervisor,
)
from .cluster.api import ClusterApi
from .config import MirrorConfig
from .edit import (
    ApplyCoordinator,
    ApplyResult,
    Classifier,
    DocumentId,
    EditSessionRegistry,
    OriginStore,
    TransactionBasket,
)
from .edit.apply import ConfirmCallback
from .edit.session import EditHandle
from .manifest import (
    BucketKey,
    Classification,
    NamedResource,
    ResourceInstance,
    TypeDefinition,
)
from .task import TaskService, TaskServiceImpl

__all__ = [
    "ClusterMirror",
]

_LOGGER = logging.getLogger(__name__)


class ClusterMirror:
    """Owns the watch based cache and the edit workflow for one cluster."""

    def __init__(
        self,
        api: ClusterApi,
        config: MirrorConfig | None = None,
        task_service: TaskService | None = None,
    ) -> None:
        self._api = api
        self._config = config or MirrorConfig()
        self._task_service = task_service or TaskServiceImpl()
        self._notifier = ChangeNotifier(self._config.cache.debounce_seconds)
        self._manager = InstanceCacheManager(
            api, self._task_service, self._config.watch, self._notifier
        )
        self._types = TypeCatalog(
            self._manager,
            self._config.cache.excluded_group_suffix,
            on_change=self._notifier.notify,
        )
        self._namespaces = NamespaceCatalog(on_change=self._notifier.notify)
        self._supervisors = [
            WatchSupervisor(
                name,
                api,
                catalog.source,
                catalog,
                self._task_service,
                retry_delay=self._config.watch.retry_delay,
            )
            for name, catalog in (
                ("types", self._types),
                ("namespaces", self._namespaces),
            )
        ]
        self._origins = OriginStore()
        self._classifier = Classifier(self._config.classifier, self._origins)
        self._registry = EditSessionRegistry(api, self._classifier)
        self._coordinator = ApplyCoordinator(api, self._registry, self._config.apply)
        self._basket = TransactionBasket(self._config.apply.description_prefix)
        self._started = False

    async def __aenter__(self) -> "ClusterMirror":
        self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    @property
    def api(self) -> ClusterApi:
        return self._api

    @property
    def types(self) -> TypeCatalog:
        return self._types

    @property
    def namespaces(self) -> NamespaceCatalog:
        return self._namespaces

    @property
    def cache(self) -> InstanceCacheManager:
        return self._manager

    @property
    def sessions(self) -> EditSessionRegistry:
        return self._registry

    @property
    def coordinator(self) -> ApplyCoordinator:
        return self._coordinator

    @property
    def basket(self) -> TransactionBasket:
        return self._basket

    def start(self) -> None:
        """Start watching types and namespaces."""
        if self._started:
            return
        self._started = True
        _LOGGER.debug("Starting cluster mirror")
        for supervisor in self._supervisors:
            supervisor.start()

    async def close(self) -> None:
        """Stop every watch and drop pending notifications."""
        _LOGGER.debug("Closing cluster mirror")
        for supervisor in self._supervisors:
            await supervisor.stop()
        await self._manager.close()
        self._notifier.close()
        await self._task_service.close()

    async def wait_for_types(self) -> list[TypeDefinition]:
        """Wait for the first full list of type definitions."""
        await self._types.wait_ready()
        return self._types.definitions()

    def watch(self, key: BucketKey) -> bool:
        """Watch instances of a type directly, without waiting for discovery."""
        return self._manager.ensure_watching(key)

    async def wait_ready(self, key: BucketKey) -> None:
        """Wait for the first full list of a watched type."""
        await self._manager.wait_ready(key)

    def get_cached_instances(
        self,
        group: str,
        version: str,
        plural: str,
        namespace: str | None = None,
    ) -> list[ResourceInstance]:
        """Return the cached instances of a type without waiting."""
        return self._manager.get_instances(group, version, plural, namespace)

    def on_cache_changed(
        self, callback: Callable[[frozenset[BucketKey]], None]
    ) -> Callable[[], None]:
        """Register a rate limited cache change callback.

        Returns a function that removes the callback.
        """
        return self._notifier.add_listener(callback)

    async def begin_edit(
        self,
        namespace: str | None,
        kind: str,
        name: str,
        origin: Classification | None = None,
        api_version: str | None = None,
    ) -> DocumentId:
        return await self._registry.begin_edit(
            namespace, kind, name, origin=origin, api_version=api_version
        )

    def begin_create(
        self, doc: dict[str, Any], origin: Classification | None = None
    ) -> DocumentId:
        return self._registry.begin_create(doc, origin)

    def get_original_snapshot(self, handle: EditHandle) -> dict[str, Any]:
        return self._registry.get_original_snapshot(handle)

    def has_pending_changes(self, handle: EditHandle) -> bool:
        return self._registry.has_pending_changes(handle)

    async def validate_and_apply(
        self,
        handle: EditHandle,
        proposed: dict[str, Any] | str,
        dry_run: bool = False,
        skip_prompts: bool = False,
        confirm: ConfirmCallback | None = None,
        force: bool = False,
    ) -> ApplyResult:
        return await self._coordinator.validate_and_apply(
            handle,
            proposed,
            dry_run=dry_run,
            skip_prompts=skip_prompts,
            confirm=confirm,
            force=force,
        )

    def add_to_basket(self, handle: EditHandle, proposed: dict[str, Any]) -> int:
        """Queue a declarative change instead of applying it."""
        return self._basket.add(self._coordinator.stage(handle, proposed))

    def add_delete_to_basket(self, resource_id: NamedResource, api_version: str) -> int:
        """Queue the deletion of a declarative object."""
        return self._basket.add_delete(resource_id, api_version)

    async def submit_basket(self, dry_run: bool = False) -> str:
        """Submit every queued change as one transaction."""
        return await self._basket.submit(self._api, dry_run=dry_run)
