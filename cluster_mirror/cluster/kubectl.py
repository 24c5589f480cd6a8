"""Cluster api implemented by issuing `kubectl` commands.

Collections are listed and watched with `kubectl get --raw` against the
cluster-wide API path of the collection, so any watchable type can be mirrored
without client side knowledge of its schema:

```python
from cluster_mirror.cluster.kubectl import KubectlClusterApi
from cluster_mirror.manifest import BucketKey

api = KubectlClusterApi()
result = await api.list_objects(BucketKey("apps", "v1", "deployments"))
for item in result.items:
    print(item["metadata"]["name"])
```

Declarative transactions are not a kubectl concept and are delegated to a
`TransactionClient` when one is supplied.
"""

from collections.abc import AsyncGenerator
import json
import logging
from typing import Any
from urllib.parse import urlencode

from cluster_mirror.command import Command
from cluster_mirror.config import KubectlConfig
from cluster_mirror.exceptions import (
    BackendError,
    CommandException,
    ConflictError,
    ObjectNotFoundError,
)
from cluster_mirror.manifest import (
    BucketKey,
    DeclarativeTransaction,
    NamedResource,
    split_api_version,
)

from .api import ClusterApi, EventType, ListResult, WatchEvent
from .transactions import TransactionClient

__all__ = [
    "KubectlClusterApi",
]

_LOGGER = logging.getLogger(__name__)

_LIST_SUFFIX = "List"
_CONFLICT_MARKERS = ("the object has been modified", "(Conflict)")
_NOT_FOUND_MARKERS = ("(NotFound)", "NotFound")
_DRY_RUN = "--dry-run=server"


def parse_list(content: bytes) -> ListResult:
    """Parse the output of a raw list request."""
    try:
        data = json.loads(content)
    except ValueError as err:
        raise BackendError(f"Unable to decode list response: {err}") from err
    if not isinstance(data, dict):
        raise BackendError(f"Unexpected list response: {data!r}")
    kind = data.get("kind")
    if kind and kind.endswith(_LIST_SUFFIX):
        kind = kind[: -len(_LIST_SUFFIX)]
    api_version = data.get("apiVersion")
    items = []
    for item in data.get("items") or ():
        if not isinstance(item, dict):
            continue
        # Items in a list response omit their kind and apiVersion
        if kind:
            item.setdefault("kind", kind)
        if api_version:
            item.setdefault("apiVersion", api_version)
        items.append(item)
    return ListResult(
        items=items,
        resource_version=(data.get("metadata") or {}).get("resourceVersion"),
        kind=kind,
        api_version=api_version,
    )


def parse_watch_line(line: bytes) -> WatchEvent | None:
    """Parse a single line of a raw watch stream.

    Returns None for lines that do not carry a change, such as bookmarks.
    """
    if not line.strip():
        return None
    try:
        data = json.loads(line)
    except ValueError as err:
        raise BackendError(f"Unable to decode watch event: {err}") from err
    try:
        event_type = EventType(data.get("type"))
    except ValueError:
        _LOGGER.debug("Ignoring watch event of type %s", data.get("type"))
        return None
    obj = data.get("object")
    return WatchEvent(event_type, obj if isinstance(obj, dict) else {})


def resource_arg(kind: str, api_version: str | None) -> str:
    """Return the fully qualified resource argument for `kubectl get`."""
    if not api_version:
        return kind
    group, version = split_api_version(api_version)
    if not group:
        return kind
    return f"{kind}.{version}.{group}"


def _map_error(
    err: CommandException, resource: NamedResource
) -> BackendError | None:
    """Translate a failed kubectl invocation into a more specific error."""
    if any(marker in err.detail for marker in _CONFLICT_MARKERS):
        return ConflictError(str(resource), err.detail)
    if any(marker in err.detail for marker in _NOT_FOUND_MARKERS):
        return ObjectNotFoundError(f"{resource} not found: {err.detail}")
    return None


def _resource_of(obj: dict[str, Any]) -> NamedResource:
    metadata = obj.get("metadata") or {}
    return NamedResource(
        obj.get("kind", ""), metadata.get("namespace"), metadata.get("name", "")
    )


class KubectlClusterApi(ClusterApi):
    """A ClusterApi that shells out to kubectl."""

    def __init__(
        self,
        config: KubectlConfig | None = None,
        transactions: TransactionClient | None = None,
    ) -> None:
        self._config = config or KubectlConfig()
        self._transactions = transactions

    def _command(self, args: list[str], **kwargs: Any) -> Command:
        cmd = [self._config.kubectl]
        if self._config.context:
            cmd.extend(["--context", self._config.context])
        if self._config.kubeconfig:
            cmd.extend(["--kubeconfig", self._config.kubeconfig])
        return Command(cmd + args, **kwargs)

    async def list_objects(self, source: BucketKey) -> ListResult:
        out = await self._command(["get", "--raw", source.api_path]).run()
        result = parse_list(out)
        _LOGGER.debug(
            "Listed %d objects from %s at version %s",
            len(result.items),
            source,
            result.resource_version,
        )
        return result

    async def watch_objects(
        self, source: BucketKey, resource_version: str | None
    ) -> AsyncGenerator[WatchEvent, None]:
        params = {"watch": "1"}
        if resource_version:
            params["resourceVersion"] = resource_version
        path = f"{source.api_path}?{urlencode(params)}"
        cmd = self._command(["get", "--raw", path])
        try:
            async for line in cmd.stream_lines():
                if event := parse_watch_line(line):
                    yield event
        except BackendError as err:
            yield WatchEvent(EventType.ERROR, {"message": err.detail})

    async def get_object(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        api_version: str | None = None,
    ) -> str:
        args = ["get", resource_arg(kind, api_version), name, "-o", "yaml"]
        if namespace:
            args.extend(["-n", namespace])
        try:
            out = await self._command(args).run()
        except CommandException as err:
            if mapped := _map_error(err, NamedResource(kind, namespace, name)):
                raise mapped from err
            raise
        return out.decode("utf-8")

    async def _submit(
        self, verb: str, obj: dict[str, Any], dry_run: bool
    ) -> dict[str, Any]:
        args = [verb, "-f", "-", "-o", "json"]
        if dry_run:
            args.append(_DRY_RUN)
        resource = _resource_of(obj)
        _LOGGER.debug("Running %s for %s (dry_run=%s)", verb, resource, dry_run)
        try:
            out = await self._command(args).run(json.dumps(obj).encode("utf-8"))
        except CommandException as err:
            if mapped := _map_error(err, resource):
                raise mapped from err
            raise
        try:
            return json.loads(out)
        except ValueError as err:
            raise BackendError(f"Unable to decode {verb} response: {err}") from err

    async def replace_object(
        self,
        obj: dict[str, Any],
        *,
        dry_run: bool = False,
        version_token: str | None = None,
    ) -> dict[str, Any]:
        if version_token:
            obj = {**obj, "metadata": {**obj.get("metadata", {})}}
            obj["metadata"]["resourceVersion"] = version_token
        return await self._submit("replace", obj, dry_run)

    async def create_object(
        self, obj: dict[str, Any], *, dry_run: bool = False
    ) -> dict[str, Any]:
        return await self._submit("create", obj, dry_run)

    async def submit_transaction(self, tx: DeclarativeTransaction) -> str:
        if self._transactions is None:
            raise BackendError(
                "No transaction endpoint configured for declarative objects"
            )
        return await self._transactions.submit(tx)
