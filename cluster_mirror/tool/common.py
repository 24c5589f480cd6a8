"""Shared flags and helpers for cluster-mirror actions."""

from argparse import ArgumentParser
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
import logging
import pathlib
from typing import Any

import aiofiles

from cluster_mirror.cluster.kubectl import KubectlClusterApi
from cluster_mirror.cluster.transactions import TransactionClient
from cluster_mirror.config import (
    ApplyConfig,
    KubectlConfig,
    MirrorConfig,
    TransactionApiConfig,
)
from cluster_mirror.documents import load_document, sanitize_for_edit
from cluster_mirror.exceptions import InputException
from cluster_mirror.mirror import ClusterMirror

_LOGGER = logging.getLogger(__name__)


def add_cluster_flags(args: ArgumentParser) -> None:
    """Add flags for connecting to the cluster."""
    args.add_argument(
        "--kubectl",
        default="kubectl",
        help="Path to the kubectl binary",
    )
    args.add_argument(
        "--context",
        default=None,
        help="The kubeconfig context to use",
    )
    args.add_argument(
        "--kubeconfig",
        default=None,
        help="Path to the kubeconfig file",
    )
    args.add_argument(
        "--transaction-url",
        default=None,
        help="Base url of the declarative transaction api",
    )
    args.add_argument(
        "--transaction-token",
        default=None,
        help="Bearer token for the declarative transaction api",
    )


def add_diff_flags(args: ArgumentParser) -> None:
    """Add flags that control diff output."""
    args.add_argument(
        "--unified",
        "-u",
        type=int,
        default=3,
        help="output NUM (default 3) lines of unified context",
    )
    args.add_argument(
        "--limit-bytes",
        help="Maximum bytes for each diff output (0=unlimited)",
        type=int,
        default=0,
    )


@asynccontextmanager
async def open_mirror(
    kubectl: str = "kubectl",
    context: str | None = None,
    kubeconfig: str | None = None,
    transaction_url: str | None = None,
    transaction_token: str | None = None,
    unified: int = 3,
    limit_bytes: int = 0,
    start: bool = False,
    **kwargs: Any,  # pylint: disable=unused-argument
) -> AsyncIterator[ClusterMirror]:
    """Create a ClusterMirror from command line flags.

    Type discovery is only started when `start` is set, since most actions
    work on a single object or type.
    """
    async with AsyncExitStack() as stack:
        transactions = None
        if transaction_url:
            transactions = await stack.enter_async_context(
                TransactionClient(
                    TransactionApiConfig(url=transaction_url, token=transaction_token)
                )
            )
        api = KubectlClusterApi(
            KubectlConfig(kubectl=kubectl, context=context, kubeconfig=kubeconfig),
            transactions=transactions,
        )
        config = MirrorConfig(
            apply=ApplyConfig(diff_context_lines=unified, diff_limit_bytes=limit_bytes)
        )
        mirror = ClusterMirror(api, config)
        stack.push_async_callback(mirror.close)
        if start:
            mirror.start()
        yield mirror


async def read_document(path: pathlib.Path) -> dict[str, Any]:
    """Read a single object from a YAML file."""
    try:
        async with aiofiles.open(path, mode="r") as f:
            content = await f.read()
    except OSError as err:
        raise InputException(f"Unable to read {path}: {err}") from err
    return load_document(content)


def proposed_object(
    doc: dict[str, Any], snapshot: dict[str, Any] | None
) -> dict[str, Any]:
    """Prepare an object read from a file for comparison with a snapshot.

    Server managed fields are removed, and the version token of the snapshot
    is used when the file does not carry one.
    """
    proposed = sanitize_for_edit(doc)
    if snapshot is None:
        return proposed
    metadata = proposed.setdefault("metadata", {})
    if "resourceVersion" not in metadata and (
        version := (snapshot.get("metadata") or {}).get("resourceVersion")
    ):
        metadata["resourceVersion"] = version
    return proposed


def object_id(doc: dict[str, Any]) -> tuple[str | None, str, str]:
    """Return the namespace, kind and name of an object read from a file."""
    metadata = doc.get("metadata") or {}
    if not (kind := doc.get("kind")) or not (name := metadata.get("name")):
        raise InputException("Object must have a kind and metadata.name")
    return metadata.get("namespace"), kind, name
