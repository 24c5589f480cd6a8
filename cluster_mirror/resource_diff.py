"""Module for computing resource diffs.

This is used by the apply coordinator to compare the original snapshot of an
edit session with the proposed object, and by the diff tool.
"""

from collections.abc import Callable
import difflib
import json
import logging
from typing import Any, Generator

import yaml

from .documents import canonical_text
from .manifest import NamedResource

_LOGGER = logging.getLogger(__name__)

_TRUNCATE = "[Diff truncated by cluster-mirror]"


def perform_object_diff(
    resource_id: NamedResource,
    original: dict[str, Any] | None,
    proposed: dict[str, Any] | None,
    n: int,
    limit_bytes: int,
) -> Generator[str, None, None]:
    """Generate a unified diff between the canonical forms of two objects.

    Nothing is generated when both objects serialize to identical text.
    """
    _LOGGER.debug("Diffing %s (n=%d)", resource_id, n)
    diff_text = difflib.unified_diff(
        a=canonical_text(original).splitlines() if original is not None else [],
        b=canonical_text(proposed).splitlines() if proposed is not None else [],
        fromfile=f"original {resource_id}",
        tofile=f"proposed {resource_id}",
        n=n,
        lineterm="",
    )
    size = 0
    for line in diff_text:
        size += len(line)
        if limit_bytes and size > limit_bytes:
            yield _TRUNCATE
            break
        yield line


def perform_yaml_diff(
    resource_id: NamedResource,
    original: dict[str, Any] | None,
    proposed: dict[str, Any] | None,
    n: int,
    limit_bytes: int,
) -> Generator[str, None, None]:
    """Generate a structured yaml document describing the diff."""

    def diff_func(diffs: list[dict[str, Any]]) -> str:
        return yaml.dump(
            diffs, sort_keys=False, explicit_start=True, default_style=None
        )

    yield from _perform_function_diff(
        resource_id, original, proposed, n, limit_bytes, diff_func
    )


def perform_json_diff(
    resource_id: NamedResource,
    original: dict[str, Any] | None,
    proposed: dict[str, Any] | None,
    n: int,
    limit_bytes: int,
) -> Generator[str, None, None]:
    """Generate a structured json document describing the diff."""

    def diff_func(diffs: list[dict[str, Any]]) -> str:
        return json.dumps(diffs, sort_keys=False, indent=4)

    yield from _perform_function_diff(
        resource_id, original, proposed, n, limit_bytes, diff_func
    )


def _perform_function_diff(
    resource_id: NamedResource,
    original: dict[str, Any] | None,
    proposed: dict[str, Any] | None,
    n: int,
    limit_bytes: int,
    diff_func: Callable[[list[dict[str, Any]]], str],
) -> Generator[str, None, None]:
    diff_content = "\n".join(
        perform_object_diff(resource_id, original, proposed, n, limit_bytes=0)
    )
    if not diff_content:
        return
    if limit_bytes and len(diff_content) > limit_bytes:
        diff_content = diff_content[:limit_bytes] + "\n" + _TRUNCATE
    obj: dict[str, Any] = {"kind": resource_id.kind, "name": resource_id.name}
    if resource_id.namespace:
        obj["namespace"] = resource_id.namespace
    obj["diff"] = diff_content
    yield diff_func([obj])
