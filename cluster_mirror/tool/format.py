"""Output formatting for the command line tool.

Tables are printed as left aligned columns padded to the widest value in
each column. Objects are printed either as a stream of yaml documents or as
a json list. Diffs of a proposed object are printed in one of the formats
in `DIFF_FORMATS`.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Generator, Iterable, Sequence
import json
import sys
from typing import Any, TextIO

import yaml

from cluster_mirror.manifest import NamedResource, ResourceInstance
from cluster_mirror.resource_diff import (
    perform_json_diff,
    perform_object_diff,
    perform_yaml_diff,
)

PADDING = 4

INSTANCE_COLUMNS = ["name", "version"]
WIDE_COLUMNS = ["kind", "identity"]


def column_widths(rows: Sequence[Sequence[str]]) -> list[int]:
    """Return the length of the widest value in each column."""
    widths = [0] * len(rows[0])
    for row in rows:
        for i, value in enumerate(row):
            widths[i] = max(widths[i], len(value))
    return widths


def format_columns(
    headers: list[str], rows: list[list[str]]
) -> Generator[str, None, None]:
    """Yield the headers and rows aligned in columns."""
    if not headers:
        return
    table = [headers, *rows]
    widths = column_widths(table)
    for row in table:
        cells = [value.ljust(width + PADDING) for value, width in zip(row, widths)]
        yield "".join(cells).rstrip()


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


class PrintFormatter:
    """A formatter that prints rows as a human readable table."""

    def __init__(self, keys: list[str] | None = None) -> None:
        """Initialize the PrintFormatter with the keys to use as columns.

        When no keys are given the keys of the first row are used.
        """
        self._keys = keys

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        if not data:
            return
        keys = self._keys if self._keys is not None else list(data[0])
        yield from format_columns(
            [key.upper() for key in keys],
            [[_cell(row.get(key)) for key in keys] for row in data],
        )

    def print(self, data: list[dict[str, Any]], file: TextIO = sys.stdout) -> None:
        for line in self.format(data):
            print(line, file=file)


def instance_columns(wide: bool, all_namespaces: bool) -> list[str]:
    """Return the table columns used to print cached instances."""
    cols = list(INSTANCE_COLUMNS)
    if wide:
        cols.extend(WIDE_COLUMNS)
    if all_namespaces:
        cols.insert(0, "namespace")
    return cols


def instance_row(instance: ResourceInstance) -> dict[str, Any]:
    """Return the table row for a cached instance."""
    return {
        "namespace": instance.namespace,
        "name": instance.name,
        "kind": instance.kind,
        "version": instance.version_token,
        "identity": instance.identity,
    }


class StructFormatter(ABC):
    """A formatter that prints whole objects."""

    @abstractmethod
    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        """Format the objects as output lines."""

    def print(self, data: list[dict[str, Any]], file: TextIO = sys.stdout) -> None:
        for line in self.format(data):
            print(line, file=file)


class YamlFormatter(StructFormatter):
    """Prints each object as a separate yaml document."""

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        content = yaml.dump_all(data, sort_keys=False, explicit_start=True)
        yield from content.rstrip("\n").splitlines()


class JsonFormatter(StructFormatter):
    """Prints the objects as a json list."""

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        yield from json.dumps(data, indent=4).splitlines()


FORMATTERS: dict[str, type[StructFormatter]] = {
    "yaml": YamlFormatter,
    "json": JsonFormatter,
}


DiffFormat = Callable[
    [NamedResource, dict[str, Any] | None, dict[str, Any] | None, int, int],
    Iterable[str],
]

DIFF_FORMATS: dict[str, DiffFormat] = {
    "diff": perform_object_diff,
    "yaml": perform_yaml_diff,
    "json": perform_json_diff,
}
