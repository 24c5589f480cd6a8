"""Cluster-mirror diff action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
from typing import cast

from .common import (
    add_diff_flags,
    object_id,
    open_mirror,
    proposed_object,
    read_document,
)
from .format import DIFF_FORMATS

_LOGGER = logging.getLogger(__name__)


class DiffAction:
    """Diff an object in a file against the live object."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "diff",
                help="Diff an object against the cluster",
                description=(
                    "Fetch the live object for the object in a file and print "
                    "the changes the file would make"
                ),
            ),
        )
        args.add_argument(
            "file",
            type=pathlib.Path,
            help="YAML file containing a single object",
        )
        args.add_argument(
            "--output",
            "-o",
            choices=list(DIFF_FORMATS),
            default="diff",
            help="Output format of the command",
        )
        add_diff_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        file: pathlib.Path,
        output: str,
        unified: int,
        limit_bytes: int,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        doc = await read_document(file)
        namespace, kind, name = object_id(doc)
        async with open_mirror(
            unified=unified, limit_bytes=limit_bytes, **kwargs
        ) as mirror:
            handle = await mirror.begin_edit(
                namespace, kind, name, api_version=doc.get("apiVersion")
            )
            snapshot = mirror.get_original_snapshot(handle)
            proposed = proposed_object(doc, snapshot)
            session = mirror.sessions.get(handle)

        lines = DIFF_FORMATS[output](
            session.resource_id, snapshot, proposed, unified, limit_bytes
        )
        found = False
        for line in lines:
            found = True
            print(line)
        if not found:
            _LOGGER.info("No changes for %s", session.resource_id)
