"""Cluster-mirror get action."""

import asyncio
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
from typing import cast

from cluster_mirror.exceptions import BackendError
from cluster_mirror.manifest import BucketKey

from .common import open_mirror
from .format import FORMATTERS, PrintFormatter, instance_columns, instance_row

_LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class GetAction:
    """Get the objects of a type from the cluster."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "get",
                help="Print the objects of a type",
                description=(
                    "Watch a type until its first full list arrives and print "
                    "the cached objects"
                ),
            ),
        )
        args.add_argument(
            "resource",
            help="The type to list as group/version/plural (version/plural for core)",
        )
        args.add_argument(
            "--namespace",
            "-n",
            default=None,
            help="Only print objects in this namespace",
        )
        args.add_argument(
            "--output",
            "-o",
            choices=["wide", *FORMATTERS],
            default=None,
            help="Output format of the command",
        )
        args.add_argument(
            "--timeout",
            type=float,
            default=DEFAULT_TIMEOUT,
            help="Seconds to wait for the first list of the type",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        resource: str,
        namespace: str | None,
        output: str | None,
        timeout: float,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        key = BucketKey.parse(resource)
        async with open_mirror(**kwargs) as mirror:
            mirror.watch(key)
            try:
                async with asyncio.timeout(timeout):
                    await mirror.wait_ready(key)
            except TimeoutError as err:
                raise BackendError(
                    f"Timed out after {timeout}s waiting for a list of {key}"
                ) from err
            instances = mirror.get_cached_instances(
                key.group, key.version, key.plural, namespace
            )

        instances.sort(key=lambda i: (i.namespace or "", i.name))
        if not instances:
            where = f" in namespace {namespace}" if namespace else ""
            print(f"No {key} objects found{where}")
            return

        if output in FORMATTERS:
            FORMATTERS[output]().print([i.payload for i in instances])
            return

        cols = instance_columns(output == "wide", namespace is None)
        PrintFormatter(cols).print([instance_row(i) for i in instances])
