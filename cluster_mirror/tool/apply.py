"""Cluster-mirror apply action."""

from argparse import (
    ArgumentParser,
    BooleanOptionalAction,
    _SubParsersAction as SubParsersAction,
)
import logging
import pathlib
from typing import cast

from cluster_mirror.edit import ApplyOutcome, ApplyResult
from cluster_mirror.manifest import Classification

from .common import (
    add_diff_flags,
    object_id,
    open_mirror,
    proposed_object,
    read_document,
)

_LOGGER = logging.getLogger(__name__)


def _summary(result: ApplyResult) -> str:
    message = f"{result.resource_id} {result.outcome} ({result.classification})"
    if result.transaction_id is not None:
        message += f" transaction {result.transaction_id}"
    return message


class ApplyAction:
    """Apply an object in a file to the cluster."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "apply",
                help="Apply an object to the cluster",
                description=(
                    "Validate the object in a file against the live object and "
                    "submit it directly or as a declarative transaction"
                ),
            ),
        )
        args.add_argument(
            "file",
            type=pathlib.Path,
            help="YAML file containing a single object",
        )
        args.add_argument(
            "--dry-run",
            default=False,
            action=BooleanOptionalAction,
            help="Validate the change with the cluster without committing it",
        )
        args.add_argument(
            "--new",
            default=False,
            action=BooleanOptionalAction,
            help="Create the object instead of updating an existing one",
        )
        args.add_argument(
            "--origin",
            choices=[str(c) for c in Classification],
            default=None,
            help="How to submit the object, detected from its group if unset",
        )
        args.add_argument(
            "--force",
            default=False,
            action=BooleanOptionalAction,
            help="Submit the object even when it has no changes",
        )
        add_diff_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        file: pathlib.Path,
        dry_run: bool,
        new: bool,
        origin: str | None,
        force: bool,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        doc = await read_document(file)
        classification = Classification(origin) if origin else None
        async with open_mirror(**kwargs) as mirror:
            if new:
                handle = mirror.begin_create(proposed_object(doc, None), classification)
                proposed = mirror.get_original_snapshot(handle)
            else:
                namespace, kind, name = object_id(doc)
                handle = await mirror.begin_edit(
                    namespace,
                    kind,
                    name,
                    origin=classification,
                    api_version=doc.get("apiVersion"),
                )
                proposed = proposed_object(doc, mirror.get_original_snapshot(handle))
            result = await mirror.validate_and_apply(
                handle,
                proposed,
                dry_run=dry_run,
                skip_prompts=True,
                force=force,
            )

        for line in result.diff:
            print(line)
        if result.outcome == ApplyOutcome.NO_CHANGES:
            print(f"{result.resource_id} unchanged")
            return
        print(_summary(result))
