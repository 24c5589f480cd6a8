"""Apply Coordinator.

Applies a proposed object for an edit session. Every apply first validates the
proposed object against the session's original snapshot, then diffs the two,
and finally submits the object along the path chosen by its classification:

- Raw objects are replaced directly, carrying the version token of the
  original snapshot, so a concurrent modification is reported as a
  `ConflictError`. New raw objects are created.
- Declarative objects are wrapped in a single operation transaction which the
  backend accepts asynchronously; the returned transaction id is logged and
  returned but completion is not tracked here.

A proposed object identical to the snapshot is not submitted and reports
`NO_CHANGES`. A failed apply leaves the snapshot untouched and re-opens the
editable document so the change can be retried.
"""

from collections.abc import Awaitable, Callable
import copy
from dataclasses import dataclass, field
from enum import StrEnum
import logging
from typing import Any

from cluster_mirror.cluster.api import ClusterApi
from cluster_mirror.config import ApplyConfig
from cluster_mirror.documents import load_document
from cluster_mirror.exceptions import (
    BackendError,
    InputException,
    ValidationError,
)
from cluster_mirror.manifest import (
    Classification,
    ClusterObject,
    DeclarativeObject,
    DeclarativeTransaction,
    NamedResource,
    TransactionOperation,
)
from cluster_mirror.resource_diff import perform_object_diff

from .session import EditHandle, EditSession, EditSessionRegistry
from .validate import check

__all__ = [
    "ApplyOutcome",
    "ApplyPlan",
    "ApplyResult",
    "ApplyCoordinator",
]

_LOGGER = logging.getLogger(__name__)


class ApplyOutcome(StrEnum):
    """Result of an apply that did not fail."""

    APPLIED = "applied"
    """The change was committed."""

    VALIDATED = "validated"
    """The change was accepted by a dry run and not committed."""

    NO_CHANGES = "no_changes"
    """The proposed object is identical to the snapshot, nothing was sent."""

    CANCELLED = "cancelled"
    """The change was declined at the confirmation prompt."""


@dataclass
class ApplyPlan:
    """A validated change about to be submitted, shown for confirmation."""

    resource_id: NamedResource
    classification: Classification
    is_new: bool
    dry_run: bool
    diff: list[str] = field(default_factory=list)


@dataclass
class ApplyResult:
    """The outcome of an apply."""

    outcome: ApplyOutcome
    resource_id: NamedResource
    classification: Classification
    applied: dict[str, Any] | None = None
    """The object as committed, or as accepted by a dry run."""

    diff: list[str] = field(default_factory=list)
    transaction_id: str | None = None


ConfirmCallback = Callable[[ApplyPlan], Awaitable[bool]]


class ApplyCoordinator:
    """Validates, diffs and submits proposed objects for edit sessions."""

    def __init__(
        self,
        api: ClusterApi,
        registry: EditSessionRegistry,
        config: ApplyConfig | None = None,
    ) -> None:
        self._api = api
        self._registry = registry
        self._config = config or ApplyConfig()

    def diff(self, handle: EditHandle, proposed: dict[str, Any]) -> list[str]:
        """Return the unified diff of a proposed object against the snapshot.

        New objects are diffed against nothing, so every line is an addition.
        """
        session = self._registry.get(handle)
        original = None if session.is_new else session.original_snapshot
        return list(
            perform_object_diff(
                session.resource_id,
                original,
                proposed,
                n=self._config.diff_context_lines,
                limit_bytes=self._config.diff_limit_bytes,
            )
        )

    async def apply(
        self,
        handle: EditHandle,
        proposed: dict[str, Any],
        dry_run: bool = False,
        force: bool = False,
    ) -> ApplyResult:
        """Validate and submit a proposed object without prompting."""
        return await self.validate_and_apply(
            handle, proposed, dry_run=dry_run, skip_prompts=True, force=force
        )

    async def validate_and_apply(
        self,
        handle: EditHandle,
        proposed: dict[str, Any] | str,
        dry_run: bool = False,
        skip_prompts: bool = False,
        confirm: ConfirmCallback | None = None,
        force: bool = False,
    ) -> ApplyResult:
        """Validate a proposed object, confirm the change and submit it.

        The proposed object may be given as a document or as YAML text. When
        prompts are not skipped the `confirm` callback is shown the diff and
        may decline the change. Setting `force` submits the object even when
        it is identical to the snapshot.

        Raises ValidationError before any call to the cluster when the
        proposed object is invalid, and ConflictError or BackendError when
        the submission fails.
        """
        session = self._registry.get(handle)
        if isinstance(proposed, str):
            try:
                proposed = load_document(proposed)
            except InputException as err:
                raise ValidationError("object", str(err)) from err
        check(proposed, session.original_snapshot, session.is_new)

        diff = self.diff(handle, proposed)
        if not diff and not force:
            _LOGGER.info("No changes to apply for %s", session.resource_id)
            return ApplyResult(
                ApplyOutcome.NO_CHANGES,
                session.resource_id,
                session.classification,
            )

        if not skip_prompts and confirm is not None:
            plan = ApplyPlan(
                session.resource_id,
                session.classification,
                session.is_new,
                dry_run,
                diff,
            )
            if not await confirm(plan):
                _LOGGER.info("Apply of %s cancelled", session.resource_id)
                return ApplyResult(
                    ApplyOutcome.CANCELLED,
                    session.resource_id,
                    session.classification,
                    diff=diff,
                )

        return await self._submit(session, proposed, diff, dry_run)

    async def _submit(
        self,
        session: EditSession,
        proposed: dict[str, Any],
        diff: list[str],
        dry_run: bool,
    ) -> ApplyResult:
        obj = ClusterObject.of(copy.deepcopy(proposed), session.classification)
        transaction_id = None
        try:
            if isinstance(obj, DeclarativeObject):
                transaction_id = await self._apply_declarative(session, obj, dry_run)
                applied = obj.doc
            else:
                applied = await self._apply_raw(session, obj, dry_run)
        except BackendError as err:
            _LOGGER.warning("Apply of %s failed: %s", session.resource_id, err)
            self._registry.reopen(session)
            raise

        if dry_run:
            _LOGGER.info("Dry run of %s succeeded", session.resource_id)
            outcome = ApplyOutcome.VALIDATED
        else:
            _LOGGER.info("Applied %s", session.resource_id)
            if self._registry.is_registered(session):
                self._registry.mark_applied(session.edit_id, applied, clear_new=True)
            else:
                _LOGGER.debug("Session of %s closed during apply", session.resource_id)
            outcome = ApplyOutcome.APPLIED
        return ApplyResult(
            outcome,
            session.resource_id,
            session.classification,
            applied=applied,
            diff=diff,
            transaction_id=transaction_id,
        )

    async def _apply_raw(
        self, session: EditSession, obj: ClusterObject, dry_run: bool
    ) -> dict[str, Any]:
        if session.is_new:
            return await self._api.create_object(obj.doc, dry_run=dry_run)
        version_token = session.cluster_object.version_token
        if version_token:
            obj.doc.setdefault("metadata", {})["resourceVersion"] = version_token
        return await self._api.replace_object(
            obj.doc, dry_run=dry_run, version_token=version_token
        )

    async def _apply_declarative(
        self, session: EditSession, obj: ClusterObject, dry_run: bool
    ) -> str:
        tx = DeclarativeTransaction(
            [self.operation_for(session, obj.doc)],
            description=self._description(session, dry_run),
            dry_run=dry_run,
        )
        transaction_id = await self._api.submit_transaction(tx)
        _LOGGER.info(
            "Transaction %s accepted for %s (dry_run=%s)",
            transaction_id,
            session.resource_id,
            dry_run,
        )
        return transaction_id

    def _description(self, session: EditSession, dry_run: bool) -> str:
        verb = "create" if session.is_new else "update"
        suffix = " (dry run)" if dry_run else ""
        prefix = self._config.description_prefix
        return f"{prefix}: {verb} {session.resource_id}{suffix}"

    @staticmethod
    def operation_for(
        session: EditSession, doc: dict[str, Any]
    ) -> TransactionOperation:
        if session.is_new:
            return TransactionOperation.create(doc)
        return TransactionOperation.replace(doc)

    def stage(
        self, handle: EditHandle, proposed: dict[str, Any]
    ) -> TransactionOperation:
        """Validate a declarative change and return it as a transaction operation.

        Used to queue a change in a transaction basket instead of applying it.
        """
        session = self._registry.get(handle)
        check(proposed, session.original_snapshot, session.is_new)
        if session.classification != Classification.DECLARATIVE:
            raise InputException(
                f"{session.resource_id} is not a declarative object and cannot be "
                "added to a transaction"
            )
        return self.operation_for(session, copy.deepcopy(proposed))
