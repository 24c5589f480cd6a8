"""Transaction basket for batching declarative changes.

Changes to declarative objects may be queued in a basket instead of being
applied one by one. Submitting the basket merges every queued operation into
a single transaction.
"""

from dataclasses import dataclass
import logging

from cluster_mirror.cluster.api import ClusterApi
from cluster_mirror.exceptions import InputException
from cluster_mirror.manifest import (
    DeclarativeTransaction,
    NamedResource,
    TransactionOperation,
)

__all__ = [
    "BasketEntry",
    "TransactionBasket",
]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class BasketEntry:
    """A queued change."""

    operation: TransactionOperation
    description: str


class TransactionBasket:
    """An ordered list of queued declarative operations."""

    def __init__(self, description_prefix: str = "cluster-mirror") -> None:
        self._description_prefix = description_prefix
        self._entries: list[BasketEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def add(
        self, operation: TransactionOperation, description: str | None = None
    ) -> int:
        """Queue an operation, returning its index."""
        entry = BasketEntry(operation, description or operation.label)
        self._entries.append(entry)
        _LOGGER.debug("Added to basket: %s", entry.description)
        return len(self._entries) - 1

    def add_delete(self, resource_id: NamedResource, api_version: str) -> int:
        """Queue the deletion of an object."""
        return self.add(TransactionOperation.delete(resource_id, api_version))

    def entries(self) -> list[BasketEntry]:
        return list(self._entries)

    def remove(self, index: int) -> BasketEntry:
        """Remove and return the entry at the index."""
        if not 0 <= index < len(self._entries):
            raise InputException(f"No basket entry at index {index}")
        return self._entries.pop(index)

    def clear(self) -> None:
        self._entries.clear()

    async def submit(self, api: ClusterApi, dry_run: bool = False) -> str:
        """Submit every queued operation as one transaction.

        The basket is cleared only after a successful submission that is not a
        dry run.
        """
        if not self._entries:
            raise InputException("The transaction basket is empty")
        verb = "dry run" if dry_run else "commit"
        tx = DeclarativeTransaction(
            [entry.operation for entry in self._entries],
            description=f"{self._description_prefix} basket {verb}",
            dry_run=dry_run,
        )
        transaction_id = await api.submit_transaction(tx)
        _LOGGER.info(
            "Basket %s of %d operations accepted as transaction %s",
            verb,
            len(self._entries),
            transaction_id,
        )
        if not dry_run:
            self._entries.clear()
        return transaction_id
