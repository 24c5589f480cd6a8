"""Tests for the transaction basket."""

import pytest

from cluster_mirror.edit.basket import TransactionBasket
from cluster_mirror.exceptions import BackendError, InputException
from cluster_mirror.manifest import NamedResource, TransactionOperation

from tests.fake_cluster import FakeCluster, widget


@pytest.fixture
def basket() -> TransactionBasket:
    basket = TransactionBasket()
    basket.add(TransactionOperation.replace(widget("w1", size=2)))
    basket.add(TransactionOperation.create(widget("w2")), "create a widget")
    basket.add_delete(NamedResource("Widget", "default", "w3"), "example.com/v1")
    return basket


def test_entries(basket: TransactionBasket) -> None:
    assert [e.description for e in basket.entries()] == [
        "replace Widget/w1",
        "create a widget",
        "delete Widget/w3",
    ]

    removed = basket.remove(1)
    assert removed.description == "create a widget"
    assert len(basket) == 2

    with pytest.raises(InputException):
        basket.remove(2)
    with pytest.raises(InputException):
        basket.remove(-1)

    basket.clear()
    assert basket.entries() == []


async def test_submit(cluster: FakeCluster, basket: TransactionBasket) -> None:
    """All queued operations are merged into one transaction."""
    assert await basket.submit(cluster) == "1"

    (tx,) = cluster.transactions
    assert tx.description == "cluster-mirror basket commit"
    assert tx.to_request()["crs"] == [
        {"type": {"replace": {"value": widget("w1", size=2)}}},
        {"type": {"create": {"value": widget("w2")}}},
        {
            "type": {
                "delete": {
                    "gvk": {"group": "example.com", "version": "v1", "kind": "Widget"},
                    "name": "w3",
                    "namespace": "default",
                }
            }
        },
    ]
    assert len(basket) == 0


async def test_dry_run_keeps_entries(
    cluster: FakeCluster, basket: TransactionBasket
) -> None:
    await basket.submit(cluster, dry_run=True)

    (tx,) = cluster.transactions
    assert tx.dry_run
    assert tx.description == "cluster-mirror basket dry run"
    assert len(basket) == 3


async def test_failure_keeps_entries(
    cluster: FakeCluster, basket: TransactionBasket
) -> None:
    cluster.submit_error = BackendError("rejected")

    with pytest.raises(BackendError):
        await basket.submit(cluster)

    assert len(basket) == 3


async def test_empty_basket(cluster: FakeCluster) -> None:
    with pytest.raises(InputException, match="empty"):
        await TransactionBasket().submit(cluster)
    assert cluster.calls == []
