"""Tests for the apply coordinator."""

import asyncio
from typing import Any

import pytest

from cluster_mirror.documents import dump_document
from cluster_mirror.edit.apply import (
    ApplyCoordinator,
    ApplyOutcome,
    ApplyPlan,
    ApplyResult,
)
from cluster_mirror.edit.classify import Classifier
from cluster_mirror.edit.session import DocumentId, EditSessionRegistry
from cluster_mirror.exceptions import (
    BackendError,
    ConflictError,
    InputException,
    ValidationError,
)
from cluster_mirror.manifest import Classification, NamedResource

from tests.fake_cluster import WIDGETS, FakeCluster, wait_for, widget

W1 = NamedResource("Widget", "default", "w1")


@pytest.fixture
def registry(cluster: FakeCluster) -> EditSessionRegistry:
    cluster.add(WIDGETS, widget("w1", size=1))
    return EditSessionRegistry(cluster, Classifier())


@pytest.fixture
def coordinator(
    cluster: FakeCluster, registry: EditSessionRegistry
) -> ApplyCoordinator:
    return ApplyCoordinator(cluster, registry)


def resize(snapshot: dict[str, Any], size: int) -> dict[str, Any]:
    return {**snapshot, "spec": {"size": size}}


def stored(cluster: FakeCluster) -> dict[str, Any]:
    (obj,) = [o for o in cluster.objects(WIDGETS) if o["metadata"]["name"] == "w1"]
    return obj


async def test_invalid_object_is_not_submitted(
    cluster: FakeCluster,
    registry: EditSessionRegistry,
    coordinator: ApplyCoordinator,
) -> None:
    """Validation fails before any call to the cluster."""
    handle = await registry.begin_edit("default", "Widget", "w1")
    proposed = registry.get_original_snapshot(handle)
    proposed["metadata"]["name"] = "w2"

    with pytest.raises(ValidationError) as exc_info:
        await coordinator.apply(handle, proposed)

    assert exc_info.value.field == "metadata.name"
    assert cluster.submit_calls() == 0


async def test_unparseable_text(
    cluster: FakeCluster,
    registry: EditSessionRegistry,
    coordinator: ApplyCoordinator,
) -> None:
    handle = await registry.begin_edit("default", "Widget", "w1")

    with pytest.raises(ValidationError) as exc_info:
        await coordinator.validate_and_apply(handle, "kind: [Widget")

    assert exc_info.value.field == "object"
    assert cluster.submit_calls() == 0


async def test_no_changes(
    cluster: FakeCluster,
    registry: EditSessionRegistry,
    coordinator: ApplyCoordinator,
) -> None:
    handle = await registry.begin_edit("default", "Widget", "w1")
    snapshot = registry.get_original_snapshot(handle)

    result = await coordinator.apply(handle, snapshot)

    assert result.outcome == ApplyOutcome.NO_CHANGES
    assert result.diff == []
    assert cluster.submit_calls() == 0

    result = await coordinator.apply(handle, snapshot, force=True)
    assert result.outcome == ApplyOutcome.APPLIED
    assert cluster.submit_calls() == 1


async def test_raw_replace(
    cluster: FakeCluster,
    registry: EditSessionRegistry,
    coordinator: ApplyCoordinator,
) -> None:
    """A raw object is replaced carrying the version of the snapshot."""
    handle = await registry.begin_edit("default", "Widget", "w1")
    proposed = resize(registry.get_original_snapshot(handle), 5)
    del proposed["metadata"]["resourceVersion"]

    result = await coordinator.validate_and_apply(handle, dump_document(proposed))

    assert result.outcome == ApplyOutcome.APPLIED
    assert result.classification == Classification.RAW
    assert result.transaction_id is None
    assert "+  size: 5" in result.diff
    assert "-  size: 1" in result.diff

    ((call, sent),) = [c for c in cluster.calls if c[0] != "get"]
    assert call == "replace"
    assert sent["metadata"]["resourceVersion"] == "1"
    assert stored(cluster)["spec"] == {"size": 5}

    snapshot = registry.get_original_snapshot(handle)
    assert snapshot["spec"] == {"size": 5}
    assert snapshot["metadata"]["resourceVersion"] == cluster.resource_version
    assert not registry.has_pending_changes(handle)


async def test_conflict(
    cluster: FakeCluster,
    registry: EditSessionRegistry,
    coordinator: ApplyCoordinator,
) -> None:
    """A concurrent modification surfaces a conflict and keeps the snapshot."""
    await registry.open_view("default", "Widget", "w1")
    handle = await registry.begin_edit("default", "Widget", "w1")
    cluster.update(WIDGETS, resize(stored(cluster), 2))
    registry.close_edit(handle)

    proposed = resize(registry.get_original_snapshot(handle), 5)
    with pytest.raises(ConflictError, match="has been modified"):
        await coordinator.apply(handle, proposed)

    session = registry.get(handle)
    assert session.edit_open
    assert session.original_snapshot["spec"] == {"size": 1}
    assert session.original_snapshot["metadata"]["resourceVersion"] == "1"
    assert stored(cluster)["spec"] == {"size": 2}

    # Refreshing picks up the new version so the change can be retried
    await registry.refresh(handle)
    proposed = resize(registry.get_original_snapshot(handle), 5)
    result = await coordinator.apply(handle, proposed)
    assert result.outcome == ApplyOutcome.APPLIED
    assert stored(cluster)["spec"] == {"size": 5}


async def start_held_apply(
    cluster: FakeCluster,
    registry: EditSessionRegistry,
    coordinator: ApplyCoordinator,
    handle: DocumentId,
    size: int,
) -> asyncio.Task[ApplyResult]:
    """Start an apply that is held inside the cluster until the gate opens."""
    cluster.submit_gate = asyncio.Event()
    proposed = resize(registry.get_original_snapshot(handle), size)
    task = asyncio.create_task(coordinator.apply(handle, proposed))
    await wait_for(lambda: cluster.submit_calls() == 1)
    return task


async def test_edit_closed_during_apply(
    cluster: FakeCluster,
    registry: EditSessionRegistry,
    coordinator: ApplyCoordinator,
) -> None:
    """A committed change is reported even if its session was torn down."""
    handle = await registry.begin_edit("default", "Widget", "w1")
    task = await start_held_apply(cluster, registry, coordinator, handle, 5)

    registry.close_edit(handle)
    assert W1 not in registry
    assert cluster.submit_gate
    cluster.submit_gate.set()

    result = await task
    assert result.outcome == ApplyOutcome.APPLIED
    assert stored(cluster)["spec"] == {"size": 5}
    assert W1 not in registry


async def test_edit_closed_during_apply_with_open_view(
    cluster: FakeCluster,
    registry: EditSessionRegistry,
    coordinator: ApplyCoordinator,
) -> None:
    await registry.open_view("default", "Widget", "w1")
    handle = await registry.begin_edit("default", "Widget", "w1")
    task = await start_held_apply(cluster, registry, coordinator, handle, 5)

    registry.close_edit(handle)
    assert cluster.submit_gate
    cluster.submit_gate.set()

    result = await task
    assert result.outcome == ApplyOutcome.APPLIED
    session = registry.get(handle)
    assert not session.edit_open
    assert session.original_snapshot["spec"] == {"size": 5}


async def test_conflict_after_edit_closed_during_apply(
    cluster: FakeCluster,
    registry: EditSessionRegistry,
    coordinator: ApplyCoordinator,
) -> None:
    """A failed apply restores the discarded session so it can be retried."""
    handle = await registry.begin_edit("default", "Widget", "w1")
    task = await start_held_apply(cluster, registry, coordinator, handle, 5)

    registry.close_edit(handle)
    cluster.update(WIDGETS, resize(stored(cluster), 2))
    assert cluster.submit_gate
    cluster.submit_gate.set()

    with pytest.raises(ConflictError, match="has been modified"):
        await task

    session = registry.get(handle)
    assert session.edit_open
    assert session.original_snapshot["spec"] == {"size": 1}
    assert not registry.has_pending_changes(handle)

    cluster.submit_gate = None
    await registry.refresh(handle)
    proposed = resize(registry.get_original_snapshot(handle), 5)
    result = await coordinator.apply(handle, proposed)
    assert result.outcome == ApplyOutcome.APPLIED
    assert stored(cluster)["spec"] == {"size": 5}


    assert stored(cluster)["spec"] == {"size": 5}


async def test_dry_run(
    cluster: FakeCluster,
    registry: EditSessionRegistry,
    coordinator: ApplyCoordinator,
) -> None:
    handle = await registry.begin_edit("default", "Widget", "w1")
    proposed = resize(registry.get_original_snapshot(handle), 5)

    result = await coordinator.apply(handle, proposed, dry_run=True)

    assert result.outcome == ApplyOutcome.VALIDATED
    assert result.applied
    assert result.applied["spec"] == {"size": 5}
    assert cluster.submit_calls() == 1
    assert stored(cluster)["spec"] == {"size": 1}
    assert registry.get_original_snapshot(handle)["spec"] == {"size": 1}


async def test_confirm(
    cluster: FakeCluster,
    registry: EditSessionRegistry,
    coordinator: ApplyCoordinator,
) -> None:
    handle = await registry.begin_edit("default", "Widget", "w1")
    proposed = resize(registry.get_original_snapshot(handle), 5)
    plans: list[ApplyPlan] = []
    answer = False

    async def confirm(plan: ApplyPlan) -> bool:
        plans.append(plan)
        return answer

    result = await coordinator.validate_and_apply(handle, proposed, confirm=confirm)
    assert result.outcome == ApplyOutcome.CANCELLED
    assert result.diff
    assert cluster.submit_calls() == 0
    (plan,) = plans
    assert not plan.is_new
    assert not plan.dry_run
    assert plan.diff == result.diff

    # Prompts are not shown when skipped
    result = await coordinator.validate_and_apply(
        handle, proposed, confirm=confirm, skip_prompts=True, dry_run=True
    )
    assert result.outcome == ApplyOutcome.VALIDATED
    assert len(plans) == 1

    answer = True
    result = await coordinator.validate_and_apply(handle, proposed, confirm=confirm)
    assert result.outcome == ApplyOutcome.APPLIED
    assert len(plans) == 2


async def test_declarative_replace(
    cluster: FakeCluster,
    registry: EditSessionRegistry,
    coordinator: ApplyCoordinator,
) -> None:
    """A declarative object is submitted as a single operation transaction."""
    handle = await registry.begin_edit(
        "default", "Widget", "w1", origin=Classification.DECLARATIVE
    )
    proposed = resize(registry.get_original_snapshot(handle), 5)

    result = await coordinator.apply(handle, proposed)

    assert result.outcome == ApplyOutcome.APPLIED
    assert result.transaction_id == "1"
    assert [c for c, _ in cluster.calls] == ["get", "submit"]
    (tx,) = cluster.transactions
    assert tx.to_request() == {
        "crs": [{"type": {"replace": {"value": proposed}}}],
        "description": "cluster-mirror: update Widget/default/w1",
        "dryRun": False,
        "retain": True,
        "resultType": "normal",
    }
    assert registry.get_original_snapshot(handle)["spec"] == {"size": 5}


async def test_declarative_create(
    cluster: FakeCluster,
    registry: EditSessionRegistry,
    coordinator: ApplyCoordinator,
) -> None:
    """A created object is replaced on its next apply."""
    handle = registry.begin_create(
        widget("w9", size=1), origin=Classification.DECLARATIVE
    )
    proposed = registry.get_original_snapshot(handle)

    result = await coordinator.apply(handle, proposed)
    assert result.outcome == ApplyOutcome.APPLIED
    assert not registry.get(handle).is_new

    result = await coordinator.apply(handle, resize(proposed, 2))
    assert result.outcome == ApplyOutcome.APPLIED

    ops = [tx.operations[0] for tx in cluster.transactions]
    assert [str(op.type) for op in ops] == ["create", "replace"]
    assert cluster.transactions[0].description == (
        "cluster-mirror: create Widget/default/w9"
    )


async def test_declarative_dry_run_create(
    cluster: FakeCluster,
    registry: EditSessionRegistry,
    coordinator: ApplyCoordinator,
) -> None:
    handle = registry.begin_create(
        widget("w9", size=1), origin=Classification.DECLARATIVE
    )

    result = await coordinator.apply(
        handle, registry.get_original_snapshot(handle), dry_run=True
    )

    assert result.outcome == ApplyOutcome.VALIDATED
    assert registry.get(handle).is_new
    (tx,) = cluster.transactions
    assert tx.dry_run
    assert tx.description.endswith("(dry run)")


async def test_declarative_failure(
    cluster: FakeCluster,
    registry: EditSessionRegistry,
    coordinator: ApplyCoordinator,
) -> None:
    cluster.submit_error = BackendError("transaction api unavailable")
    handle = registry.begin_create(
        widget("w9", size=1), origin=Classification.DECLARATIVE
    )

    with pytest.raises(BackendError, match="unavailable"):
        await coordinator.apply(handle, registry.get_original_snapshot(handle))

    assert registry.get(handle).is_new
    assert cluster.transactions == []


async def test_raw_create(
    cluster: FakeCluster,
    registry: EditSessionRegistry,
    coordinator: ApplyCoordinator,
) -> None:
    handle = registry.begin_create(widget("w9", size=1))
    proposed = registry.get_original_snapshot(handle)

    result = await coordinator.apply(handle, proposed)

    assert result.outcome == ApplyOutcome.APPLIED
    assert [c for c, _ in cluster.calls] == ["create"]
    assert not registry.get(handle).is_new

    # The next apply replaces the created object
    result = await coordinator.apply(handle, resize(proposed, 3))
    assert result.outcome == ApplyOutcome.APPLIED
    assert [c for c, _ in cluster.calls] == ["create", "replace"]


async def test_new_object_diff(
    registry: EditSessionRegistry, coordinator: ApplyCoordinator
) -> None:
    handle = registry.begin_create(widget("w9", size=1))
    diff = coordinator.diff(handle, registry.get_original_snapshot(handle))
    assert diff[:2] == [
        "--- original Widget/default/w9",
        "+++ proposed Widget/default/w9",
    ]
    assert all(line.startswith("+") for line in diff[3:])


async def test_stage(
    registry: EditSessionRegistry, coordinator: ApplyCoordinator
) -> None:
    handle = await registry.begin_edit("default", "Widget", "w1")
    proposed = resize(registry.get_original_snapshot(handle), 5)
    with pytest.raises(InputException, match="not a declarative object"):
        coordinator.stage(handle, proposed)

    handle = await registry.begin_edit(
        "default", "Widget", "w1", origin=Classification.DECLARATIVE
    )
    operation = coordinator.stage(handle, proposed)
    assert operation.label == "replace Widget/w1"
    assert operation.value == proposed
    assert operation.value is not proposed

    with pytest.raises(ValidationError):
        coordinator.stage(handle, {**proposed, "kind": "Gadget"})
