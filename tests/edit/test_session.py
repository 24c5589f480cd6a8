"""Tests for the edit session registry."""

import pytest

from cluster_mirror.documents import dump_document
from cluster_mirror.edit.classify import Classifier
from cluster_mirror.edit.session import DocumentId, EditSessionRegistry
from cluster_mirror.exceptions import (
    InputException,
    ObjectNotFoundError,
    SessionNotFoundError,
)
from cluster_mirror.manifest import Classification, NamedResource

from tests.fake_cluster import WIDGETS, FakeCluster, widget


@pytest.fixture
def registry(cluster: FakeCluster) -> EditSessionRegistry:
    cluster.add(WIDGETS, widget("w1", size=1))
    cluster.add(WIDGETS, widget("w2", size=2))
    cluster.add(WIDGETS, widget("w1", namespace="other", size=3))
    return EditSessionRegistry(cluster, Classifier())


async def test_begin_edit_reuses_handle(
    cluster: FakeCluster, registry: EditSessionRegistry
) -> None:
    """Editing the same object twice returns the same handle."""
    first = await registry.begin_edit("default", "Widget", "w1")
    second = await registry.begin_edit("default", "Widget", "w1")
    assert first == second
    assert len(registry) == 1

    third = await registry.begin_edit("default", "Widget", "w2")
    fourth = await registry.begin_edit("other", "Widget", "w1")
    assert len({first, third, fourth}) == 3
    assert len(registry) == 3

    # Every edit fetches a fresh copy
    assert [c for c, _ in cluster.calls] == ["get"] * 4


async def test_snapshot_is_sanitized(registry: EditSessionRegistry) -> None:
    handle = await registry.begin_edit("default", "Widget", "w1")
    snapshot = registry.get_original_snapshot(handle)

    assert "status" not in snapshot
    assert snapshot["metadata"]["resourceVersion"] == "1"
    for key in ("uid", "managedFields", "creationTimestamp", "generation"):
        assert key not in snapshot["metadata"]
    assert snapshot["spec"] == {"size": 1}


async def test_snapshot_is_a_copy(registry: EditSessionRegistry) -> None:
    handle = await registry.begin_edit("default", "Widget", "w1")
    registry.get_original_snapshot(handle)["spec"]["size"] = 100
    assert registry.get_original_snapshot(handle)["spec"] == {"size": 1}


async def test_begin_edit_refreshes_session(
    cluster: FakeCluster, registry: EditSessionRegistry
) -> None:
    """Re-entering edit mode refreshes the snapshot and content."""
    handle = await registry.begin_edit("default", "Widget", "w1")
    registry.set_content(handle, "not: [valid")
    assert registry.has_pending_changes(handle)

    current = next(o for o in cluster.objects(WIDGETS) if o["spec"] == {"size": 1})
    cluster.update(WIDGETS, {**current, "spec": {"size": 10}})
    assert await registry.begin_edit("default", "Widget", "w1") == handle

    assert registry.get_original_snapshot(handle)["spec"] == {"size": 10}
    assert not registry.has_pending_changes(handle)


async def test_pending_changes(registry: EditSessionRegistry) -> None:
    handle = await registry.begin_edit("default", "Widget", "w1")
    session = registry.get(handle)
    assert not registry.has_pending_changes(handle)

    # Key order does not matter
    snapshot = registry.get_original_snapshot(handle)
    reordered = dict(reversed(list(snapshot.items())))
    registry.set_content(handle, dump_document(reordered))
    assert not registry.has_pending_changes(handle)

    snapshot["spec"]["size"] = 2
    registry.set_content(handle, dump_document(snapshot))
    assert registry.has_pending_changes(handle)
    assert session.original_snapshot["spec"] == {"size": 1}


async def test_classification(registry: EditSessionRegistry) -> None:
    handle = await registry.begin_edit("default", "Widget", "w1")
    assert registry.get(handle).classification == Classification.RAW
    assert handle.origin == Classification.RAW

    handle = await registry.begin_edit(
        "default", "Widget", "w1", origin=Classification.DECLARATIVE
    )
    assert registry.get(handle).classification == Classification.DECLARATIVE
    assert str(handle) == "mirror-edit:/default/Widget/w1?origin=declarative"


async def test_missing_object(registry: EditSessionRegistry) -> None:
    with pytest.raises(ObjectNotFoundError):
        await registry.begin_edit("default", "Widget", "missing")
    assert len(registry) == 0


async def test_unknown_handle(registry: EditSessionRegistry) -> None:
    with pytest.raises(SessionNotFoundError):
        registry.get("mirror-edit:/default/Widget/w1")
    with pytest.raises(InputException):
        registry.get("not-a-handle")


async def test_lookup_by_uri(registry: EditSessionRegistry) -> None:
    handle = await registry.begin_edit("default", "Widget", "w1")
    assert registry.get(str(handle)) is registry.get(handle)


async def test_session_lifecycle(registry: EditSessionRegistry) -> None:
    """A session is discarded once both its view and edit documents close."""
    view = await registry.open_view("default", "Widget", "w1")
    assert "size: 1" in registry.view_content(view)
    handle = await registry.begin_edit("default", "Widget", "w1")
    assert registry.get(handle).view_open

    registry.close_edit(handle)
    assert NamedResource("Widget", "default", "w1") in registry

    registry.reopen_edit(handle)
    registry.close_view(view)
    assert NamedResource("Widget", "default", "w1") in registry

    registry.close_edit(handle)
    assert NamedResource("Widget", "default", "w1") not in registry
    with pytest.raises(SessionNotFoundError):
        registry.view_content(view)


async def test_close_edit_drops_unsaved_content(
    registry: EditSessionRegistry,
) -> None:
    await registry.open_view("default", "Widget", "w1")
    handle = await registry.begin_edit("default", "Widget", "w1")
    registry.set_content(handle, "changed: true")

    registry.close_edit(handle)

    assert not registry.has_pending_changes(handle)


async def test_mark_applied(registry: EditSessionRegistry) -> None:
    handle = await registry.begin_edit("default", "Widget", "w1")
    applied = widget("w1", uid="x", version="9", size=4)

    registry.mark_applied(handle, applied, clear_new=True)

    snapshot = registry.get_original_snapshot(handle)
    assert snapshot["spec"] == {"size": 4}
    assert snapshot["metadata"]["resourceVersion"] == "9"
    assert not registry.has_pending_changes(handle)


async def test_mark_applied_after_edit_closed(registry: EditSessionRegistry) -> None:
    """A session applied after its editable document closed lives on its view."""
    view = await registry.open_view("default", "Widget", "w1")
    handle = await registry.begin_edit("default", "Widget", "w1")
    registry.close_edit(handle)

    registry.mark_applied(handle, widget("w1", version="9", size=4), clear_new=False)

    session = registry.get(handle)
    assert not session.edit_open
    assert session.original_snapshot["spec"] == {"size": 4}

    registry.close_view(view)
    assert len(registry) == 0


async def test_reopen_discarded_session(registry: EditSessionRegistry) -> None:
    """A session discarded while still in use can be registered again."""
    handle = await registry.begin_edit("default", "Widget", "w1")
    session = registry.get(handle)
    registry.close_edit(handle)
    assert not registry.is_registered(session)
    with pytest.raises(SessionNotFoundError):
        registry.get(handle)

    assert registry.reopen(session) == handle

    assert registry.is_registered(session)
    assert registry.get(handle) is session
    assert session.edit_open
    assert not registry.has_pending_changes(handle)


async def test_reopen_keeps_newer_session(registry: EditSessionRegistry) -> None:
    handle = await registry.begin_edit("default", "Widget", "w1")
    session = registry.get(handle)
    registry.close_edit(handle)
    await registry.begin_edit("default", "Widget", "w1")
    newer = registry.get(handle)
    assert newer is not session

    registry.reopen(session)

    assert registry.get(handle) is newer
    assert not registry.is_registered(session)


async def test_begin_create(registry: EditSessionRegistry) -> None:
    handle = registry.begin_create(widget("w9", size=1))
    session = registry.get(handle)
    assert session.is_new
    assert session.resource_id == NamedResource("Widget", "default", "w9")

    # A replacement create session is allowed until the object exists
    assert registry.begin_create(widget("w9", size=2)) == handle
    assert registry.get_original_snapshot(handle)["spec"] == {"size": 2}


async def test_begin_create_existing_session(registry: EditSessionRegistry) -> None:
    await registry.begin_edit("default", "Widget", "w1")
    with pytest.raises(InputException, match="already being edited"):
        registry.begin_create(widget("w1"))


async def test_refresh(cluster: FakeCluster, registry: EditSessionRegistry) -> None:
    handle = await registry.begin_edit("default", "Widget", "w2")
    current = next(o for o in cluster.objects(WIDGETS) if o["spec"] == {"size": 2})
    cluster.update(WIDGETS, {**current, "spec": {"size": 20}})

    assert await registry.refresh(handle) == handle
    assert registry.get_original_snapshot(handle)["spec"] == {"size": 20}


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (
            "mirror-view:/default/Widget/w1",
            DocumentId("mirror-view", NamedResource("Widget", "default", "w1")),
        ),
        (
            "mirror-edit:/Node/n1?origin=raw",
            DocumentId(
                "mirror-edit", NamedResource("Node", None, "n1"), Classification.RAW
            ),
        ),
    ],
)
def test_document_id(value: str, expected: DocumentId) -> None:
    document_id = DocumentId.parse(value)
    assert document_id == expected
    assert document_id.origin == expected.origin
    assert str(document_id) == value


@pytest.mark.parametrize(
    "value",
    [
        "other:/a/b/c",
        "mirror-edit:/a",
        "mirror-edit:/a/b/c/d",
        "mirror-edit:/a/b?origin=x",
    ],
)
def test_invalid_document_id(value: str) -> None:
    with pytest.raises(InputException):
        DocumentId.parse(value)
