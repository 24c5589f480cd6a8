"""Test fixtures for cluster-mirror."""

from collections.abc import AsyncGenerator

import pytest

from cluster_mirror.task import TaskServiceImpl

from .fake_cluster import FakeCluster


@pytest.fixture
def cluster() -> FakeCluster:
    """Create an empty in-memory cluster."""
    return FakeCluster()


@pytest.fixture
async def task_service() -> AsyncGenerator[TaskServiceImpl, None]:
    """Create a task service, cancelling its background tasks on teardown."""
    service = TaskServiceImpl()
    yield service
    await service.close()
