"""Task tracking module for cluster-mirror.

Components receive a TaskService at construction time rather than looking one
up, so that every task started by a ClusterMirror is owned by it.
"""

from .service import TaskService, TaskServiceImpl

__all__ = ["TaskService", "TaskServiceImpl"]
