"""Watch based mirror of the objects on a cluster."""

from .bucket import InstanceCacheBucket, Snapshot, StreamConsumer
from .catalog import NamespaceCatalog, TypeCatalog
from .manager import InstanceCacheManager
from .notify import ChangeNotifier
from .supervisor import WatchSupervisor

__all__ = [
    "ChangeNotifier",
    "InstanceCacheBucket",
    "InstanceCacheManager",
    "NamespaceCatalog",
    "Snapshot",
    "StreamConsumer",
    "TypeCatalog",
    "WatchSupervisor",
]
