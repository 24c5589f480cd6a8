"""Configuration objects for cluster-mirror."""

from dataclasses import dataclass, field


@dataclass
class WatchConfig:
    """Configuration for the watch supervisors."""

    retry_delay: float = 5.0
    """Fixed delay in seconds before re-opening a failed watch."""


@dataclass
class CacheConfig:
    """Configuration for the instance cache and type catalog."""

    debounce_seconds: float = 0.5
    """Minimum interval between two "resources changed" notifications."""

    excluded_group_suffix: str = "k8s.io"
    """Type definitions in groups with this suffix are never watched."""


@dataclass
class ClassifierConfig:
    """Configuration for classifying objects as declarative or raw."""

    declarative_group_suffix: str = ".eda.nokia.com"
    """API groups with this suffix belong to the declarative domain."""

    raw_groups: tuple[str, ...] = ("core.eda.nokia.com", "artifacts.eda.nokia.com")
    """Groups with the declarative suffix that are still plain cluster objects."""


@dataclass
class ApplyConfig:
    """Configuration for the apply coordinator."""

    diff_context_lines: int = 3
    diff_limit_bytes: int = 0
    description_prefix: str = "cluster-mirror"


@dataclass
class KubectlConfig:
    """Configuration for the kubectl backed cluster api."""

    kubectl: str = "kubectl"
    context: str | None = None
    kubeconfig: str | None = None


@dataclass
class TransactionApiConfig:
    """Configuration for the declarative transaction endpoint."""

    url: str
    token: str | None = None
    verify: bool = True
    timeout: float = 30.0


@dataclass
class MirrorConfig:
    """Top level configuration for a ClusterMirror."""

    watch: WatchConfig = field(default_factory=WatchConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    apply: ApplyConfig = field(default_factory=ApplyConfig)
