"""Classification of objects as declarative or raw.

The origin of an object is not known at every entry point: an object opened
from a list of declarative resources carries an explicit origin, while one
opened programmatically may not. The classifier resolves the classification
from, in order, an explicit origin, an origin previously recorded for the
same object, and finally the API group of the object.
"""

import logging

from cluster_mirror.config import ClassifierConfig
from cluster_mirror.manifest import Classification, NamedResource, split_api_version

__all__ = [
    "OriginStore",
    "Classifier",
]

_LOGGER = logging.getLogger(__name__)


class OriginStore:
    """Remembers the origin of each object opened for editing."""

    def __init__(self) -> None:
        self._origins: dict[NamedResource, Classification] = {}

    def get(self, resource_id: NamedResource) -> Classification | None:
        return self._origins.get(resource_id)

    def set(self, resource_id: NamedResource, origin: Classification) -> None:
        self._origins[resource_id] = origin

    def __len__(self) -> int:
        return len(self._origins)


class Classifier:
    """Resolves how an object is submitted back to the cluster."""

    def __init__(
        self, config: ClassifierConfig | None = None, origins: OriginStore | None = None
    ) -> None:
        self._config = config or ClassifierConfig()
        self._origins = origins if origins is not None else OriginStore()

    @property
    def origins(self) -> OriginStore:
        return self._origins

    def is_declarative_group(self, group: str) -> bool:
        """Return True if the API group belongs to the declarative domain."""
        return group.endswith(self._config.declarative_group_suffix) and (
            group not in self._config.raw_groups
        )

    def classify(
        self,
        resource_id: NamedResource,
        api_version: str | None,
        origin: Classification | None = None,
    ) -> Classification:
        """Classify an object and record the result for later lookups."""
        if origin is not None:
            source = "explicit"
        elif (origin := self._origins.get(resource_id)) is not None:
            source = "stored"
        else:
            group, _ = split_api_version(api_version)
            origin = (
                Classification.DECLARATIVE
                if self.is_declarative_group(group)
                else Classification.RAW
            )
            source = "group"
        _LOGGER.debug("Classified %s as %s (%s)", resource_id, origin, source)
        self._origins.set(resource_id, origin)
        return origin
