"""Representation of the objects mirrored from a cluster.

Objects are observed through watch streams as plain documents (the decoded
JSON/YAML returned by the API server) and parsed into the dataclasses below.
The raw document is always kept alongside the parsed fields since edits are
made against the full object, not a projection of it.
"""

from abc import ABC
from dataclasses import dataclass, field
from enum import StrEnum
import logging
import re
from typing import Any, ClassVar

from mashumaro import DataClassDictMixin
from mashumaro.codecs.yaml import yaml_decode, yaml_encode
from mashumaro.config import BaseConfig

from .exceptions import InputException

__all__ = [
    "NamedResource",
    "BucketKey",
    "TypeDefinition",
    "NamespaceRecord",
    "ResourceInstance",
    "Classification",
    "ClusterObject",
    "RawK8sObject",
    "DeclarativeObject",
    "OperationType",
    "TransactionOperation",
    "DeclarativeTransaction",
    "kind_to_plural",
]

_LOGGER = logging.getLogger(__name__)


CRD_GROUP = "apiextensions.k8s.io"
CRD_KIND = "CustomResourceDefinition"
NAMESPACE_KIND = "Namespace"
DEFAULT_NAMESPACE = "default"
SCOPE_NAMESPACED = "Namespaced"

# Irregular plural forms that do not follow the english suffix rules
_IRREGULAR_PLURALS = {
    "chassis": "chassis",
}


def kind_to_plural(kind: str) -> str:
    """Return the lower case plural resource name for a kind."""
    lower = kind.lower()
    if lower in _IRREGULAR_PLURALS:
        return _IRREGULAR_PLURALS[lower]
    if re.search(r"[^aeiou]y$", lower):
        return lower[:-1] + "ies"
    if re.search(r"(s|x|z|ch|sh)$", lower):
        return lower + "es"
    return lower + "s"


def split_api_version(api_version: str | None) -> tuple[str, str]:
    """Split an apiVersion into group and version, core objects have no group."""
    if not api_version:
        return "", ""
    if "/" not in api_version:
        return "", api_version
    group, version = api_version.split("/", 1)
    return group, version


def _metadata(doc: dict[str, Any]) -> dict[str, Any]:
    if not isinstance(metadata := doc.get("metadata"), dict):
        raise InputException(f"Invalid object missing metadata: {doc}")
    return metadata


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all parsed objects."""

    @classmethod
    def parse_yaml(cls, content: str) -> "BaseManifest":
        """Parse a serialized object."""
        return yaml_decode(content, cls)

    def yaml(self) -> str:
        """Return a YAML string representation of the object."""
        return yaml_encode(self, self.__class__)  # type: ignore[return-value]

    class Config(BaseConfig):
        omit_none = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


@dataclass(frozen=True, order=True)
class BucketKey:
    """Identifies a watchable collection of objects on the API server."""

    group: str
    version: str
    plural: str

    @property
    def api_version(self) -> str:
        """The apiVersion of objects in this collection."""
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version

    @property
    def api_path(self) -> str:
        """The cluster-wide API path of the collection."""
        if self.group:
            return f"/apis/{self.group}/{self.version}/{self.plural}"
        return f"/api/{self.version}/{self.plural}"

    @classmethod
    def parse(cls, value: str) -> "BucketKey":
        """Parse a `group/version/plural` (or `version/plural` for core) string."""
        parts = [p for p in value.strip("/").split("/") if p]
        if len(parts) == 3:
            return cls(*parts)
        if len(parts) == 2:
            return cls("", parts[0], parts[1])
        raise InputException(
            f"Invalid resource type '{value}', expected group/version/plural"
        )

    def __str__(self) -> str:
        return f"{self.api_version}/{self.plural}"


TYPES_SOURCE = BucketKey(CRD_GROUP, "v1", "customresourcedefinitions")
NAMESPACES_SOURCE = BucketKey("", "v1", "namespaces")


@dataclass
class TypeDefinition(BaseManifest):
    """A custom resource type discovered from the cluster."""

    name: str
    """The name of the definition object, e.g. `widgets.example.com`."""

    group: str
    version: str
    """The storage version of the type."""

    kind: str
    plural: str
    namespaced: bool
    served_version: str
    """The version used to watch instances of the type."""

    @property
    def type_key(self) -> tuple[str, str]:
        """The (group, kind) pair a definition is tracked under."""
        return (self.group, self.kind)

    @property
    def bucket_key(self) -> BucketKey:
        """The key for the instance cache bucket of this type."""
        return BucketKey(self.group, self.served_version, self.plural)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "TypeDefinition":
        """Parse a TypeDefinition from a CustomResourceDefinition object."""
        metadata = _metadata(doc)
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid {cls} missing metadata.name: {doc}")
        if not isinstance(spec := doc.get("spec"), dict):
            raise InputException(f"Invalid {cls} missing spec: {doc}")
        if not (group := spec.get("group")):
            raise InputException(f"Invalid {cls} missing spec.group: {doc}")
        names = spec.get("names") or {}
        if not (kind := names.get("kind")):
            raise InputException(f"Invalid {cls} missing spec.names.kind: {doc}")
        plural = names.get("plural") or kind_to_plural(kind)
        versions = [v for v in spec.get("versions") or () if v.get("name")]
        if not versions:
            raise InputException(f"Invalid {cls} missing spec.versions: {doc}")
        served = next((v for v in versions if v.get("served")), versions[0])
        storage = next((v for v in versions if v.get("storage")), served)
        return cls(
            name=name,
            group=group,
            version=storage["name"],
            kind=kind,
            plural=plural,
            namespaced=spec.get("scope", SCOPE_NAMESPACED) == SCOPE_NAMESPACED,
            served_version=served["name"],
        )


@dataclass
class NamespaceRecord(BaseManifest):
    """A namespace that exists on the cluster."""

    name: str

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "NamespaceRecord":
        """Parse a NamespaceRecord from a Namespace object."""
        if not (name := _metadata(doc).get("name")):
            raise InputException(f"Invalid {cls} missing metadata.name: {doc}")
        return cls(name=name)


@dataclass
class ResourceInstance(BaseManifest):
    """An instance of a watched type held in the cache."""

    identity: str
    """Stable unique id (`metadata.uid`), invariant across updates."""

    name: str
    namespace: str | None
    version_token: str | None
    """The `metadata.resourceVersion` used for optimistic concurrency."""

    kind: str
    api_version: str
    payload: dict[str, Any] = field(default_factory=dict)
    """The full object as returned by the API server."""

    @property
    def named_resource(self) -> NamedResource:
        return NamedResource(self.kind, self.namespace, self.name)

    @classmethod
    def parse_doc(
        cls,
        doc: dict[str, Any],
        kind: str | None = None,
        api_version: str | None = None,
    ) -> "ResourceInstance":
        """Parse a ResourceInstance from an object.

        List responses omit `kind` and `apiVersion` on each item so the
        collection's values may be supplied as defaults.
        """
        metadata = _metadata(doc)
        if not (identity := metadata.get("uid")):
            raise InputException(f"Invalid object missing metadata.uid: {doc}")
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid object missing metadata.name: {doc}")
        if not (obj_kind := doc.get("kind") or kind):
            raise InputException(f"Invalid object missing kind: {doc}")
        return cls(
            identity=identity,
            name=name,
            namespace=metadata.get("namespace"),
            version_token=metadata.get("resourceVersion"),
            kind=obj_kind,
            api_version=doc.get("apiVersion") or api_version or "",
            payload=doc,
        )


class Classification(StrEnum):
    """How an object is submitted back to the cluster."""

    DECLARATIVE = "declarative"
    """Belongs to the automation domain, submitted as a queued transaction."""

    RAW = "raw"
    """An ordinary cluster object, replaced directly with its version token."""


@dataclass
class ClusterObject(ABC):
    """An editable object document, tagged with its classification."""

    classification: ClassVar[Classification]

    doc: dict[str, Any]

    @property
    def kind(self) -> str | None:
        return self.doc.get("kind")

    @property
    def api_version(self) -> str | None:
        return self.doc.get("apiVersion")

    @property
    def metadata(self) -> dict[str, Any]:
        metadata = self.doc.get("metadata")
        return metadata if isinstance(metadata, dict) else {}

    @property
    def name(self) -> str | None:
        return self.metadata.get("name")

    @property
    def namespace(self) -> str | None:
        return self.metadata.get("namespace")

    @property
    def version_token(self) -> str | None:
        return self.metadata.get("resourceVersion")

    @property
    def resource_id(self) -> NamedResource:
        return NamedResource(self.kind or "", self.namespace, self.name or "")

    @staticmethod
    def of(doc: dict[str, Any], classification: Classification) -> "ClusterObject":
        """Wrap a document in the variant for its classification."""
        if classification == Classification.DECLARATIVE:
            return DeclarativeObject(doc)
        return RawK8sObject(doc)


@dataclass
class RawK8sObject(ClusterObject):
    """An ordinary cluster object."""

    classification = Classification.RAW


@dataclass
class DeclarativeObject(ClusterObject):
    """An object owned by the declarative automation backend."""

    classification = Classification.DECLARATIVE


class OperationType(StrEnum):
    """Operation kinds within a declarative transaction."""

    CREATE = "create"
    REPLACE = "replace"
    DELETE = "delete"


@dataclass(frozen=True)
class TransactionOperation:
    """A single change within a declarative transaction."""

    type: OperationType
    value: dict[str, Any] | None = None
    """The full object for create and replace operations."""

    identity: NamedResource | None = None
    """The object to remove for delete operations."""

    api_version: str | None = None

    @classmethod
    def create(cls, value: dict[str, Any]) -> "TransactionOperation":
        return cls(OperationType.CREATE, value=value)

    @classmethod
    def replace(cls, value: dict[str, Any]) -> "TransactionOperation":
        return cls(OperationType.REPLACE, value=value)

    @classmethod
    def delete(
        cls, identity: NamedResource, api_version: str
    ) -> "TransactionOperation":
        return cls(OperationType.DELETE, identity=identity, api_version=api_version)

    @property
    def label(self) -> str:
        """Return a short description such as `replace Widget/w1`."""
        if self.type == OperationType.DELETE and self.identity:
            return f"{self.type} {self.identity.kind}/{self.identity.name}"
        value = self.value or {}
        name = (value.get("metadata") or {}).get("name")
        return f"{self.type} {value.get('kind')}/{name}"

    def to_request(self) -> dict[str, Any]:
        """Return the wire representation of the operation."""
        if self.type == OperationType.DELETE:
            if self.identity is None:
                raise InputException("Delete operation requires an identity")
            group, version = split_api_version(self.api_version)
            body: dict[str, Any] = {
                "gvk": {"group": group, "version": version, "kind": self.identity.kind},
                "name": self.identity.name,
            }
            if self.identity.namespace:
                body["namespace"] = self.identity.namespace
            return {"type": {"delete": body}}
        if self.value is None:
            raise InputException(f"{self.type} operation requires a value")
        return {"type": {str(self.type): {"value": self.value}}}


@dataclass
class DeclarativeTransaction:
    """A batch of changes submitted to the declarative backend."""

    operations: list[TransactionOperation]
    description: str = ""
    dry_run: bool = False
    retain: bool = True
    result_type: str = "normal"

    def to_request(self) -> dict[str, Any]:
        """Return the wire representation of the transaction."""
        return {
            "crs": [op.to_request() for op in self.operations],
            "description": self.description,
            "dryRun": self.dry_run,
            "retain": self.retain,
            "resultType": self.result_type,
        }
