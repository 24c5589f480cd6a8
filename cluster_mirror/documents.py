"""Textual form of object documents used for editing and diffing.

Objects are edited as YAML. Two serializations are produced: the editable
form keeps the server's key order so the document reads naturally, and the
canonical form sorts keys so that two documents with the same content always
serialize to identical text.
"""

import copy
import logging
from typing import Any

import yaml

from .exceptions import InputException

__all__ = [
    "load_document",
    "dump_document",
    "canonical_text",
    "strip_managed_fields",
    "sanitize_for_edit",
]

_LOGGER = logging.getLogger(__name__)

MANAGED_FIELDS = "managedFields"

# Server-managed metadata that is not meaningful to edit. The resourceVersion
# is kept since it is required to replace the object.
EDIT_METADATA = [
    "creationTimestamp",
    "generation",
    "uid",
    "selfLink",
]

# Annotations written by tooling that only add noise to an edit
STRIP_ANNOTATIONS = [
    "kubectl.kubernetes.io/last-applied-configuration",
]


def load_document(content: str) -> dict[str, Any]:
    """Parse a single YAML document into an object."""
    try:
        doc = yaml.safe_load(content)
    except yaml.YAMLError as err:
        raise InputException(f"Invalid YAML document: {err}") from err
    if not isinstance(doc, dict):
        raise InputException(
            f"Expected a YAML mapping but found {type(doc).__name__}"
        )
    return doc


def dump_document(doc: dict[str, Any]) -> str:
    """Serialize an object to the editable YAML form."""
    return yaml.dump(doc, sort_keys=False, indent=2, default_flow_style=False)


def canonical_text(doc: dict[str, Any] | None) -> str:
    """Serialize an object to the canonical form used for comparisons."""
    return yaml.dump(doc, sort_keys=True, indent=2, default_flow_style=False)


def _remove_managed_fields(obj: Any) -> None:
    if isinstance(obj, list):
        for item in obj:
            _remove_managed_fields(item)
        return
    if not isinstance(obj, dict):
        return
    obj.pop(MANAGED_FIELDS, None)
    for value in obj.values():
        _remove_managed_fields(value)


def strip_managed_fields(doc: dict[str, Any]) -> dict[str, Any]:
    """Return a deep copy of the object with all `managedFields` removed."""
    clone = copy.deepcopy(doc)
    _remove_managed_fields(clone)
    return clone


def sanitize_for_edit(doc: dict[str, Any]) -> dict[str, Any]:
    """Return a deep copy of the object with server-managed fields removed."""
    clone = strip_managed_fields(doc)
    clone.pop("status", None)
    if isinstance(metadata := clone.get("metadata"), dict):
        for key in EDIT_METADATA:
            metadata.pop(key, None)
        if isinstance(annotations := metadata.get("annotations"), dict):
            for key in STRIP_ANNOTATIONS:
                annotations.pop(key, None)
            if not annotations:
                del metadata["annotations"]
    return clone
