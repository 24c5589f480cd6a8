"""Structural validation of a proposed object before submission.

Validation is purely local and always runs before any call to the cluster. A
proposed object must keep the kind of the original, and unless the object is
new it must also keep the name and (when the original had one) the namespace.
"""

from dataclasses import dataclass
from typing import Any

from cluster_mirror.exceptions import ValidationError

__all__ = [
    "ValidationResult",
    "validate",
    "check",
]


@dataclass(frozen=True)
class ValidationResult:
    """The outcome of validating a proposed object."""

    valid: bool
    field: str | None = None
    message: str | None = None

    def raise_for_error(self) -> None:
        """Raise a ValidationError if the result is not valid."""
        if not self.valid:
            raise ValidationError(self.field or "object", self.message or "invalid")


_OK = ValidationResult(True)


def _invalid(field: str, message: str) -> ValidationResult:
    return ValidationResult(False, field, message)


def validate(
    proposed: Any,
    original: dict[str, Any] | None,
    is_new: bool,
) -> ValidationResult:
    """Validate a proposed object against the original snapshot."""
    if not isinstance(proposed, dict) or not proposed:
        return _invalid("object", "Proposed object is empty or not a mapping")
    if not (kind := proposed.get("kind")):
        return _invalid("kind", "Proposed object must have a kind")
    metadata = proposed.get("metadata")
    if not isinstance(metadata, dict):
        return _invalid("metadata", "Proposed object must have metadata")
    if not metadata.get("name"):
        return _invalid("metadata.name", "Proposed object must have a name")
    if original is None:
        return _OK

    original_kind = original.get("kind")
    if original_kind and kind != original_kind:
        return _invalid(
            "kind", f"Kind cannot be changed from '{original_kind}' to '{kind}'"
        )
    if is_new:
        return _OK

    original_metadata = original.get("metadata") or {}
    if (name := metadata.get("name")) != original_metadata.get("name"):
        return _invalid(
            "metadata.name",
            f"Name cannot be changed from '{original_metadata.get('name')}' "
            f"to '{name}'",
        )
    if (original_ns := original_metadata.get("namespace")) and metadata.get(
        "namespace"
    ) != original_ns:
        return _invalid(
            "metadata.namespace",
            f"Namespace cannot be changed from '{original_ns}' "
            f"to '{metadata.get('namespace')}'",
        )
    return _OK


def check(
    proposed: Any,
    original: dict[str, Any] | None,
    is_new: bool,
) -> None:
    """Validate a proposed object, raising ValidationError on failure."""
    validate(proposed, original, is_new).raise_for_error()
