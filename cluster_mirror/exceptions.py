"""Exceptions related to cluster-mirror."""

__all__ = [
    "MirrorException",
    "InputException",
    "WatchError",
    "ValidationError",
    "BackendError",
    "CommandException",
    "ConflictError",
    "ObjectNotFoundError",
    "SessionNotFoundError",
]


class MirrorException(Exception):
    """Generic base exception used for this library."""


class InputException(MirrorException):
    """Raised when objects or documents are not formatted as expected."""


class WatchError(MirrorException):
    """Raised when a watch stream fails and must be re-established."""


class ValidationError(MirrorException):
    """Raised when a proposed object fails local validation before submission."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"Validation error on {field}: {message}")
        self.field = field
        self.message = message


class BackendError(MirrorException):
    """Raised when a list, get, apply or submit call to the cluster fails."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class CommandException(BackendError):
    """Raised when there is a failure running a subcommand."""


class ConflictError(BackendError):
    """Raised when the version token of an object no longer matches the server."""

    def __init__(self, resource: str, detail: str | None) -> None:
        super().__init__(
            f"Conflict applying {resource}: {detail or 'object has been modified'}"
        )
        self.resource = resource
        self.conflict_detail = detail


class ObjectNotFoundError(BackendError):
    """Raised when an object does not exist on the cluster."""


class SessionNotFoundError(MirrorException):
    """Raised when an edit handle does not refer to a live edit session."""
