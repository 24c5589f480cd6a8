"""Editing and applying changes to mirrored objects."""

from .apply import ApplyCoordinator, ApplyOutcome, ApplyPlan, ApplyResult
from .basket import BasketEntry, TransactionBasket
from .classify import Classifier, OriginStore
from .session import DocumentId, EditSession, EditSessionRegistry
from .validate import ValidationResult, check, validate

__all__ = [
    "ApplyCoordinator",
    "ApplyOutcome",
    "ApplyPlan",
    "ApplyResult",
    "BasketEntry",
    "Classifier",
    "DocumentId",
    "EditSession",
    "EditSessionRegistry",
    "OriginStore",
    "TransactionBasket",
    "ValidationResult",
    "check",
    "validate",
]
