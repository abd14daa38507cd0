"""Saved query registry: owner-scoped CRUD and the shared filter predicate."""

from .exceptions import InvalidQueryError, RegistryError, SavedQueryNotFoundError
from .models import SavedQueryChanges, SavedQueryDraft
from .predicate import evaluate_predicate, rates_overlap
from .service import SavedQueryRegistry

__all__ = [
    "SavedQueryRegistry",
    "SavedQueryDraft",
    "SavedQueryChanges",
    "evaluate_predicate",
    "rates_overlap",
    "RegistryError",
    "InvalidQueryError",
    "SavedQueryNotFoundError",
]
