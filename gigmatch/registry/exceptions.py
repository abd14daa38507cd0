"""Saved query registry exceptions."""

from typing import List, Optional


class RegistryError(Exception):
    """Base exception for saved query registry errors."""

    pass


class InvalidQueryError(RegistryError):
    """Saved query input failed validation.

    Carries one readable line per problem, like ConfigurationError.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(self._format_message(message))

    def _format_message(self, message: str) -> str:
        if not self.errors:
            return message
        lines = [message] + [f"  - {error}" for error in self.errors]
        return "\n".join(lines)


class SavedQueryNotFoundError(RegistryError):
    """No saved query with this id belongs to the caller."""

    def __init__(self, saved_query_id: str):
        super().__init__(f"Saved query {saved_query_id} not found")
        self.saved_query_id = saved_query_id
