"""Custom exceptions for configuration management."""

from typing import List, Optional


class ConfigurationError(Exception):
    """Raised when configuration or environment validation fails.

    Carries every validation error found plus suggestions for fixing them,
    so a single run reports all problems at once.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        self.message = message
        self.errors = errors or []
        self.suggestions = suggestions or []
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = [self.message]

        if self.errors:
            parts.append("\nValidation Errors:")
            for i, error in enumerate(self.errors, 1):
                parts.append(f"  {i}. {error}")

        if self.suggestions:
            parts.append("\nSuggestions:")
            for suggestion in self.suggestions:
                parts.append(f"  - {suggestion}")

        return "\n".join(parts)
