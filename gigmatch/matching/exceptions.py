"""Exceptions raised by ranking backends.

The ranking orchestrator absorbs every one of these and falls back to the
lexical scorer, so callers of ``rank`` never see them.
"""

from typing import Optional


class RankingError(Exception):
    """Base exception for ranking backend failures."""

    pass


class ModelUnavailable(RankingError):
    """The ranking model could not be reached or refused the request.

    Covers non-2xx responses, timeouts and connection errors.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ModelMalformed(RankingError):
    """The ranking model answered, but not with the expected structure."""

    pass
