"""Text helpers shared by the scorers and the ranking prompt builder."""

from typing import List, Optional


def tokenize_query(query: str, min_length: int = 3) -> List[str]:
    """Split a free-text query into distinct lowercase tokens.

    Words shorter than ``min_length`` are dropped, which removes most short
    function words without a stop-list. Order of first appearance is kept.

    Args:
        query: Raw query text
        min_length: Minimum token length to keep

    Returns:
        Distinct tokens in first-seen order

    Example:
        >>> tokenize_query("React developer, remote $80 react")
        ['react', 'developer,', 'remote', '$80']
    """
    if not query:
        return []

    tokens: List[str] = []
    for word in query.lower().split():
        if len(word) >= min_length and word not in tokens:
            tokens.append(word)
    return tokens


def truncate_text(text: str, max_length: int = 500, suffix: str = "...") -> str:
    """Truncate text to maximum length, adding suffix if truncated.

    Tries to break at a word boundary when one is close to the cut.

    Args:
        text: Text to truncate
        max_length: Maximum length (including suffix)
        suffix: Suffix to add if truncated

    Returns:
        Text no longer than ``max_length``
    """
    if not text or len(text) <= max_length:
        return text

    truncate_at = max_length - len(suffix)
    if truncate_at <= 0:
        return suffix[:max_length]

    truncated = text[:truncate_at]
    last_space = truncated.rfind(" ")
    if last_space > truncate_at * 0.8:
        truncated = truncated[:last_space]

    return truncated.rstrip() + suffix


def rate_label(rate_min: Optional[int], rate_max: Optional[int]) -> str:
    """Render a coarse rate label for prompts and emails.

    Example:
        >>> rate_label(70, 90)
        '$70-90'
        >>> rate_label(None, 90)
        'negotiable'
    """
    if rate_min and rate_max:
        return f"${rate_min}-{rate_max}"
    return "negotiable"
