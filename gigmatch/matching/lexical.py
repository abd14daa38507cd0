"""Deterministic keyword/skill overlap scoring.

Always available. Used directly when no ranking model is configured and as
the landing point whenever the model call fails.
"""

from typing import List, Optional, Sequence

from gigmatch.config.models import LexicalConfig
from gigmatch.domain.models import Listing, MatchResult
from gigmatch.utils.text import tokenize_query


class LexicalScorer:
    """Scores listings by query-token and skill overlap.

    Algorithm:
    1. Tokenize the query into distinct lowercase words of at least
       ``min_token_length`` characters
    2. Build a lowercase haystack of title + description + skills
    3. Add ``token_weight`` for every token that is a substring of the haystack
    4. Add ``skill_weight`` for every listing skill equal to a token
    5. Clamp to [0, 1]; report matched tokens as ``"Matches: a, b"``
    6. Keep scores above ``min_score``, stable sort descending, take ``top_k``

    Skill-only matches raise the score but add no reason string.
    """

    def __init__(self, config: Optional[LexicalConfig] = None):
        self.config = config or LexicalConfig()

    def score_listing(self, tokens: Sequence[str], listing: Listing) -> MatchResult:
        """Score one listing against pre-tokenized query words."""
        haystack = " ".join(
            [listing.title, listing.description or "", " ".join(listing.skills)]
        ).lower()

        matched = [token for token in tokens if token in haystack]
        score = self.config.token_weight * len(matched)

        token_set = set(tokens)
        for skill in listing.skills:
            if skill.lower() in token_set:
                score += self.config.skill_weight

        reasons = [f"Matches: {', '.join(matched)}"] if matched else []
        return MatchResult(
            listing=listing,
            score=round(min(max(score, 0.0), 1.0), 6),
            reasons=reasons,
        )

    def score(self, query: str, listings: Sequence[Listing]) -> List[MatchResult]:
        """Rank listings for a free-text query.

        Args:
            query: Searcher's free-text query
            listings: Candidate listings in store order (newest first)

        Returns:
            Up to ``top_k`` results with score above ``min_score``, best first.
            Equal scores keep their input order.
        """
        tokens = tokenize_query(query, min_length=self.config.min_token_length)
        if not tokens:
            return []

        results = [self.score_listing(tokens, listing) for listing in listings]
        results = [result for result in results if result.score > self.config.min_score]
        results.sort(key=lambda result: result.score, reverse=True)
        return results[: self.config.top_k]
