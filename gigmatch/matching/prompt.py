"""Prompt construction for model-backed ranking.

The candidate context is bounded: one compact record per listing with the
description cut to a fixed number of characters.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

from gigmatch.domain.models import Listing, ListingKind, UserProfile
from gigmatch.utils.text import rate_label

PROMPT_TEMPLATE = """You are a job matching assistant for a freelance marketplace.

A user is searching for {seeking}.

User's search query: "{query}"
{headline_line}
Here are the available {candidates_label}:

{candidates}

Analyze each listing and rank them by relevance to the user's search query. Consider:
- Skill match
- Rate alignment (if mentioned)
- Remote/location preferences
- Experience level signals
- Description relevance

Return a JSON object with this structure:
{{
  "matches": [
    {{
      "index": <listing index>,
      "score": <0.0 to 1.0>,
      "reasons": ["reason 1", "reason 2"]
    }}
  ]
}}

Only include listings with score > {min_score}. Sort by score descending. Limit to top {top_k}.
Return ONLY the JSON, no other text."""


def build_candidate_context(
    listings: Sequence[Listing], description_chars: int = 500
) -> List[Dict[str, Any]]:
    """Reduce listings to the fields the model sees, keyed by position.

    Example:
        >>> build_candidate_context([listing])[0]["rate"]
        '$70-90'
    """
    context = []
    for index, listing in enumerate(listings):
        owner = listing.owner
        context.append(
            {
                "index": index,
                "title": listing.title,
                "description": (listing.description or "")[:description_chars],
                "skills": list(listing.skills),
                "rate": rate_label(listing.rate_min, listing.rate_max),
                "remote": listing.remote,
                "location": listing.location,
                "poster": owner.name if owner else None,
                "headline": owner.headline if owner else None,
            }
        )
    return context


def build_ranking_prompt(
    query: str,
    listings: Sequence[Listing],
    searcher_profile: Optional[UserProfile] = None,
    kind: Optional[ListingKind] = None,
    description_chars: int = 500,
    min_score: float = 0.3,
    top_k: int = 10,
) -> str:
    """Render the single ranking instruction sent to the model.

    Args:
        query: Searcher's free-text query
        listings: Candidates, addressed by their position in this sequence
        searcher_profile: Searcher's public profile, adds their headline
        kind: Kind of listing being searched
        description_chars: Description characters kept per candidate
        min_score: Lowest score the model should report (exclusive)
        top_k: Maximum number of matches requested
    """
    kind = kind or (listings[0].kind if listings else ListingKind.SEEKING_HELP)
    if kind == ListingKind.SEEKING_HELP:
        seeking, candidates_label = "job opportunities", "job listings"
    else:
        seeking, candidates_label = "freelancers to hire", "freelancers"

    headline_line = ""
    if searcher_profile is not None and searcher_profile.headline:
        headline_line = f"User's headline: {searcher_profile.headline}\n"

    return PROMPT_TEMPLATE.format(
        seeking=seeking,
        query=query,
        headline_line=headline_line,
        candidates_label=candidates_label,
        candidates=json.dumps(
            build_candidate_context(listings, description_chars), indent=2, ensure_ascii=False
        ),
        min_score=min_score,
        top_k=top_k,
    )
