"""The saved-query filter predicate.

``evaluate_predicate`` is a pure function of its two arguments and is the
single definition of "this listing matches this saved query" for both
ad-hoc runs and the alert sweep.
"""

from typing import Optional

from gigmatch.domain.models import Listing, SavedQuery


def rates_overlap(
    query_min: Optional[int],
    query_max: Optional[int],
    listing_min: Optional[int],
    listing_max: Optional[int],
) -> bool:
    """True when two rate ranges overlap. A missing bound is open-ended.

    Example:
        >>> rates_overlap(60, 80, 70, 90)
        True
        >>> rates_overlap(None, 50, 70, 90)
        False
    """
    if query_max is not None and listing_min is not None and listing_min > query_max:
        return False
    if query_min is not None and listing_max is not None and listing_max < query_min:
        return False
    return True


def evaluate_predicate(saved_query: SavedQuery, listing: Listing) -> bool:
    """Decide whether ``listing`` satisfies ``saved_query``'s filters.

    True iff the kind matches, and (no rate bounds or the ranges overlap),
    and (not remote-only or the listing is remote), and (no location filter
    or the listing location contains it, case-insensitively), and (no skill
    filter or the skill sets intersect).

    The free-text query is not part of the predicate; it only orders results
    in ad-hoc runs.
    """
    if listing.kind != saved_query.kind:
        return False

    if saved_query.has_rate_bounds and not rates_overlap(
        saved_query.rate_min, saved_query.rate_max, listing.rate_min, listing.rate_max
    ):
        return False

    if saved_query.remote_only and not listing.remote:
        return False

    if saved_query.location:
        if not listing.location or saved_query.location.lower() not in listing.location.lower():
            return False

    if saved_query.skills:
        wanted = {skill.lower() for skill in saved_query.skills}
        if not wanted.intersection(skill.lower() for skill in listing.skills):
            return False

    return True
