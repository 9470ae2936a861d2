"""Pure, composable candidate filters.

Each filter keeps input order and only removes elements, so applying them in
any order yields the same list. They are cheap enough to re-run on every
filter change against the cached search result.
"""

from __future__ import annotations

from typing import AbstractSet, List, Optional, Sequence

from models import Candidate, QueryFilters
from services.cuisines import DEFAULT_MATCHER, CategoryMatcher


def by_distance(candidates: Sequence[Candidate], max_miles: float) -> List[Candidate]:
    return [c for c in candidates if c.distance_miles <= max_miles]


def by_min_rating(candidates: Sequence[Candidate], min_rating: float) -> List[Candidate]:
    # 0 is "no floor": unrated candidates (rating 0) stay
    if min_rating <= 0:
        return list(candidates)
    return [c for c in candidates if c.rating >= min_rating]


def by_excluded_categories(
    candidates: Sequence[Candidate],
    excluded: AbstractSet[str],
    matcher: Optional[CategoryMatcher] = None,
) -> List[Candidate]:
    if not excluded:
        return list(candidates)
    matcher = matcher or DEFAULT_MATCHER
    return [c for c in candidates if not any(matcher.matches(c, cat) for cat in excluded)]


def apply_filters(
    candidates: Sequence[Candidate],
    filters: QueryFilters,
    matcher: Optional[CategoryMatcher] = None,
) -> List[Candidate]:
    filtered = by_distance(candidates, filters.radius_miles)
    filtered = by_min_rating(filtered, filters.min_rating)
    return by_excluded_categories(filtered, filters.excluded_categories, matcher)
