"""Data models for the restaurant shuffler."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, FrozenSet, Iterable, Optional, Union


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def label(self) -> str:
        return f"{self.latitude:.4f}, {self.longitude:.4f}"


@dataclass(frozen=True)
class Candidate:
    id: str
    name: str
    location: Coordinate
    distance_miles: float
    address: str = ""
    rating: float = 0.0  # 0.0 means unrated
    category_tags: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_rated(self) -> bool:
        return self.rating > 0


@dataclass(frozen=True)
class QueryFilters:
    radius_miles: float = 10.0
    min_rating: float = 0.0  # 0.0 means no floor
    excluded_categories: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not self.radius_miles > 0:
            raise ValueError(f"radius_miles must be > 0, got {self.radius_miles}")
        if not 0.0 <= self.min_rating <= 5.0:
            raise ValueError(f"min_rating must be within [0, 5], got {self.min_rating}")
        if not isinstance(self.excluded_categories, frozenset):
            object.__setattr__(self, "excluded_categories", frozenset(self.excluded_categories))

    def with_radius(self, radius_miles: float) -> "QueryFilters":
        return replace(self, radius_miles=radius_miles)

    def with_min_rating(self, min_rating: float) -> "QueryFilters":
        return replace(self, min_rating=min_rating)

    def with_excluded(self, categories: Iterable[str]) -> "QueryFilters":
        return replace(self, excluded_categories=frozenset(categories))

    def toggle_category(self, category: str) -> "QueryFilters":
        if category in self.excluded_categories:
            return self.with_excluded(self.excluded_categories - {category})
        return self.with_excluded(self.excluded_categories | {category})


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Animating:
    tick_count: int
    current_pick: Candidate


@dataclass(frozen=True)
class Settled:
    final_pick: Candidate


SelectionState = Union[Idle, Animating, Settled]


@dataclass
class Outcome:
    """Result of a session entry point: a value, an error, or a discarded stale result."""

    value: Any = None
    error: Optional[Exception] = None
    superseded: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.superseded
