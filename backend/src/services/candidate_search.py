from __future__ import annotations

import asyncio
from typing import Iterable, List, Optional

from loguru import logger

from config import Configuration
from models import Candidate, Coordinate
from services.cuisines import place_types_for
from services.places import PlacesClient
from utils import distance


def _as_float(value: object) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def parse_place(raw: dict, origin: Coordinate) -> Optional[Candidate]:
    """Map one searchNearby record to a Candidate, or None when unusable."""
    loc = raw.get("location") or {}
    lat = _as_float(loc.get("latitude")) if isinstance(loc, dict) else None
    lng = _as_float(loc.get("longitude")) if isinstance(loc, dict) else None
    if lat is None or lng is None:
        return None

    display = raw.get("displayName")
    name = ""
    if isinstance(display, dict):
        name = str(display.get("text") or "")
    if not name:
        name = str(raw.get("name") or "")
    if not name.strip():
        return None

    location = Coordinate(latitude=lat, longitude=lng)
    rating = _as_float(raw.get("rating")) or 0.0
    types = raw.get("types") or []
    tags = frozenset(str(t) for t in types if t) if isinstance(types, list) else frozenset()

    return Candidate(
        id=str(raw.get("id") or raw.get("name") or name),
        name=name,
        address=str(raw.get("formattedAddress") or ""),
        rating=min(max(rating, 0.0), 5.0),
        location=location,
        distance_miles=distance(origin, location),
        category_tags=tags,
    )


def fetch_candidates(
    cfg: Configuration,
    origin: Coordinate,
    radius_miles: float,
    excluded_categories: Iterable[str] = (),
    min_rating: float = 0.0,
    *,
    client: Optional[PlacesClient] = None,
) -> List[Candidate]:
    """One round trip to the nearby search; results carry distance from ``origin``.

    Raises ConfigurationError, UpstreamError or NetworkError unchanged.
    """
    cfg.require_places()
    client = client or PlacesClient(cfg)

    excluded_types = place_types_for(excluded_categories)
    raw_places = client.search_nearby(origin, radius_miles, excluded_types)

    results: list[Candidate] = []
    skipped = 0
    for raw in raw_places:
        candidate = parse_place(raw, origin)
        if candidate is None:
            skipped += 1
            continue
        if min_rating > 0 and candidate.rating < min_rating:
            continue
        results.append(candidate)

    logger.info(
        "fetched candidates origin={} radius_mi={:.1f} raw={} kept={} skipped={}",
        origin.label(),
        radius_miles,
        len(raw_places),
        len(results),
        skipped,
    )
    return results


async def fetch_candidates_async(
    cfg: Configuration,
    origin: Coordinate,
    radius_miles: float,
    excluded_categories: Iterable[str] = (),
    min_rating: float = 0.0,
    *,
    client: Optional[PlacesClient] = None,
) -> List[Candidate]:
    """Async wrapper running the blocking HTTP call in a worker thread."""
    return await asyncio.to_thread(
        fetch_candidates,
        cfg,
        origin,
        radius_miles,
        list(excluded_categories),
        min_rating,
        client=client,
    )
