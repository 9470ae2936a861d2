from __future__ import annotations

from typing import List, Optional, Protocol

from loguru import logger

from config import Configuration
from errors import ShuffoodError
from models import Coordinate
from services.places import PlacesClient


class LocationProvider(Protocol):
    def locate(self) -> Coordinate:
        ...


class FixedLocation:
    """Provider for a coordinate the caller already knows (e.g. from the browser)."""

    def __init__(self, coord: Coordinate) -> None:
        self.coord = coord

    def locate(self) -> Coordinate:
        return self.coord


def resolve_origin(provider: Optional[LocationProvider], fallback: Coordinate) -> Coordinate:
    if provider is None:
        return fallback
    try:
        return provider.locate()
    except Exception as exc:  # provider failures are expected (permission denied, timeout)
        logger.warning("location provider failed, using fallback {}: {}", fallback.label(), exc)
        return fallback


def label_from_results(results: List[dict], coord: Coordinate) -> str:
    for result in results:
        for comp in result.get("address_components") or []:
            if "locality" in (comp.get("types") or []) and comp.get("long_name"):
                return str(comp["long_name"])
    for result in results:
        formatted = result.get("formatted_address")
        if formatted:
            first = str(formatted).split(",")[0].strip()
            if first:
                return first
    return coord.label()


def describe_location(
    cfg: Configuration,
    coord: Coordinate,
    *,
    client: Optional[PlacesClient] = None,
) -> str:
    """Human-readable label for ``coord``; cosmetic, so failures fall back to the raw coordinate."""
    try:
        cfg.require_places()
        client = client or PlacesClient(cfg)
        results = client.reverse_geocode(coord)
    except ShuffoodError as exc:
        logger.warning("reverse geocoding failed for {}: {}", coord.label(), exc)
        return coord.label()
    return label_from_results(results, coord)
