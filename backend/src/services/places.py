from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import requests
from loguru import logger

from config import Configuration
from errors import NetworkError, UpstreamError
from models import Coordinate
from utils import miles_to_meters


BASELINE_EXCLUDED_TYPES = (
    "primary_school",
    "secondary_school",
    "movie_theater",
    "shopping_mall",
    "grocery_store",
)

FIELD_MASK = ",".join(
    [
        "places.id",
        "places.displayName",
        "places.formattedAddress",
        "places.rating",
        "places.location",
        "places.types",
    ]
)

MAX_RESULT_COUNT = 20


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(body.get("error_message"), str):
            return body["error_message"]
    return resp.reason or f"HTTP {resp.status_code}"


class PlacesClient:
    """Thin transport over the Places (New) and Geocoding HTTP APIs.

    Single attempt per call, no retries and no caching: retry policy belongs
    to the caller, and every search must reflect the current origin.
    """

    def __init__(self, cfg: Configuration, session: Optional[requests.Session] = None) -> None:
        self.cfg = cfg
        self.places_base = cfg.places_base_url.rstrip("/")
        self.geocoding_base = cfg.geocoding_base_url.rstrip("/")
        self.session = session or requests.Session()

    def _send(self, method: str, url: str, **kwargs: Any) -> dict:
        try:
            resp = self.session.request(method, url, timeout=self.cfg.places_timeout, **kwargs)
        except requests.RequestException as exc:  # timeout, DNS, reset
            raise NetworkError(f"request error: {exc}") from exc

        if not resp.ok:
            message = _error_message(resp)
            logger.debug("upstream {} from {}: {}", resp.status_code, url, message)
            raise UpstreamError(f"API Error: {message}", status_code=resp.status_code)

        try:
            payload = resp.json()
        except ValueError:
            raise UpstreamError("invalid json response", status_code=resp.status_code)
        if not isinstance(payload, dict):
            raise UpstreamError("unexpected response shape", status_code=resp.status_code)
        return payload

    def build_nearby_request(
        self,
        origin: Coordinate,
        radius_miles: float,
        excluded_types: Iterable[str] = (),
    ) -> Dict[str, Any]:
        excluded = list(BASELINE_EXCLUDED_TYPES)
        for t in sorted(set(excluded_types)):
            if t not in excluded:
                excluded.append(t)
        return {
            "locationRestriction": {
                "circle": {
                    "center": {"latitude": origin.latitude, "longitude": origin.longitude},
                    "radius": miles_to_meters(radius_miles),
                }
            },
            "includedTypes": ["restaurant"],
            "excludedTypes": excluded,
            "maxResultCount": max(1, min(self.cfg.places_max_results, MAX_RESULT_COUNT)),
            "languageCode": self.cfg.lang_default,
            "rankPreference": "DISTANCE",
        }

    def search_nearby(
        self,
        origin: Coordinate,
        radius_miles: float,
        excluded_types: Iterable[str] = (),
    ) -> List[dict]:
        body = self.build_nearby_request(origin, radius_miles, excluded_types)
        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.cfg.places_api_key or "",
            "X-Goog-FieldMask": FIELD_MASK,
        }
        logger.debug(
            "searchNearby center={} radius_m={:.0f} excluded={}",
            origin.label(),
            body["locationRestriction"]["circle"]["radius"],
            len(body["excludedTypes"]),
        )
        payload = self._send(
            "POST",
            f"{self.places_base}/v1/places:searchNearby",
            headers=headers,
            json=body,
        )
        places = payload.get("places") or []
        return [p for p in places if isinstance(p, dict)]

    def reverse_geocode(self, coord: Coordinate) -> List[dict]:
        params = {
            "latlng": f"{coord.latitude},{coord.longitude}",
            "key": self.cfg.places_api_key or "",
            "language": self.cfg.lang_default,
        }
        payload = self._send(
            "GET",
            f"{self.geocoding_base}/maps/api/geocode/json",
            headers={"Accept": "application/json"},
            params=params,
        )
        status = payload.get("status")
        if status not in (None, "OK", "ZERO_RESULTS"):
            raise UpstreamError(f"API Error: {payload.get('error_message') or status}")
        results = payload.get("results") or []
        return [r for r in results if isinstance(r, dict)]
